"""FastAPI application exposing the webhook, admin sync and retrieval endpoints."""

from __future__ import annotations

import hashlib
import hmac
import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from pathlib import Path
from typing import Any, AsyncIterator

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from chatsync.config import AppConfig
from chatsync.errors import (
    ChatsyncError,
    InvalidWebhookSignatureError,
    SourceUnavailableError,
    StoreUnavailableError,
)
from chatsync.factory import Runtime, build_runtime

LOGGER = logging.getLogger(__name__)

SIGNATURE_HEADER = "sanity-webhook-signature"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    yield


app = FastAPI(title="chatsync", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def _default_runtime() -> Runtime:
    return build_runtime(AppConfig.from_env(), base_dir=Path.cwd())


async def get_runtime() -> Runtime:
    """Shared runtime built from the environment on first use."""
    return _default_runtime()


class SanityWebhookPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    type: str = Field(alias="_type")
    rev: str | None = Field(default=None, alias="_rev")
    slug: dict[str, Any] | None = None
    title: str | None = None


class RetrievePayload(BaseModel):
    query: str
    limit: int | None = None
    threshold: float | None = None


def _digest_equal(supplied: str, expected: str) -> bool:
    return hmac.compare_digest(
        supplied.encode("utf-8", "surrogateescape"), expected.encode("utf-8", "surrogateescape")
    )


def verify_signature(body: bytes, signature: str | None, secret: str) -> None:
    """Check a ``sha256=<hex hmac>`` signature of the raw request body."""
    if not signature:
        raise InvalidWebhookSignatureError("Missing signature")
    computed = "sha256=" + hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    if not _digest_equal(signature.strip(), computed):
        raise InvalidWebhookSignatureError("Invalid signature")


def _require_admin(request: Request, runtime: Runtime) -> None:
    token = runtime.config.admin_token
    if token is None:
        return
    scheme, _, supplied = request.headers.get("authorization", "").partition(" ")
    if scheme != "Bearer" or not _digest_equal(supplied, token):
        raise HTTPException(status_code=401, detail="Unauthorized")


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(InvalidWebhookSignatureError)
async def signature_error_handler(
    request: Request, exc: InvalidWebhookSignatureError
) -> JSONResponse:
    LOGGER.warning("Rejected webhook: %s", exc)
    return JSONResponse(status_code=401, content={"error": str(exc)})


@app.exception_handler(ChatsyncError)
async def chatsync_error_handler(request: Request, exc: ChatsyncError) -> JSONResponse:
    status = 503 if isinstance(exc, (StoreUnavailableError, SourceUnavailableError)) else 500
    LOGGER.error("%s failed: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status, content={"error": type(exc).__name__, "message": str(exc)}
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    LOGGER.exception("%s failed: %s", request.url.path, exc)
    return JSONResponse(
        status_code=500, content={"error": "Internal server error", "message": str(exc)}
    )


@app.get("/webhooks/sanity")
async def describe_webhook(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    return {
        "message": "Sanity webhook endpoint is active",
        "supportedTypes": list(runtime.config.supported_types),
        "headers": {SIGNATURE_HEADER: "sha256=<computed_signature>"},
    }


@app.post("/webhooks/sanity")
async def sanity_webhook(request: Request, runtime: Runtime = Depends(get_runtime)) -> Any:
    secret = runtime.config.webhook_secret
    if not secret:
        LOGGER.error("SANITY_WEBHOOK_SECRET not configured")
        return JSONResponse(status_code=500, content={"error": "Webhook not configured"})

    body = await request.body()
    verify_signature(body, request.headers.get(SIGNATURE_HEADER), secret)

    try:
        payload = SanityWebhookPayload.model_validate_json(body)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail="Invalid webhook payload") from exc

    LOGGER.info("Webhook received for %s (%s)", payload.type, payload.id)
    if payload.type not in runtime.config.supported_types:
        return {
            "success": True,
            "message": f"Document type {payload.type} not supported for sync",
        }

    try:
        report = await runtime.synchronizer.sync_one(payload.id)
    except ChatsyncError:
        raise
    except Exception as exc:
        LOGGER.exception("Webhook sync failed for %s: %s", payload.id, exc)
        return JSONResponse(
            status_code=500, content={"error": "Internal server error", "message": str(exc)}
        )

    return {
        "success": True,
        "documentId": payload.id,
        "documentType": payload.type,
        "result": report.summary(),
    }


@app.get("/admin/sync")
async def sync_status(request: Request, runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    _require_admin(request, runtime)
    return {"success": True, "status": runtime.store.get_stats()}


@app.post("/admin/sync")
async def trigger_sync(request: Request, runtime: Runtime = Depends(get_runtime)) -> Any:
    _require_admin(request, runtime)
    source = runtime.require_source()

    LOGGER.info("Manual sync triggered via admin endpoint")
    try:
        documents = await source.fetch_all()
        report = await runtime.synchronizer.sync(documents)
    except ChatsyncError:
        raise
    except Exception as exc:
        LOGGER.exception("Sync failed: %s", exc)
        return JSONResponse(
            status_code=500, content={"error": "Failed to sync content", "message": str(exc)}
        )
    return {"success": True, "result": report.to_dict()}


@app.post("/retrieve")
async def retrieve(payload: RetrievePayload, runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")

    limit = max(1, min(payload.limit, 50)) if payload.limit is not None else None
    results = await runtime.retriever.retrieve(query, threshold=payload.threshold, limit=limit)
    return {"results": [result.to_dict() for result in results]}
