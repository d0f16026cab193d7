"""CMS content sources: Sanity NDJSON exports and the Sanity HTTP query API."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Sequence

import httpx

from chatsync.config import SUPPORTED_TYPES
from chatsync.errors import SourceUnavailableError
from chatsync.models import SourceDocument

LOGGER = logging.getLogger(__name__)

DRAFT_PREFIX = "drafts."


def is_draft(document_id: str) -> bool:
    return document_id.startswith(DRAFT_PREFIX)


def iter_ndjson(path: Path) -> Iterator[dict]:
    """Yield JSON objects from an NDJSON file, skipping blank lines."""
    with path.open("r", encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as exc:
                raise SourceUnavailableError(f"{path}:{line_number}: invalid JSON ({exc})") from exc


def _to_documents(raw_documents: Iterable[Any], types: Sequence[str]) -> List[SourceDocument]:
    documents = []
    for raw in raw_documents:
        if not isinstance(raw, dict) or raw.get("_type") not in types:
            continue
        if is_draft(str(raw.get("_id", ""))):
            continue
        documents.append(SourceDocument.from_raw(raw))
    return documents


class NDJSONSource:
    """Documents read from a Sanity dataset export (``sanity dataset export``)."""

    def __init__(self, path: Path, *, types: Sequence[str] = SUPPORTED_TYPES) -> None:
        self.path = Path(path)
        self.types = tuple(types)

    def load(self) -> List[SourceDocument]:
        if not self.path.exists():
            raise SourceUnavailableError(f"Export file not found: {self.path}")
        documents = _to_documents(iter_ndjson(self.path), self.types)
        LOGGER.info("Loaded %d documents from %s", len(documents), self.path)
        return documents

    async def fetch_all(self) -> List[SourceDocument]:
        return self.load()

    async def fetch(self, document_id: str) -> SourceDocument | None:
        for document in self.load():
            if document.id == document_id:
                return document
        return None


class SanityClient:
    """Read-only client for the Sanity HTTP query API (GROQ)."""

    def __init__(
        self,
        project_id: str,
        dataset: str = "production",
        *,
        token: str | None = None,
        api_version: str = "2024-01-01",
        types: Sequence[str] = SUPPORTED_TYPES,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.project_id = project_id
        self.dataset = dataset
        self.token = token
        self.api_version = api_version.lstrip("v")
        self.types = tuple(types)
        self.timeout = timeout
        self._transport = transport

    @property
    def base_url(self) -> str:
        return f"https://{self.project_id}.api.sanity.io/v{self.api_version}"

    def _headers(self) -> dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    async def query(self, groq: str, **params: Any) -> Any:
        """Run a GROQ query; ``params`` are bound as ``$name`` variables."""
        query_params = {"query": groq}
        query_params.update({f"${name}": json.dumps(value) for name, value in params.items()})
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.get(f"/data/query/{self.dataset}", params=query_params)
                response.raise_for_status()
                payload = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                raise SourceUnavailableError(f"Sanity query failed: {exc}") from exc
        return payload.get("result")

    async def fetch_all(self) -> List[SourceDocument]:
        result = await self.query(
            '*[_type in $types && !(_id in path("drafts.**"))]', types=list(self.types)
        )
        documents = _to_documents(result or [], self.types)
        LOGGER.info("Fetched %d documents from Sanity", len(documents))
        return documents

    async def fetch(self, document_id: str) -> SourceDocument | None:
        result = await self.query("*[_id == $id][0]", id=document_id)
        documents = _to_documents([result] if result else [], self.types)
        return documents[0] if documents else None
