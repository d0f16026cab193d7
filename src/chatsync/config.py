"""Application configuration defaults."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping

from chatsync.embedding.encoder import DEFAULT_MODEL

SUPPORTED_TYPES: tuple[str, ...] = ("profile", "project", "aiProject", "aiShowcase")


def _get_default_db_path() -> Path:
    """Local data/ directory next to the working directory."""
    return Path("data") / "chatsync.db"


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


@dataclass(slots=True)
class AppConfig:
    db_path: Path | None = None
    model_name: str = DEFAULT_MODEL
    embed_backend: str = "torch"
    device: str | None = None
    chunk_chars: int = 500
    overlap: int = 50
    similarity_threshold: float = 0.3
    result_limit: int = 5
    concurrency: int = 2
    embed_max_retries: int = 3
    embed_initial_wait: float = 1.0
    embed_max_wait: float = 20.0
    supported_types: tuple[str, ...] = SUPPORTED_TYPES
    subject_name: str | None = None
    query_aliases: Dict[str, List[str]] = field(default_factory=dict)
    webhook_secret: str | None = field(default=None, repr=False)
    admin_token: str | None = field(default=None, repr=False)
    ndjson_path: Path | None = None
    sanity_project_id: str | None = None
    sanity_dataset: str = "production"
    sanity_api_version: str = "2024-01-01"
    sanity_token: str | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = _get_default_db_path()

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AppConfig":
        """Build a config from ``CHATSYNC_*`` and ``SANITY_*`` environment variables."""
        env = os.environ if environ is None else environ
        config = cls()

        if "CHATSYNC_DB" in env:
            config.db_path = Path(env["CHATSYNC_DB"])
        if "CHATSYNC_MODEL" in env:
            config.model_name = env["CHATSYNC_MODEL"]
        if "CHATSYNC_EMBED_BACKEND" in env:
            config.embed_backend = env["CHATSYNC_EMBED_BACKEND"]
        if "CHATSYNC_DEVICE" in env:
            config.device = env["CHATSYNC_DEVICE"] or None
        if "CHATSYNC_CHUNK_CHARS" in env:
            config.chunk_chars = int(env["CHATSYNC_CHUNK_CHARS"])
        if "CHATSYNC_OVERLAP" in env:
            config.overlap = int(env["CHATSYNC_OVERLAP"])
        if "CHATSYNC_THRESHOLD" in env:
            config.similarity_threshold = float(env["CHATSYNC_THRESHOLD"])
        if "CHATSYNC_LIMIT" in env:
            config.result_limit = int(env["CHATSYNC_LIMIT"])
        if "CHATSYNC_CONCURRENCY" in env:
            config.concurrency = int(env["CHATSYNC_CONCURRENCY"])
        if "CHATSYNC_TYPES" in env:
            config.supported_types = _split_csv(env["CHATSYNC_TYPES"])
        if "CHATSYNC_SUBJECT_NAME" in env:
            config.subject_name = env["CHATSYNC_SUBJECT_NAME"]
        if "CHATSYNC_QUERY_ALIASES" in env:
            config.query_aliases = json.loads(env["CHATSYNC_QUERY_ALIASES"])
        if "CHATSYNC_NDJSON" in env:
            config.ndjson_path = Path(env["CHATSYNC_NDJSON"])

        config.webhook_secret = env.get("SANITY_WEBHOOK_SECRET") or None
        config.admin_token = env.get("ADMIN_API_TOKEN") or None
        config.sanity_project_id = env.get("SANITY_PROJECT_ID") or None
        config.sanity_dataset = env.get("SANITY_DATASET", config.sanity_dataset)
        config.sanity_api_version = env.get("SANITY_API_VERSION", config.sanity_api_version)
        config.sanity_token = env.get("SANITY_API_TOKEN") or None
        return config
