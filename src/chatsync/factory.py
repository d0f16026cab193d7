"""Wiring of configuration into sources, stores and services."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from chatsync.config import AppConfig
from chatsync.embedding.encoder import Embedder, EmbeddingConfig, EmbeddingModel
from chatsync.errors import ConfigurationError
from chatsync.index.chunker import ChunkerConfig
from chatsync.index.search import QueryRewriter, Retriever
from chatsync.index.storage import SQLiteVectorStore
from chatsync.index.synchronizer import ContentSource, SmartSynchronizer
from chatsync.ingestion.sources import NDJSONSource, SanityClient


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def build_source(config: AppConfig) -> ContentSource | None:
    """Sanity API when a project id is configured, else an NDJSON export, else None."""
    if config.sanity_project_id:
        return SanityClient(
            config.sanity_project_id,
            config.sanity_dataset,
            token=config.sanity_token,
            api_version=config.sanity_api_version,
            types=config.supported_types,
        )
    if config.ndjson_path is not None:
        return NDJSONSource(config.ndjson_path, types=config.supported_types)
    return None


@dataclass(slots=True)
class Runtime:
    config: AppConfig
    store: SQLiteVectorStore
    embedder: Embedder
    synchronizer: SmartSynchronizer
    retriever: Retriever
    source: ContentSource | None

    def require_source(self) -> ContentSource:
        if self.source is None:
            raise ConfigurationError(
                "No content source configured: set SANITY_PROJECT_ID or CHATSYNC_NDJSON"
            )
        return self.source

    def close(self) -> None:
        self.store.close()


def build_runtime(
    config: AppConfig,
    *,
    base_dir: Path | None = None,
    source: ContentSource | None = None,
) -> Runtime:
    resolved_db = config.resolve_db_path(base_dir)
    _ensure_db_parent(resolved_db)

    embedder = Embedder(
        EmbeddingModel(
            EmbeddingConfig(
                model_name=config.model_name,
                backend=config.embed_backend,
                device=config.device,
            )
        ),
        max_retries=config.embed_max_retries,
        initial_wait=config.embed_initial_wait,
        max_wait=config.embed_max_wait,
    )
    store = SQLiteVectorStore(resolved_db, dimension=embedder.dimension)
    source = source if source is not None else build_source(config)

    synchronizer = SmartSynchronizer(
        embedder,
        store,
        chunker_config=ChunkerConfig(
            max_chunk_chars=config.chunk_chars, overlap_chars=config.overlap
        ),
        concurrency=config.concurrency,
        source=source,
    )
    retriever = Retriever(
        embedder,
        store,
        threshold=config.similarity_threshold,
        limit=config.result_limit,
        rewriter=QueryRewriter(config.subject_name, config.query_aliases),
    )
    return Runtime(config, store, embedder, synchronizer, retriever, source)
