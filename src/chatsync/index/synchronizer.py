"""Incremental synchronization of CMS content into the vector store.

A run reads the stored sync state once, normalizes every live document,
classifies each source id as added / updated / unchanged / deleted by comparing
content hashes, and applies only the embed / upsert / delete work needed to
converge. Sync state for a document is written only after its chunks are stored,
so an interrupted run is resumed by simply running again.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Literal, Mapping, Protocol, Sequence

from chatsync.embedding.encoder import Embedder
from chatsync.errors import ConfigurationError, DimensionMismatchError
from chatsync.index.chunker import ChunkerConfig, chunk
from chatsync.index.storage import SQLiteVectorStore
from chatsync.ingestion.normalizer import normalize
from chatsync.models import (
    NormalizedDocument,
    SourceDocument,
    SyncChange,
    SyncRecord,
    SyncReport,
)

LOGGER = logging.getLogger(__name__)

PlanAction = Literal["added", "updated", "unchanged", "deleted", "skipped"]

# Errors that mean the whole run is misconfigured rather than one document failing.
FATAL_ERRORS = (DimensionMismatchError, ConfigurationError)


class ContentSource(Protocol):
    async def fetch(self, document_id: str) -> SourceDocument | None: ...

    async def fetch_all(self) -> List[SourceDocument]: ...


@dataclass(slots=True)
class SyncPlan:
    source_id: str
    action: PlanAction
    title: str
    document: NormalizedDocument | None = None


def plan_changes(
    live: Mapping[str, NormalizedDocument],
    skipped: Mapping[str, str],
    state: Mapping[str, SyncRecord],
) -> List[SyncPlan]:
    """Classify every source id against the stored sync state.

    ``live`` maps ids to normalized documents, ``skipped`` maps ids of documents
    that normalized to nothing to a display title. Skipped documents that were
    synced before are scheduled for deletion.
    """
    plans: List[SyncPlan] = []
    for source_id, document in live.items():
        previous = state.get(source_id)
        if previous is None:
            action: PlanAction = "added"
        elif previous.content_hash != document.content_hash:
            action = "updated"
        else:
            action = "unchanged"
        plans.append(SyncPlan(source_id, action, document.title, document))

    for source_id, title in skipped.items():
        if source_id in state:
            plans.append(SyncPlan(source_id, "deleted", title))
        else:
            plans.append(SyncPlan(source_id, "skipped", title))

    for source_id in sorted(set(state) - set(live) - set(skipped)):
        plans.append(SyncPlan(source_id, "deleted", source_id))
    return plans


class SmartSynchronizer:
    """Keeps the vector store consistent with CMS content."""

    def __init__(
        self,
        embedder: Embedder,
        store: SQLiteVectorStore,
        *,
        chunker_config: ChunkerConfig | None = None,
        concurrency: int = 2,
        source: ContentSource | None = None,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.chunker_config = chunker_config or ChunkerConfig()
        self.concurrency = max(concurrency, 1)
        self.source = source

    async def sync(self, documents: Iterable[SourceDocument]) -> SyncReport:
        """Converge the store on the given set of live CMS documents."""
        state = self.store.get_sync_state()
        report = SyncReport()
        live, skipped = self._normalize_all(documents, report)
        # A document that could not be normalized is still live in the CMS.
        failed = {change.source_id for change in report.changes if change.action == "failed"}
        plans = plan_changes(
            live, skipped, {key: record for key, record in state.items() if key not in failed}
        )
        LOGGER.info(
            "Sync planned: %d live, %d previously synced", len(live), len(state)
        )
        await self._apply_all(plans, report)
        return report

    async def sync_one(self, source_id: str) -> SyncReport:
        """Sync a single document, e.g. after a webhook reported an edit.

        Per-document failures are raised rather than recorded so the caller can
        report them (and the CMS can redeliver).
        """
        if self.source is None:
            raise ConfigurationError("No content source configured for single-document sync")

        document = await self.source.fetch(source_id)
        state = {
            key: record for key, record in self.store.get_sync_state().items() if key == source_id
        }
        report = SyncReport()
        documents = [document] if document is not None and document.id == source_id else []
        live, skipped = self._normalize_all(documents, report, raise_errors=True)
        if not live and not skipped and source_id not in state:
            LOGGER.info("Document %s not found and never synced, nothing to do", source_id)
            return report

        await self._apply_all(plan_changes(live, skipped, state), report, raise_errors=True)
        return report

    async def delete_one(self, source_id: str) -> SyncReport:
        """Remove a document's chunks and sync state."""
        report = SyncReport()
        removed = self.store.delete_by_source(source_id)
        existed = self.store.delete_sync_state(source_id)
        if removed or existed:
            LOGGER.info("Deleted %s (%d chunks)", source_id, removed)
            report.record(SyncChange(source_id, source_id, "deleted", chunk_count=removed))
        return report

    def _normalize_all(
        self,
        documents: Iterable[SourceDocument],
        report: SyncReport,
        *,
        raise_errors: bool = False,
    ) -> tuple[Dict[str, NormalizedDocument], Dict[str, str]]:
        live: Dict[str, NormalizedDocument] = {}
        skipped: Dict[str, str] = {}
        for document in documents:
            if document.id in live or document.id in skipped:
                LOGGER.warning("Duplicate source id %s, keeping the last occurrence", document.id)
                live.pop(document.id, None)
                skipped.pop(document.id, None)
            try:
                normalized = normalize(document)
            except Exception as exc:
                if raise_errors:
                    raise
                LOGGER.error("Failed to normalize %s: %s", document.id, exc)
                report.record(SyncChange(document.id, document.id, "failed", error=str(exc)))
                continue
            if normalized is None:
                skipped[document.id] = str(document.fields.get("title") or document.id)
            else:
                live[document.id] = normalized
        return live, skipped

    async def _apply_all(
        self, plans: Sequence[SyncPlan], report: SyncReport, *, raise_errors: bool = False
    ) -> None:
        pending: List[SyncPlan] = []
        for plan in plans:
            if plan.action in ("unchanged", "skipped"):
                LOGGER.debug("%s: %s", plan.action, plan.title)
                report.record(SyncChange(plan.source_id, plan.title, plan.action))
            else:
                pending.append(plan)

        # Bounded batches keep embedding calls within provider rate limits.
        for i in range(0, len(pending), self.concurrency):
            batch = pending[i : i + self.concurrency]
            results = await asyncio.gather(
                *(self._apply(plan) for plan in batch), return_exceptions=True
            )
            fatal: BaseException | None = None
            for plan, result in zip(batch, results):
                if isinstance(result, SyncChange):
                    report.record(result)
                elif isinstance(result, FATAL_ERRORS) or not isinstance(result, Exception):
                    fatal = fatal or result
                elif raise_errors:
                    fatal = fatal or result
                else:
                    LOGGER.error("Failed to sync %s: %s", plan.source_id, result)
                    report.record(
                        SyncChange(plan.source_id, plan.title, "failed", error=str(result))
                    )
            if fatal is not None:
                raise fatal

    async def _apply(self, plan: SyncPlan) -> SyncChange:
        if plan.action == "deleted":
            removed = self.store.delete_by_source(plan.source_id)
            self.store.delete_sync_state(plan.source_id)
            LOGGER.info("DELETED: %s (%d chunks)", plan.title, removed)
            return SyncChange(plan.source_id, plan.title, "deleted", chunk_count=removed)

        document = plan.document
        if document is None:
            raise ValueError(f"No document to index for {plan.source_id}")
        chunks = chunk(document, self.chunker_config)
        vectors = await self.embedder.embed_batch([record.text for record in chunks])
        for record, vector in zip(chunks, vectors):
            record.embedding = vector

        if plan.action == "updated":
            self.store.delete_by_source(plan.source_id)
        self.store.upsert_chunks(chunks)
        self.store.set_sync_state(
            SyncRecord(
                source_id=plan.source_id,
                content_hash=document.content_hash,
                chunk_count=len(chunks),
            )
        )
        LOGGER.info("%s: %s (%d chunks)", plan.action.upper(), plan.title, len(chunks))
        return SyncChange(plan.source_id, plan.title, plan.action, chunk_count=len(chunks))
