"""Core chatsync data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal

import numpy as np

SyncAction = Literal["added", "updated", "deleted", "unchanged", "skipped", "failed"]


@dataclass(slots=True)
class SourceDocument:
    """A CMS document as delivered by the content source.

    ``type`` is the tag the normalizer dispatches on; ``fields`` holds every
    non-system attribute of the raw document.
    """

    id: str
    type: str
    updated_at: str | None = None
    fields: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "SourceDocument":
        """Build a document from a raw Sanity payload (``_id``, ``_type``, ...)."""
        try:
            doc_id = raw["_id"]
            doc_type = raw["_type"]
        except KeyError as exc:
            raise ValueError(f"Document is missing required key {exc.args[0]!r}") from exc
        fields = {key: value for key, value in raw.items() if not key.startswith("_")}
        return cls(id=str(doc_id), type=str(doc_type), updated_at=raw.get("_updatedAt"), fields=fields)


@dataclass(slots=True)
class NormalizedDocument:
    """Canonical text form of a source document plus its content hash."""

    source_id: str
    source_type: str
    title: str
    canonical_text: str
    content_hash: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ChunkRecord:
    """Chunk of document text paired with provenance and, once embedded, its vector."""

    chunk_id: str
    source_id: str
    source_type: str
    index: int
    text: str
    metadata: Dict[str, Any]
    embedding: np.ndarray | None = None


@dataclass(slots=True)
class SyncRecord:
    """What the store last indexed for one source document."""

    source_id: str
    content_hash: str
    chunk_count: int
    synced_at: str | None = None


@dataclass(slots=True)
class SyncChange:
    source_id: str
    title: str
    action: SyncAction
    chunk_count: int | None = None
    error: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "sourceId": self.source_id,
            "title": self.title,
            "action": self.action,
        }
        if self.chunk_count is not None:
            payload["chunkCount"] = self.chunk_count
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass(slots=True)
class SyncReport:
    """Aggregated outcome of a sync run."""

    added: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0
    total_chunks: int = 0
    changes: List[SyncChange] = field(default_factory=list)

    def record(self, change: SyncChange) -> None:
        if change.action == "added":
            self.added += 1
        elif change.action == "updated":
            self.updated += 1
        elif change.action == "deleted":
            self.deleted += 1
        elif change.action == "unchanged":
            self.unchanged += 1
        elif change.action == "skipped":
            self.skipped += 1
        else:
            self.failed += 1
        if change.action in ("added", "updated") and change.chunk_count:
            self.total_chunks += change.chunk_count
        self.changes.append(change)

    def summary(self) -> Dict[str, int]:
        return {
            "added": self.added,
            "updated": self.updated,
            "deleted": self.deleted,
            "unchanged": self.unchanged,
            "totalChunks": self.total_chunks,
        }

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = self.summary()
        payload["skipped"] = self.skipped
        payload["failed"] = self.failed
        payload["changes"] = [change.to_dict() for change in self.changes]
        return payload
