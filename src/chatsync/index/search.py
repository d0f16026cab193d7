"""Similarity-search retrieval for the answer-generation layer."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Sequence

from chatsync.embedding.encoder import Embedder
from chatsync.index.storage import SQLiteVectorStore

_PRONOUNS = re.compile(r"\b(yourself|yours|your|you)\b", re.IGNORECASE)


@dataclass(slots=True)
class RetrievedChunk:
    text: str
    source_id: str
    source_type: str
    score: float
    chunk_index: int = 0
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "sourceId": self.source_id,
            "sourceType": self.source_type,
            "score": self.score,
            "chunkIndex": self.chunk_index,
            "metadata": self.metadata,
        }


class QueryRewriter:
    """Pure text rewrite applied to a question before it is embedded.

    Visitors address the chatbot as "you"; the indexed content talks about the
    subject by name, so pronouns are replaced with ``subject_name``. Known entities
    found in the question append their ``aliases``.
    """

    def __init__(
        self,
        subject_name: str | None = None,
        aliases: Mapping[str, Sequence[str]] | None = None,
    ) -> None:
        self.subject_name = subject_name
        self.aliases: Dict[str, List[str]] = {
            key.lower(): list(values) for key, values in (aliases or {}).items()
        }

    def _replace_pronoun(self, match: re.Match[str]) -> str:
        word = match.group(0).lower()
        if word in ("your", "yours"):
            return f"{self.subject_name}'s"
        return str(self.subject_name)

    def rewrite(self, query: str) -> str:
        text = " ".join(query.split())
        if self.subject_name:
            text = _PRONOUNS.sub(self._replace_pronoun, text)

        lowered = text.lower()
        extra: List[str] = []
        for entity, expansions in self.aliases.items():
            if re.search(rf"\b{re.escape(entity)}\b", lowered):
                for term in expansions:
                    if term.lower() not in lowered and term not in extra:
                        extra.append(term)
        return " ".join([text, *extra]) if extra else text


class Retriever:
    """High-level API to fetch ranked context chunks for a question."""

    def __init__(
        self,
        embedder: Embedder,
        store: SQLiteVectorStore,
        *,
        threshold: float = 0.3,
        limit: int = 5,
        rewriter: QueryRewriter | None = None,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.threshold = threshold
        self.limit = limit
        self.rewriter = rewriter

    async def retrieve(
        self, query: str, *, threshold: float | None = None, limit: int | None = None
    ) -> List[RetrievedChunk]:
        """Return chunks scoring at least ``threshold``, best first.

        An empty list means no context cleared the threshold.
        """
        query = query.strip()
        if not query:
            return []
        threshold = self.threshold if threshold is None else threshold
        limit = self.limit if limit is None else limit

        text = self.rewriter.rewrite(query) if self.rewriter else query
        embedding = await self.embedder.embed(text)
        rows = self.store.search(embedding, threshold=threshold, limit=limit)

        results: List[RetrievedChunk] = []
        for row in rows:
            score = float(row["score"])
            if score < threshold:
                continue
            metadata = json.loads(row["metadata"]) if row.get("metadata") else {}
            results.append(
                RetrievedChunk(
                    text=row["text"],
                    source_id=row["source_id"],
                    source_type=row["source_type"],
                    score=score,
                    chunk_index=row["chunk_index"],
                    metadata=metadata,
                )
            )
        return results
