"""Shared fixtures: a deterministic embedding backend and CMS documents."""

from __future__ import annotations

import hashlib
import re
from typing import Dict, Iterable, List, Sequence

import numpy as np
import pytest

from chatsync.embedding.encoder import Embedder
from chatsync.index.storage import SQLiteVectorStore
from chatsync.index.synchronizer import SmartSynchronizer
from chatsync.models import SourceDocument

_TOKEN = re.compile(r"\w+")


class HashingBackend:
    """Bag-of-words embedding: each token hashed into one of ``dimension`` buckets."""

    def __init__(self, dimension: int = 64) -> None:
        self.dimension = dimension
        self.calls: List[List[str]] = []

    def embed(self, texts: Sequence[str]) -> np.ndarray:
        texts = list(texts)
        self.calls.append(texts)
        vectors = np.zeros((len(texts), self.dimension), dtype="float32")
        for row, text in enumerate(texts):
            for token in _TOKEN.findall(text.lower()):
                digest = hashlib.md5(token.encode("utf-8")).digest()
                vectors[row, int.from_bytes(digest[:4], "little") % self.dimension] += 1.0
            norm = np.linalg.norm(vectors[row])
            if norm:
                vectors[row] /= norm
        return vectors

    @property
    def embedded_texts(self) -> List[str]:
        return [text for call in self.calls for text in call]


class FakeSource:
    """In-memory content source keyed by document id."""

    def __init__(self, documents: Iterable[SourceDocument] = ()) -> None:
        self.documents: Dict[str, SourceDocument] = {doc.id: doc for doc in documents}

    def put(self, document: SourceDocument) -> None:
        self.documents[document.id] = document

    def remove(self, document_id: str) -> None:
        self.documents.pop(document_id, None)

    async def fetch(self, document_id: str) -> SourceDocument | None:
        return self.documents.get(document_id)

    async def fetch_all(self) -> List[SourceDocument]:
        return list(self.documents.values())


def make_project(doc_id: str, title: str, description: str, **fields) -> SourceDocument:
    return SourceDocument(
        id=doc_id,
        type="project",
        updated_at="2024-05-01T10:00:00Z",
        fields={"title": title, "description": description, **fields},
    )


@pytest.fixture
def backend() -> HashingBackend:
    return HashingBackend()


@pytest.fixture
def embedder(backend: HashingBackend) -> Embedder:
    return Embedder(backend, max_retries=2, initial_wait=0, max_wait=0)


@pytest.fixture
def store(tmp_path, backend: HashingBackend):
    store = SQLiteVectorStore(tmp_path / "test.db", dimension=backend.dimension)
    yield store
    store.close()


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def synchronizer(embedder: Embedder, store: SQLiteVectorStore, source: FakeSource) -> SmartSynchronizer:
    return SmartSynchronizer(embedder, store, source=source)


@pytest.fixture
def casa_bonita() -> SourceDocument:
    return make_project(
        "project-casa-bonita",
        "Casa Bonita",
        "Rebuilt the reservation system for a landmark Denver restaurant.",
        category="Web Development",
        slug={"_type": "slug", "current": "casa-bonita"},
        technologies=["Next.js", "Sanity", "PostgreSQL"],
        achievements=["Cut booking time in half", "Zero downtime launch"],
    )


@pytest.fixture
def lighthouse() -> SourceDocument:
    return make_project(
        "project-lighthouse",
        "Lighthouse Analytics",
        "Streaming dashboard that tracks vessel traffic along the coast.",
        technologies=["Kafka", "Python"],
    )
