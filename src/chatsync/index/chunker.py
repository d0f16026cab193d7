"""Split normalized documents into embeddable chunks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from chatsync.models import ChunkRecord, NormalizedDocument
from chatsync.utils.hashing import make_chunk_id
from chatsync.utils.text import split_text


@dataclass(slots=True)
class ChunkerConfig:
    max_chunk_chars: int = 500
    overlap_chars: int = 50
    boundary_window: int | None = None

    def __post_init__(self) -> None:
        if self.max_chunk_chars <= 0:
            raise ValueError("max_chunk_chars must be positive")
        if not 0 <= self.overlap_chars < self.max_chunk_chars:
            raise ValueError("overlap_chars must be >= 0 and smaller than max_chunk_chars")


def chunk(document: NormalizedDocument, config: ChunkerConfig | None = None) -> List[ChunkRecord]:
    """Produce ordered chunk records (without embeddings) for a document."""
    config = config or ChunkerConfig()
    pieces = split_text(
        document.canonical_text,
        max_chars=config.max_chunk_chars,
        overlap=config.overlap_chars,
        window=config.boundary_window,
    )
    total = len(pieces)
    return [
        ChunkRecord(
            chunk_id=make_chunk_id(document.source_id, index),
            source_id=document.source_id,
            source_type=document.source_type,
            index=index,
            text=piece,
            metadata={
                **document.metadata,
                "source": document.source_type,
                "sourceId": document.source_id,
                "title": document.title,
                "chunkIndex": index,
                "totalChunks": total,
            },
        )
        for index, piece in enumerate(pieces)
    ]
