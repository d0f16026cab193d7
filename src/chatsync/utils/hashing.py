"""Hashing helpers for change detection and stable chunk ids."""

from __future__ import annotations

import hashlib


def compute_sha256(text: str) -> str:
    """Compute the SHA256 hex digest of a text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def make_chunk_id(source_id: str, chunk_index: int) -> str:
    """Stable identifier of the ``chunk_index``-th chunk of a source document."""
    return f"{source_id}_chunk_{chunk_index}"
