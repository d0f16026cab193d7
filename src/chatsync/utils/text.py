"""Text helpers including boundary-aware chunking."""

from __future__ import annotations

import re
from typing import List

# Ordered by preference: paragraph, line, sentence, word.
BOUNDARY_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", "! ", "? ", " ")

_INLINE_SPACE = re.compile(r"[ \t\f\v]+")
_BLANK_RUNS = re.compile(r"\n{3,}")


def clean_block(text: str) -> str:
    """Collapse inline whitespace while keeping paragraph breaks."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = [_INLINE_SPACE.sub(" ", line).strip() for line in text.split("\n")]
    return _BLANK_RUNS.sub("\n\n", "\n".join(lines)).strip()


def find_boundary(text: str, start: int, end: int, window: int, min_cut: int) -> int:
    """Return a cut position in ``(min_cut, end]`` at a natural boundary.

    Only the last ``window`` characters before ``end`` are searched. Falls back to
    ``end`` (a hard cut) when no separator is found.
    """
    lo = max(start, end - window, min_cut)
    for separator in BOUNDARY_SEPARATORS:
        pos = text.rfind(separator, lo, end)
        if pos == -1:
            continue
        cut = pos + len(separator)
        if min_cut < cut <= end:
            return cut
    return end


def split_text(
    text: str, *, max_chars: int = 500, overlap: int = 50, window: int | None = None
) -> List[str]:
    """Split text into overlapping chunks, preferring paragraph and sentence breaks.

    Consecutive chunks share exactly ``overlap`` characters.
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")
    if overlap < 0 or overlap >= max_chars:
        raise ValueError("overlap must be in [0, max_chars)")

    text = text.strip()
    if not text:
        return []
    if len(text) <= max_chars:
        return [text]

    window = max(window if window is not None else max_chars // 4, 1)
    chunks: List[str] = []
    start = 0
    length = len(text)
    while start < length:
        end = min(start + max_chars, length)
        if end < length:
            end = find_boundary(text, start, end, window, min_cut=start + overlap)
        chunks.append(text[start:end])
        if end >= length:
            break
        start = end - overlap
    return chunks
