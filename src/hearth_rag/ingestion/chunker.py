"""Boundary-aware text chunking.

Text is carved into windows of at most ``size`` characters. A window prefers
to end just after a paragraph break (``"\\n\\n"``), then after a sentence
terminator followed by whitespace, and only falls back to a hard cut when
neither occurs in the second half of the window. Consecutive windows overlap
by ``overlap`` characters so content straddling a cut stays retrievable from
either side.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, Field

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 150

_PARAGRAPH_BREAK = "\n\n"
# Greedy: the match ends after the *last* terminator + whitespace in range.
_SENTENCE_BREAK = re.compile(r".*[.!?]\s", re.DOTALL)


class Chunk(BaseModel):
    """One segment of extracted text, the unit of embedding."""

    model_config = {"frozen": True}

    content: str
    index: int = Field(ge=0)
    start_offset: int = Field(ge=0)


def _find_paragraph_break(text: str, start: int, end: int, floor: int) -> int:
    pos = text.rfind(_PARAGRAPH_BREAK, start, end)
    if pos > floor:
        return pos + len(_PARAGRAPH_BREAK)
    return -1


def _find_sentence_break(text: str, start: int, floor: int, end: int) -> int:
    match = _SENTENCE_BREAK.match(text, floor, end)
    if match and match.end() > start:
        return match.end()
    return -1


def chunk_text(
    text: str,
    size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> list[Chunk]:
    """Split *text* into overlapping, boundary-aligned chunks.

    Parameters
    ----------
    text:
        Plain text produced by an extractor or a chat message.
    size:
        Maximum number of characters per chunk (before trimming).
    overlap:
        Characters shared between consecutive chunks. Values ``>= size`` are
        accepted; the loop then advances without overlap.

    Returns
    -------
    list[Chunk]
        Chunks with contiguous ``index`` from 0 and non-decreasing
        ``start_offset``. Empty for blank input.
    """
    if size < 1:
        raise ValueError(f"chunk size must be >= 1, got {size}")
    if overlap < 0:
        raise ValueError(f"chunk overlap must be >= 0, got {overlap}")

    if not text or not text.strip():
        return []

    length = len(text)
    if length <= size:
        return [Chunk(content=text.strip(), index=0, start_offset=0)]

    half = size // 2
    chunks: list[Chunk] = []
    start = 0
    while start < length:
        end = min(start + size, length)

        if end < length:
            floor = start + half
            boundary = _find_paragraph_break(text, start, end, floor)
            if boundary < 0:
                boundary = _find_sentence_break(text, start, floor, end)
            if boundary > 0:
                end = boundary

        content = text[start:end].strip()
        if content:
            chunks.append(Chunk(content=content, index=len(chunks), start_offset=start))

        next_start = end - overlap
        if next_start <= start:
            next_start = end
        start = next_start

    return chunks


class Chunker:
    """:func:`chunk_text` bound to a fixed ``size`` / ``overlap`` pair."""

    def __init__(self, size: int = DEFAULT_CHUNK_SIZE, overlap: int = DEFAULT_CHUNK_OVERLAP) -> None:
        if size < 1:
            raise ValueError(f"chunk size must be >= 1, got {size}")
        if overlap < 0:
            raise ValueError(f"chunk overlap must be >= 0, got {overlap}")
        self.size = size
        self.overlap = overlap

    def chunk(self, text: str) -> list[Chunk]:
        return chunk_text(text, size=self.size, overlap=self.overlap)
