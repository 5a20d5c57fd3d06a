"""Text normalization and fixed-size overlapping chunking for ingestion."""

from __future__ import annotations

import re
from collections.abc import Iterator

_WHITESPACE_RE = re.compile(r"[\s\u00a0]+")


def normalize_text(text: str) -> str:
    """Collapse whitespace runs (including non-breaking spaces) and trim."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def clip(text: str, n: int = 120) -> str:
    """Normalize and truncate to ``n`` characters, ending with an ellipsis."""
    t = normalize_text(text)
    return t if len(t) <= n else t[: n - 1] + "…"


def _validate(chunk_size: int, overlap: int) -> None:
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if overlap < 0:
        raise ValueError(f"overlap must be non-negative, got {overlap}")
    if overlap >= chunk_size:
        raise ValueError(
            f"overlap ({overlap}) must be smaller than chunk_size ({chunk_size})"
        )


def iter_chunks(text: str, chunk_size: int, overlap: int) -> Iterator[str]:
    """Yield windows of ``chunk_size`` chars, each overlapping the previous by ``overlap``.

    The last window ends exactly at the end of ``text``. Each step advances by
    ``chunk_size - overlap`` characters, so the sequence is finite.
    """
    _validate(chunk_size, overlap)
    if not text:
        return

    step = chunk_size - overlap
    start = 0
    while True:
        end = min(start + chunk_size, len(text))
        if end == len(text):
            # Final window: keep the overlap with the previous chunk exact.
            yield text[start:]
            return
        yield text[start:end]
        start += step


def chunk_text(
    text: str,
    chunk_size: int,
    overlap: int,
    threshold: int | None = None,
) -> list[str]:
    """Split ``text`` into overlapping chunks.

    Texts no longer than ``threshold`` (default ``chunk_size``) are returned
    unchanged as a single chunk.
    """
    _validate(chunk_size, overlap)
    limit = chunk_size if threshold is None else threshold
    if len(text) <= limit:
        return [text]
    return list(iter_chunks(text, chunk_size, overlap))
