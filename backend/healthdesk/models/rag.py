"""Pydantic models for RAG: ingestion chunks and retrieval results."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class DocumentChunk(BaseModel):
    """A unit of ingestion: one row of the document store, not yet embedded."""

    id: str
    source: str
    title: str | None = None
    text: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class RetrievedDoc(BaseModel):
    """A nearest-neighbour hit. ``score`` is a distance: lower is more similar."""

    id: str
    source: str
    title: str | None = None
    text: str
    score: float


class DocReference(BaseModel):
    """The slice of a RetrievedDoc persisted on assistant messages."""

    id: str
    source: str
    title: str | None = None
    score: float
