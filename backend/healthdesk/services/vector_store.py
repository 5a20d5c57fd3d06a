"""Document store: SQL rows for every document, Qdrant points for embedded ones."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    PayloadSchemaType,
    PointStruct,
    SearchParams,
    VectorParams,
)
from sqlalchemy.ext.asyncio import AsyncSession

from healthdesk.config import settings
from healthdesk.models.orm import Document
from healthdesk.models.rag import RetrievedDoc

logger = logging.getLogger(__name__)

# --- Client (lazy init) ---

_qdrant_client: AsyncQdrantClient | None = None


def _qdrant_kwargs() -> dict:
    """Build kwargs for Qdrant client, including api_key if set."""
    kwargs: dict = {"url": settings.qdrant_url}
    if settings.qdrant_api_key:
        kwargs["api_key"] = settings.qdrant_api_key
    return kwargs


def get_qdrant_client() -> AsyncQdrantClient:
    """Get or create the async Qdrant client."""
    global _qdrant_client
    if _qdrant_client is None:
        _qdrant_client = AsyncQdrantClient(**_qdrant_kwargs())
    return _qdrant_client


def point_id(document_id: str) -> str:
    """Stable Qdrant point id for a document id."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"healthdesk-document:{document_id}"))


# --- Collection Management ---


async def ensure_collection(dimensions: int | None = None) -> None:
    """Create the Qdrant collection if it doesn't exist."""
    client = get_qdrant_client()
    if await client.collection_exists(settings.qdrant_collection):
        logger.info("Qdrant collection '%s' already exists", settings.qdrant_collection)
        return

    await client.create_collection(
        collection_name=settings.qdrant_collection,
        vectors_config=VectorParams(
            size=dimensions or settings.embedding_dimensions,
            distance=Distance.COSINE,
        ),
    )
    for field in ("document_id", "source"):
        await client.create_payload_index(
            collection_name=settings.qdrant_collection,
            field_name=field,
            field_schema=PayloadSchemaType.KEYWORD,
        )
    logger.info("Created Qdrant collection '%s'", settings.qdrant_collection)


async def reset_collection() -> None:
    """Drop the Qdrant collection. Used whenever the SQL documents are rebuilt."""
    client = get_qdrant_client()
    if await client.collection_exists(settings.qdrant_collection):
        await client.delete_collection(settings.qdrant_collection)
        logger.info("Deleted Qdrant collection '%s'", settings.qdrant_collection)


# --- SQL side ---


async def upsert_document(
    session: AsyncSession,
    id: str,
    source: str,
    title: str | None,
    text: str,
    metadata: dict[str, Any] | None = None,
) -> bool:
    """Insert a document row unless the id already exists.

    Never overwrites, so replaying an ingestion run is safe. Returns True if a
    row was inserted. The caller commits.
    """
    if await session.get(Document, id) is not None:
        return False
    session.add(
        Document(id=id, source=source, title=title, text=text, doc_metadata=metadata or {})
    )
    await session.flush()
    return True


async def set_embedding(session: AsyncSession, id: str, vector: list[float]) -> None:
    """Store the vector on the row, then index the document in Qdrant.

    The row is committed before the point is written, so a searchable
    document always has a stored embedding.
    """
    document = await session.get(Document, id)
    if document is None:
        raise LookupError(f"Document {id!r} not found")

    point = PointStruct(
        id=point_id(document.id),
        vector=vector,
        payload={
            "document_id": document.id,
            "source": document.source,
            "title": document.title,
            "text": document.text,
        },
    )
    document.embedding = vector
    await session.commit()
    await get_qdrant_client().upsert(
        collection_name=settings.qdrant_collection, points=[point]
    )


# --- Search ---


async def find_nearest(
    query_embedding: list[float],
    k: int,
    probe_budget: int | None = None,
) -> list[RetrievedDoc]:
    """Return the ``k`` embedded documents closest to ``query_embedding``.

    Scores are cosine distances (1 - similarity), ascending.
    """
    client = get_qdrant_client()
    results = await client.query_points(
        collection_name=settings.qdrant_collection,
        query=query_embedding,
        limit=k,
        search_params=SearchParams(hnsw_ef=probe_budget or settings.search_probes),
        with_payload=True,
    )
    logger.debug("Qdrant returned %d points", len(results.points))

    docs = [
        RetrievedDoc(
            id=point.payload["document_id"],
            source=point.payload["source"],
            title=point.payload.get("title"),
            text=point.payload["text"],
            score=1.0 - point.score,
        )
        for point in results.points
    ]
    docs.sort(key=lambda d: d.score)
    return docs[:k]
