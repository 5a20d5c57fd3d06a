"""Query-time retrieval over the document store."""

from __future__ import annotations

import logging

from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse

from healthdesk.config import settings
from healthdesk.llm import gateway
from healthdesk.llm.gateway import GatewayError
from healthdesk.models.rag import RetrievedDoc
from healthdesk.services import vector_store

logger = logging.getLogger(__name__)


async def retrieve(query: str, k: int | None = None) -> list[RetrievedDoc]:
    """Embed ``query`` and return up to ``k`` documents, best match first.

    An unreachable embedding backend or vector store yields an empty list:
    no context is a valid, degraded input for answer generation.
    """
    k = k or settings.retrieval_top_k
    logger.info("RAG search: query=%r k=%d", query[:100], k)

    try:
        query_vector = await gateway.embed(settings.query_prefix + query, task="query")
    except GatewayError as e:
        logger.warning("Query embedding failed (status=%s): %s", e.status_code, e)
        return []

    try:
        docs = await vector_store.find_nearest(query_vector, k, settings.search_probes)
    except (UnexpectedResponse, ResponseHandlingException, ValueError) as e:
        logger.warning("Vector search failed: %s", e)
        return []

    for idx, d in enumerate(docs, start=1):
        logger.debug("  Result [%d] distance=%.3f doc=%r", idx, d.score, d.title)
    logger.info("Retrieved %d documents", len(docs))
    return docs


def build_context(docs: list[RetrievedDoc]) -> str:
    """Format retrieved documents as numbered SOURCE blocks for the answer prompt."""
    if not docs:
        return "No sources were retrieved for this question."

    blocks = [
        f"SOURCE {idx}\n"
        f"Title: {d.title or 'Untitled'}\n"
        f"Dataset: {d.source}\n"
        f"Content:\n{d.text}\n"
        for idx, d in enumerate(docs, start=1)
    ]
    return "\n---\n".join(blocks)
