"""Retrieval debug and document lookup endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from healthdesk.database import get_session
from healthdesk.models.orm import Document
from healthdesk.models.schemas import (
    DocumentResponse,
    ErrorDetail,
    RagQueryRequest,
    RagQueryResponse,
)
from healthdesk.services import retriever

router = APIRouter(prefix="/api/v1", tags=["rag"])


@router.post("/rag/query", response_model=RagQueryResponse)
async def rag_query(body: RagQueryRequest) -> RagQueryResponse:
    docs = await retriever.retrieve(body.query, body.k)
    return RagQueryResponse(query=body.query, docs=docs)


@router.get("/documents/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: str,
    session: AsyncSession = Depends(get_session),
) -> DocumentResponse:
    document = await session.get(Document, document_id)
    if document is None:
        raise HTTPException(
            status_code=404,
            detail=ErrorDetail(
                code="DOCUMENT_NOT_FOUND",
                message=f"Document {document_id} not found",
            ).model_dump(),
        )
    return DocumentResponse(
        id=document.id,
        source=document.source,
        title=document.title,
        text=document.text,
        metadata=document.doc_metadata or {},
        created_at=document.created_at,
    )
