"""Chat API endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from healthdesk.database import get_session
from healthdesk.models.schemas import (
    ChatCreate,
    ChatResponse,
    ErrorDetail,
    MessageCreate,
    MessageResponse,
    TurnResponse,
)
from healthdesk.services import chat_service
from healthdesk.services.patient_service import get_patient_by_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["chats"])


def _chat_not_found(chat_id: int) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail=ErrorDetail(
            code="CHAT_NOT_FOUND",
            message=f"Chat with ID {chat_id} not found",
        ).model_dump(),
    )


@router.post("/chats", response_model=ChatResponse, status_code=201)
async def create_chat(
    body: ChatCreate,
    session: AsyncSession = Depends(get_session),
) -> ChatResponse:
    patient = await get_patient_by_id(session, body.patient_id)
    if patient is None:
        raise HTTPException(
            status_code=404,
            detail=ErrorDetail(
                code="PATIENT_NOT_FOUND",
                message=f"Patient with ID {body.patient_id} not found",
            ).model_dump(),
        )
    chat = await chat_service.create_chat(session, patient.id)
    return ChatResponse.model_validate(chat)


@router.get("/patients/{patient_id}/chats", response_model=list[ChatResponse])
async def list_chats(
    patient_id: int,
    session: AsyncSession = Depends(get_session),
) -> list[ChatResponse]:
    chats = await chat_service.list_chats(session, patient_id)
    return [ChatResponse.model_validate(c) for c in chats]


@router.get("/chats/{chat_id}/messages", response_model=list[MessageResponse])
async def list_messages(
    chat_id: int,
    session: AsyncSession = Depends(get_session),
) -> list[MessageResponse]:
    if await chat_service.get_chat(session, chat_id) is None:
        raise _chat_not_found(chat_id)
    messages = await chat_service.list_messages(session, chat_id)
    return [MessageResponse.model_validate(m) for m in messages]


@router.post("/chats/{chat_id}/message", response_model=TurnResponse, status_code=201)
async def post_message(
    chat_id: int,
    body: MessageCreate,
    session: AsyncSession = Depends(get_session),
) -> TurnResponse:
    if await chat_service.get_chat(session, chat_id) is None:
        raise _chat_not_found(chat_id)

    turn = await chat_service.handle_message(session, chat_id, body.content)
    return TurnResponse(
        user_message=MessageResponse.model_validate(turn.user_message),
        assistant_message=MessageResponse.model_validate(turn.assistant_message),
    )
