"""Chat turn orchestration: the retrieval-augmented triage pipeline.

One turn walks RECEIVED -> CONTINUITY_CHECKED -> TRIAGED -> GUARDRAILED ->
RETRIEVED (skipped for HIGH urgency) -> ANSWERED -> PERSISTED, strictly in
sequence. Model failures inside a step fall back to safe defaults; only
failing to persist a message aborts the turn.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import weakref
from collections.abc import Sequence
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from healthdesk.config import settings
from healthdesk.models.orm import Chat, Message
from healthdesk.models.rag import DocReference, RetrievedDoc
from healthdesk.models.schemas import (
    MessageSources,
    Recommendation,
    TriageResult,
    TurnMeta,
    TurnUi,
)
from healthdesk.services import retriever
from healthdesk.services.availability import AvailabilityProvider, SqlAvailabilityProvider
from healthdesk.services.continuity import detect_new_issue
from healthdesk.services.recommendation import assemble_recommendation
from healthdesk.services.summarizer import summarize_chat
from healthdesk.triage import engine, prompts
from healthdesk.triage.guardrails import apply_guardrails

logger = logging.getLogger(__name__)


class TurnState(enum.StrEnum):
    RECEIVED = "RECEIVED"
    CONTINUITY_CHECKED = "CONTINUITY_CHECKED"
    TRIAGED = "TRIAGED"
    GUARDRAILED = "GUARDRAILED"
    RETRIEVED = "RETRIEVED"
    ANSWERED = "ANSWERED"
    PERSISTED = "PERSISTED"


@dataclass
class ChatTurn:
    """State carried through one user message -> assistant message turn."""

    chat_id: int
    content: str
    state: TurnState = TurnState.RECEIVED
    user_message: Message | None = None
    assistant_message: Message | None = None
    new_issue: bool = False
    triage: TriageResult = field(default_factory=TriageResult)
    guardrails: list[str] = field(default_factory=list)
    docs: list[RetrievedDoc] = field(default_factory=list)
    answer: str = ""
    recommendation: Recommendation | None = None

    def advance(self, state: TurnState) -> None:
        logger.debug("Chat %d turn: %s -> %s", self.chat_id, self.state, state)
        self.state = state

    def sources(self) -> MessageSources:
        emergency = self.triage.is_emergency
        return MessageSources(
            docs=[
                DocReference(id=d.id, source=d.source, title=d.title, score=d.score)
                for d in self.docs
            ],
            triage=self.triage,
            recommendation=self.recommendation,
            meta=TurnMeta(new_issue_detected=self.new_issue, guardrails=self.guardrails),
            ui=TurnUi(
                emergency=emergency,
                issue_note=prompts.NEW_ISSUE_NOTE if self.new_issue else None,
                emergency_actions=engine.emergency_actions() if emergency else None,
            ),
        )


# Turns of the same chat run one at a time within this process.
_chat_locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()


def _chat_lock(chat_id: int) -> asyncio.Lock:
    lock = _chat_locks.get(chat_id)
    if lock is None:
        lock = asyncio.Lock()
        _chat_locks[chat_id] = lock
    return lock


# --- Data access ---


async def get_chat(session: AsyncSession, chat_id: int) -> Chat | None:
    return await session.get(Chat, chat_id)


async def create_chat(session: AsyncSession, patient_id: int) -> Chat:
    chat = Chat(patient_id=patient_id)
    session.add(chat)
    await session.commit()
    await session.refresh(chat)
    return chat


async def list_chats(session: AsyncSession, patient_id: int) -> Sequence[Chat]:
    result = await session.execute(
        select(Chat)
        .where(Chat.patient_id == patient_id)
        .order_by(Chat.created_at.desc(), Chat.id.desc())
    )
    return result.scalars().all()


async def list_messages(session: AsyncSession, chat_id: int) -> Sequence[Message]:
    result = await session.execute(
        select(Message)
        .where(Message.chat_id == chat_id)
        .order_by(Message.created_at, Message.id)
    )
    return result.scalars().all()


async def _persist_message(
    session: AsyncSession,
    chat_id: int,
    role: str,
    content: str,
    sources: dict | None = None,
) -> Message:
    message = Message(chat_id=chat_id, role=role, content=content, sources=sources)
    session.add(message)
    await session.commit()
    await session.refresh(message)
    return message


# --- Pipeline ---


async def handle_message(
    session: AsyncSession,
    chat_id: int,
    content: str,
    provider: AvailabilityProvider | None = None,
) -> ChatTurn:
    """Run one full chat turn and return its final state."""
    async with _chat_lock(chat_id):
        turn = ChatTurn(chat_id=chat_id, content=content)
        await _run_turn(session, turn, provider or SqlAvailabilityProvider(session))
        await _refresh_summary(session, turn)
        return turn


async def _run_turn(
    session: AsyncSession, turn: ChatTurn, provider: AvailabilityProvider
) -> None:
    logger.info("=== Chat %d turn: %r ===", turn.chat_id, turn.content[:100])
    turn.user_message = await _persist_message(session, turn.chat_id, "user", turn.content)

    turn.new_issue = await detect_new_issue(
        session, turn.chat_id, turn.content, exclude_id=turn.user_message.id
    )
    turn.advance(TurnState.CONTINUITY_CHECKED)

    model_triage = await engine.classify(turn.content)
    turn.advance(TurnState.TRIAGED)

    outcome = apply_guardrails(model_triage, turn.content)
    turn.triage = outcome.triage
    turn.guardrails = outcome.applied
    turn.advance(TurnState.GUARDRAILED)

    if turn.triage.is_emergency:
        turn.answer = engine.emergency_message()
    else:
        turn.docs = await retriever.retrieve(turn.content, settings.retrieval_top_k)
        turn.advance(TurnState.RETRIEVED)
        turn.answer = await engine.answer(turn.content, turn.triage, turn.docs)
    turn.advance(TurnState.ANSWERED)

    turn.recommendation = await assemble_recommendation(turn.triage, provider)

    turn.assistant_message = await _persist_message(
        session,
        turn.chat_id,
        "assistant",
        turn.answer,
        sources=turn.sources().to_json(),
    )
    turn.advance(TurnState.PERSISTED)
    logger.info(
        "Chat %d turn persisted: level=%s specialty=%s docs=%d new_issue=%s",
        turn.chat_id,
        turn.triage.triage_level,
        turn.triage.recommended_specialty,
        len(turn.docs),
        turn.new_issue,
    )


async def _refresh_summary(session: AsyncSession, turn: ChatTurn) -> None:
    """Best effort: a failing summary never fails the turn."""
    try:
        await summarize_chat(session, turn.chat_id, hint=turn.triage.short_summary)
    except Exception:
        logger.exception("Summary update failed for chat %d", turn.chat_id)
