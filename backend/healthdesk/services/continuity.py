"""Issue-continuity detection: is a new message about a different concern?"""

from __future__ import annotations

import logging

from pydantic import BaseModel, StrictBool
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from healthdesk.llm import gateway
from healthdesk.llm.gateway import GatewayError
from healthdesk.llm.parsing import ParseFailed, parse_model_output
from healthdesk.models.orm import Message
from healthdesk.triage import prompts

logger = logging.getLogger(__name__)

HISTORY_SIZE = 3


class ContinuityVerdict(BaseModel):
    same_issue: StrictBool | None = None


async def previous_user_messages(
    session: AsyncSession,
    chat_id: int,
    exclude_id: int | None = None,
    limit: int = HISTORY_SIZE,
) -> list[str]:
    """Last ``limit`` user messages of the chat, oldest first."""
    stmt = select(Message.content).where(Message.chat_id == chat_id, Message.role == "user")
    if exclude_id is not None:
        stmt = stmt.where(Message.id != exclude_id)
    stmt = stmt.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit)
    result = await session.execute(stmt)
    return list(reversed(result.scalars().all()))


async def detect_new_issue(
    session: AsyncSession,
    chat_id: int,
    message: str,
    exclude_id: int | None = None,
) -> bool:
    """True only when the model explicitly says the message is a different issue.

    No history, gateway failures and unparseable output all mean continuity.
    """
    previous = await previous_user_messages(session, chat_id, exclude_id)
    if not previous:
        return False

    try:
        raw = await gateway.generate(
            prompts.CONTINUITY_SYSTEM_PROMPT,
            prompts.continuity_user_prompt(previous, message),
        )
    except GatewayError as e:
        logger.warning("Continuity check failed, assuming same issue: %s", e)
        return False

    result = parse_model_output(raw, ContinuityVerdict())
    if isinstance(result, ParseFailed):
        logger.debug("Continuity output unparseable, assuming same issue")
        return False

    new_issue = result.value.same_issue is False
    logger.info("Continuity check for chat %d: new_issue=%s", chat_id, new_issue)
    return new_issue
