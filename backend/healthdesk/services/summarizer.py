"""Single-sentence clinician summary of a chat, refreshed after every turn."""

from __future__ import annotations

import logging
import re

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from healthdesk.llm import gateway
from healthdesk.llm.gateway import GatewayError
from healthdesk.models.orm import Chat, Message
from healthdesk.triage import prompts

logger = logging.getLogger(__name__)

TRANSCRIPT_SIZE = 12
MAX_SUMMARY_CHARS = 180

_FIRST_SENTENCE_RE = re.compile(r"^(.*?[.!?])(?=\s|$)", re.DOTALL)

NARRATION_PHRASES = [
    "clinical summary:",
    "clinical note:",
    "summary:",
    "note:",
    "in this conversation,",
    "in this chat,",
    "based on the conversation,",
    "based on the transcript,",
    "the conversation is about",
    "the chat is about",
    "this chat concerns",
    "it seems that",
    "it appears that",
    "apparently",
    "possibly",
    "probably",
    "perhaps",
]
ADVISORY_WORDS = [r"should(?:n['’]?t|['’]ve)?", r"please\w*", r"\w*recommend\w*"]

_NARRATION_RE = re.compile(
    "|".join(rf"(?<!\w){re.escape(p)}(?!\w)" for p in NARRATION_PHRASES),
    re.IGNORECASE,
)
_ADVISORY_RE = re.compile(
    r"(?<!\w)(?:" + "|".join(ADVISORY_WORDS) + r")(?!\w)", re.IGNORECASE
)
_SPACE_BEFORE_PUNCT_RE = re.compile(r"\s+([,.!?;:])")
_WHITESPACE_RE = re.compile(r"\s+")


def _collapse(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def _truncate_at_word(text: str, limit: int) -> str:
    """Hard-truncate at a word boundary; no ellipsis is added."""
    if len(text) <= limit:
        return text
    cut = text[: limit + 1]
    idx = cut.rfind(" ")
    text = text[:idx] if idx > 0 else text[:limit]
    return text.rstrip(" ,;:-")


def clean_summary(raw: str) -> str:
    """Reduce model output to one short, neutral sentence."""
    text = _collapse(raw).strip("\"'` ")
    if not text:
        return ""

    match = _FIRST_SENTENCE_RE.match(text)
    if match:
        text = match.group(1)

    text = _NARRATION_RE.sub(" ", text)
    text = _ADVISORY_RE.sub(" ", text)
    text = _collapse(text)
    text = _SPACE_BEFORE_PUNCT_RE.sub(r"\1", text)
    text = text.lstrip(" ,;:-")
    if not text or not any(ch.isalnum() for ch in text):
        return ""

    text = text[0].upper() + text[1:]
    return _truncate_at_word(text, MAX_SUMMARY_CHARS)


async def recent_transcript(
    session: AsyncSession, chat_id: int, limit: int = TRANSCRIPT_SIZE
) -> str:
    """The last ``limit`` messages of the chat as text, oldest first."""
    result = await session.execute(
        select(Message)
        .where(Message.chat_id == chat_id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(limit)
    )
    messages = list(reversed(result.scalars().all()))
    return "\n".join(
        f"{'Patient' if m.role == 'user' else 'Assistant'}: {m.content}" for m in messages
    )


async def summarize_chat(session: AsyncSession, chat_id: int, hint: str = "") -> str | None:
    """Recompute and store the chat summary. Returns the stored text, if any.

    ``hint`` is the triage short_summary of the latest message; it is used as
    the summary when the model call fails.
    """
    transcript = await recent_transcript(session, chat_id)
    summary = ""
    try:
        raw = await gateway.generate(
            prompts.SUMMARY_SYSTEM_PROMPT, prompts.summary_user_prompt(transcript, hint)
        )
        summary = clean_summary(raw)
    except GatewayError as e:
        logger.warning("Summary generation failed for chat %d: %s", chat_id, e)

    if not summary:
        summary = clean_summary(hint)
    if not summary:
        logger.debug("No summary produced for chat %d, keeping previous", chat_id)
        return None

    chat = await session.get(Chat, chat_id)
    if chat is None:
        return None
    chat.summary = summary
    await session.commit()
    logger.info("Chat %d summary updated (%d chars)", chat_id, len(summary))
    return summary
