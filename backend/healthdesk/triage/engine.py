"""Two-pass triage protocol: classify, guardrail, then answer from context."""

from __future__ import annotations

import json
import logging

from pydantic import BaseModel, field_validator

from healthdesk.config import settings
from healthdesk.llm import gateway
from healthdesk.llm.gateway import GatewayError
from healthdesk.llm.parsing import ParseFailed, parse_model_output
from healthdesk.models.rag import RetrievedDoc
from healthdesk.models.schemas import EmergencyAction, TriageResult
from healthdesk.services.retriever import build_context
from healthdesk.triage import prompts
from healthdesk.triage.guardrails import GuardrailOutcome, apply_guardrails
from healthdesk.triage.specialty import normalize_specialty

logger = logging.getLogger(__name__)


class AnswerPayload(BaseModel):
    answer: str = ""

    @field_validator("answer")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("answer must not be empty")
        return value


async def classify(message: str) -> TriageResult:
    """Pass 1: urgency, specialty and red flags from the raw message alone."""
    defaults = TriageResult()
    try:
        raw = await gateway.generate(
            prompts.TRIAGE_SYSTEM_PROMPT, prompts.triage_user_prompt(message)
        )
    except GatewayError as e:
        logger.warning("Triage pass failed (status=%s), using defaults: %s", e.status_code, e)
        return defaults

    result = parse_model_output(raw, defaults)
    if isinstance(result, ParseFailed):
        logger.warning("Triage output unparseable (%s), using defaults", result.reason)
        return defaults

    triage = result.value
    normalized = normalize_specialty(triage.recommended_specialty)
    logger.info(
        "Triage pass: level=%s specialty=%r -> %r red_flags=%d",
        triage.triage_level,
        triage.recommended_specialty,
        normalized,
        len(triage.red_flags),
    )
    return triage.model_copy(update={"recommended_specialty": normalized})


async def triage_message(message: str) -> GuardrailOutcome:
    """Pass 1 followed by the deterministic guardrail layer."""
    triage = await classify(message)
    return apply_guardrails(triage, message)


async def answer(message: str, triage: TriageResult, docs: list[RetrievedDoc]) -> str:
    """Pass 2: grounded answer using retrieved context and the triage result."""
    triage_json = json.dumps(
        triage.model_dump(include={"triage_level", "recommended_specialty", "red_flags"})
    )
    user_prompt = prompts.answer_user_prompt(message, triage_json, build_context(docs))
    try:
        raw = await gateway.generate(prompts.ANSWER_SYSTEM_PROMPT, user_prompt)
    except GatewayError as e:
        logger.warning("Answer pass failed (status=%s): %s", e.status_code, e)
        return prompts.ANSWER_FALLBACK_MESSAGE

    result = parse_model_output(raw, AnswerPayload())
    if isinstance(result, ParseFailed) or "answer" in result.rejected_keys:
        logger.warning("Answer output unparseable, using fallback message")
        return prompts.ANSWER_FALLBACK_MESSAGE
    if not result.value.answer:
        return prompts.ANSWER_FALLBACK_MESSAGE
    return result.value.answer


def emergency_message() -> str:
    return prompts.EMERGENCY_MESSAGE.format(number=settings.emergency_number)


def emergency_actions() -> list[EmergencyAction]:
    return [
        EmergencyAction(
            label=f"Call emergency services ({settings.emergency_number})",
            kind="call",
            value=settings.emergency_number,
        ),
        EmergencyAction(
            label="Find the nearest emergency department",
            kind="link",
            value="https://www.google.com/maps/search/emergency+department",
        ),
    ]
