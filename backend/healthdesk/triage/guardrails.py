"""Deterministic safety guardrails applied after the triage pass.

Rules are plain substring checks on the lowercased patient message. They are
evaluated in order; an escalation rule that matches stops evaluation so no
benign rule can undo it. Benign rules only fire when none of their red-flag
phrases is present.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from healthdesk.models.schemas import TriageResult
from healthdesk.triage.specialty import EMERGENCY, GENERAL_PRACTICE

logger = logging.getLogger(__name__)

Predicate = Callable[[str], bool]
Override = Callable[[TriageResult, str], TriageResult]


@dataclass(frozen=True)
class GuardrailRule:
    name: str
    predicate: Predicate
    apply: Override
    escalates: bool
    stop: bool = False


@dataclass
class GuardrailOutcome:
    triage: TriageResult
    applied: list[str] = field(default_factory=list)


# --- Phrase lists ---

EMERGENCY_PHRASE_PAIRS: list[tuple[str, str]] = [
    ("chest pain", "shortness of breath"),
    ("chest pain", "short of breath"),
    ("chest pain", "difficulty breathing"),
    ("chest pain", "sweating"),
    ("chest pain", "left arm"),
    ("chest pressure", "shortness of breath"),
    ("headache", "stiff neck"),
    ("head injury", "vomiting"),
    ("face drooping", "weakness"),
]

SEVERE_INJURY_PHRASES = [
    "severe bleeding",
    "bleeding won't stop",
    "bleeding that won't stop",
    "can't breathe",
    "cannot breathe",
    "unconscious",
    "passed out",
    "seizure",
    "slurred speech",
    "coughing up blood",
    "vomiting blood",
    "broken bone sticking out",
    "hit by a car",
    "severe burn",
    "suicidal",
    "overdose",
    "throat closing",
]

MILD_HEADACHE_PHRASES = ["mild headache", "slight headache", "light headache", "minor headache"]

HEADACHE_RED_FLAGS = [
    "stiff neck",
    "confusion",
    "confused",
    "head injury",
    "hit my head",
    "fever",
    "worst headache",
    "sudden",
    "thunderclap",
    "vision",
    "weakness",
    "numbness",
    "slurred",
    "seizure",
    "faint",
    "vomiting",
    "pregnan",
]

MILD_DIGESTIVE_PHRASES = [
    "mild stomach pain",
    "mild abdominal pain",
    "mild stomach ache",
    "mild stomachache",
    "slight stomach pain",
    "upset stomach",
    "mild nausea",
    "mild indigestion",
    "mild bloating",
]

DIGESTIVE_RED_FLAGS = [
    "severe",
    "blood",
    "black stool",
    "tarry",
    "fever",
    "vomiting",
    "rigid",
    "can't keep",
    "dehydrat",
    "pregnan",
    "chest pain",
    "faint",
    "worsening",
    "jaundice",
    "yellow skin",
]

MILD_HEADACHE_QUESTIONS = [
    "How long has the headache lasted, and is it getting better or worse?",
    "Have you had enough sleep, water and food today?",
    "Does it improve with rest or a common pain reliever?",
]

MILD_DIGESTIVE_QUESTIONS = [
    "When did the discomfort start, and is it related to meals?",
    "Have you noticed any changes in your bowel movements?",
    "Does it improve with rest, fluids or light meals?",
]


def _contains_any(text: str, phrases: Sequence[str]) -> bool:
    return any(p in text for p in phrases)


def _contains_pair(text: str) -> tuple[str, str] | None:
    for first, second in EMERGENCY_PHRASE_PAIRS:
        if first in text and second in text:
            return first, second
    return None


# --- Overrides ---


def _force_emergency(reason: str) -> Override:
    def apply(triage: TriageResult, text: str) -> TriageResult:
        red_flags = list(triage.red_flags)
        if reason not in red_flags:
            red_flags.insert(0, reason)
        return triage.model_copy(
            update={
                "triage_level": "HIGH",
                "recommended_specialty": EMERGENCY,
                "red_flags": red_flags,
            }
        )

    return apply


def _phrase_pair_override(triage: TriageResult, text: str) -> TriageResult:
    pair = _contains_pair(text)
    reason = f"{pair[0].capitalize()} with {pair[1]}" if pair else "Danger sign pattern"
    return _force_emergency(reason)(triage, text)


def _severe_injury_override(triage: TriageResult, text: str) -> TriageResult:
    phrase = next((p for p in SEVERE_INJURY_PHRASES if p in text), "severe symptom")
    return _force_emergency(phrase.capitalize())(triage, text)


def _force_mild(questions: list[str]) -> Override:
    def apply(triage: TriageResult, text: str) -> TriageResult:
        return triage.model_copy(
            update={
                "triage_level": "LOW",
                "recommended_specialty": GENERAL_PRACTICE,
                "red_flags": [],
                "follow_up_questions": list(questions),
            }
        )

    return apply


def _consistency_override(triage: TriageResult, text: str) -> TriageResult:
    return triage.model_copy(
        update={"triage_level": "HIGH", "recommended_specialty": EMERGENCY}
    )


DEFAULT_RULES: list[GuardrailRule] = [
    GuardrailRule(
        name="emergency_phrase_pair",
        predicate=lambda text: _contains_pair(text) is not None,
        apply=_phrase_pair_override,
        escalates=True,
        stop=True,
    ),
    GuardrailRule(
        name="severe_injury",
        predicate=lambda text: _contains_any(text, SEVERE_INJURY_PHRASES),
        apply=_severe_injury_override,
        escalates=True,
        stop=True,
    ),
    GuardrailRule(
        name="mild_headache",
        predicate=lambda text: _contains_any(text, MILD_HEADACHE_PHRASES)
        and not _contains_any(text, HEADACHE_RED_FLAGS),
        apply=_force_mild(MILD_HEADACHE_QUESTIONS),
        escalates=False,
        stop=True,
    ),
    GuardrailRule(
        name="mild_digestive",
        predicate=lambda text: _contains_any(text, MILD_DIGESTIVE_PHRASES)
        and not _contains_any(text, DIGESTIVE_RED_FLAGS),
        apply=_force_mild(MILD_DIGESTIVE_QUESTIONS),
        escalates=False,
        stop=True,
    ),
]


def _needs_consistency(triage: TriageResult) -> bool:
    return (triage.triage_level == "HIGH") != (
        triage.recommended_specialty == EMERGENCY
    )


def apply_guardrails(
    triage: TriageResult,
    message: str,
    rules: Sequence[GuardrailRule] | None = None,
) -> GuardrailOutcome:
    """Run the rule set over ``message`` and return the adjusted triage."""
    text = message.lower()
    outcome = GuardrailOutcome(triage=triage)

    for rule in DEFAULT_RULES if rules is None else rules:
        if not rule.predicate(text):
            continue
        if not rule.escalates and outcome.triage.triage_level == "HIGH":
            logger.warning(
                "Guardrail %s downgrading model-asserted HIGH (red_flags=%s)",
                rule.name,
                outcome.triage.red_flags,
            )
        outcome.triage = rule.apply(outcome.triage, text)
        outcome.applied.append(rule.name)
        logger.info(
            "Guardrail %s applied -> %s/%s",
            rule.name,
            outcome.triage.triage_level,
            outcome.triage.recommended_specialty,
        )
        if rule.stop:
            break

    # HIGH and EMERGENCY imply each other; this can only escalate.
    if _needs_consistency(outcome.triage):
        outcome.triage = _consistency_override(outcome.triage, text)
        outcome.applied.append("emergency_consistency")

    return outcome
