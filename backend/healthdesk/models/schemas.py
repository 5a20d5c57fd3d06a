"""Pydantic request/response/error schemas and the triage turn contract."""

from __future__ import annotations

import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from healthdesk.models.rag import DocReference, RetrievedDoc
from healthdesk.triage.specialty import GENERAL_PRACTICE

# --- Triage ---

TriageLevel = Literal["LOW", "MEDIUM", "HIGH"]

DEFAULT_FOLLOW_UP_QUESTIONS = [
    "How long have you had these symptoms?",
    "Do you have any severe symptoms (fever, chest pain, difficulty breathing, bleeding)?",
    "Have you already tried any treatment or had any tests for this?",
]


class TriageResult(BaseModel):
    """Urgency/specialty classification of one patient message.

    Defaults are the safe fallback used whenever the model output is missing,
    unparseable or invalid for a given field.
    """

    triage_level: TriageLevel = "MEDIUM"
    recommended_specialty: str = GENERAL_PRACTICE
    red_flags: list[str] = Field(default_factory=list)
    follow_up_questions: list[str] = Field(
        default_factory=lambda: list(DEFAULT_FOLLOW_UP_QUESTIONS)
    )
    short_summary: str = ""

    @field_validator("triage_level", mode="before")
    @classmethod
    def _normalize_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("recommended_specialty")
    @classmethod
    def _non_empty_specialty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("recommended_specialty must not be empty")
        return value

    @field_validator("red_flags")
    @classmethod
    def _clean_red_flags(cls, value: list[str]) -> list[str]:
        return [flag.strip() for flag in value if flag.strip()]

    @field_validator("follow_up_questions")
    @classmethod
    def _exactly_three(cls, value: list[str]) -> list[str]:
        questions = [q.strip() for q in value if q.strip()]
        if len(questions) < 3:
            raise ValueError("follow_up_questions needs at least 3 items")
        return questions[:3]

    @property
    def is_emergency(self) -> bool:
        return self.triage_level == "HIGH"


# --- Message side-channel (persisted on assistant messages) ---


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EmergencyAction(_CamelModel):
    label: str
    kind: Literal["call", "link"]
    value: str


class TurnMeta(_CamelModel):
    new_issue_detected: bool = False
    guardrails: list[str] = Field(default_factory=list)


class TurnUi(_CamelModel):
    emergency: bool = False
    issue_note: str | None = None
    emergency_actions: list[EmergencyAction] | None = None


class Slot(_CamelModel):
    start_ts: str
    end_ts: str
    local_date: str
    local_start: str
    local_end: str
    time_zone: str


class DoctorRecommendation(BaseModel):
    id: int
    name: str
    specialty: str
    bio: str | None = None
    slots: list[Slot] = Field(default_factory=list)


class Recommendation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_date: str = Field(alias="from")
    to_date: str = Field(alias="to")
    specialty: str
    doctors: list[DoctorRecommendation] = Field(default_factory=list)


class MessageSources(BaseModel):
    docs: list[DocReference] = Field(default_factory=list)
    triage: TriageResult | None = None
    recommendation: Recommendation | None = None
    meta: TurnMeta = Field(default_factory=TurnMeta)
    ui: TurnUi = Field(default_factory=TurnUi)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# --- Chat API schemas ---


class ChatCreate(BaseModel):
    patient_id: int


class ChatResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    summary: str | None
    created_at: datetime.datetime


class MessageCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    content: str = Field(min_length=1, max_length=4000)


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    chat_id: int
    role: Literal["user", "assistant"]
    content: str
    sources: dict[str, Any] | None = None
    created_at: datetime.datetime


class TurnResponse(BaseModel):
    user_message: MessageResponse
    assistant_message: MessageResponse


# --- RAG / recommendation API schemas ---


class RagQueryRequest(BaseModel):
    query: str = Field(min_length=1)
    k: int = Field(default=5, ge=1, le=50)


class RagQueryResponse(BaseModel):
    query: str
    docs: list[RetrievedDoc]


class DocumentResponse(BaseModel):
    id: str
    source: str
    title: str | None
    text: str
    metadata: dict[str, Any]
    created_at: datetime.datetime


class DoctorSlotsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(min_length=1)
    from_date: datetime.date = Field(alias="from")
    to_date: datetime.date = Field(alias="to")
    per_doctor: int = Field(default=5, ge=1, le=20, alias="perDoctor")


class DoctorSlotsResponse(BaseModel):
    query: str
    triage: TriageResult
    recommendation: Recommendation | None


# --- Error schema ---


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: dict = {}
