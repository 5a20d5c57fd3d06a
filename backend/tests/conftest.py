"""Test fixtures and configuration."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable

import pytest
from httpx import ASGITransport, AsyncClient
from qdrant_client import AsyncQdrantClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from healthdesk.database import get_session
from healthdesk.llm import gateway
from healthdesk.main import app
from healthdesk.models.orm import Base, Doctor, DoctorAvailability, Patient
from healthdesk.services import vector_store
from healthdesk.triage import prompts

test_engine = create_async_engine("sqlite+aiosqlite://", echo=False)
test_session_factory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)


async def override_get_session() -> AsyncIterator[AsyncSession]:
    async with test_session_factory() as session:
        yield session


app.dependency_overrides[get_session] = override_get_session


@pytest.fixture(autouse=True)
async def setup_database() -> AsyncIterator[None]:
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def session() -> AsyncIterator[AsyncSession]:
    async with test_session_factory() as s:
        yield s


@pytest.fixture
def session_factory() -> async_sessionmaker[AsyncSession]:
    return test_session_factory


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def seed_patient() -> Patient:
    async with test_session_factory() as session:
        patient = Patient(name="Test Patient", email="test.patient@example.com")
        session.add(patient)
        await session.commit()
        await session.refresh(patient)
        return patient


@pytest.fixture
async def seed_doctors() -> list[Doctor]:
    """One General Practice and one Cardiology doctor, Mon-Fri 09:00-12:00."""
    async with test_session_factory() as session:
        doctors = []
        for name, specialty in [("Dr. Gina Rossi", "General Practice"), ("Dr. Carlo Neri", "Cardiology")]:
            doctor = Doctor(name=name, specialty=specialty, bio=f"{specialty} doctor")
            doctor.availability = [
                DoctorAvailability(weekday=wd, start_time="09:00", end_time="12:00", slot_minutes=30)
                for wd in range(1, 6)
            ]
            session.add(doctor)
            doctors.append(doctor)
        await session.commit()
        for doctor in doctors:
            await session.refresh(doctor)
        return doctors


# --- External services ---


@pytest.fixture
async def in_memory_qdrant(monkeypatch: pytest.MonkeyPatch) -> AsyncIterator[AsyncQdrantClient]:
    """Use in-memory Qdrant for tests."""
    client = AsyncQdrantClient(":memory:")
    monkeypatch.setattr(vector_store, "_qdrant_client", client)
    monkeypatch.setattr(vector_store, "get_qdrant_client", lambda: client)
    yield client
    await client.close()


Reply = str | Exception | Callable[[str], str]


class FakeLLM:
    """Stands in for ``gateway.generate``, answering by system prompt.

    A reply is a string, an exception to raise, or a callable taking the
    user prompt. Every call is recorded in ``calls``.
    """

    def __init__(self) -> None:
        self.replies: dict[str, Reply] = {
            prompts.TRIAGE_SYSTEM_PROMPT: (
                '{"triage_level": "LOW", "recommended_specialty": "General Practice", '
                '"red_flags": [], "follow_up_questions": ["a?", "b?", "c?"], '
                '"short_summary": "Patient reports a minor complaint."}'
            ),
            prompts.ANSWER_SYSTEM_PROMPT: '{"answer": "General information about your symptoms."}',
            prompts.CONTINUITY_SYSTEM_PROMPT: '{"same_issue": true}',
            prompts.SUMMARY_SYSTEM_PROMPT: "Patient reports a minor complaint.",
        }
        self.calls: list[tuple[str, str]] = []

    def set(self, system_prompt: str, reply: Reply) -> None:
        self.replies[system_prompt] = reply

    def calls_for(self, system_prompt: str) -> list[str]:
        return [user for system, user in self.calls if system == system_prompt]

    async def __call__(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        reply = self.replies[system_prompt]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(user_prompt)
        return reply


@pytest.fixture
def fake_llm(monkeypatch: pytest.MonkeyPatch) -> FakeLLM:
    llm = FakeLLM()
    monkeypatch.setattr(gateway, "generate", llm)
    return llm


def keyword_vector(text: str) -> list[float]:
    """Tiny deterministic embedding: one dimension per topic keyword."""
    lowered = text.lower()
    keywords = ["headache", "stomach", "chest", "skin"]
    vector = [1.0 if k in lowered else 0.0 for k in keywords]
    vector.append(0.1)
    return vector


@pytest.fixture
def fake_embed(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    """Patch ``gateway.embed`` with ``keyword_vector``; returns the embedded texts."""
    seen: list[str] = []

    async def embed(text: str, *, task: str = "document") -> list[float]:
        seen.append(text)
        return keyword_vector(text)

    monkeypatch.setattr(gateway, "embed", embed)
    return seen
