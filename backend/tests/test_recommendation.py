"""Tests for assembling doctor recommendations from a triage result."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from healthdesk.models.orm import Doctor
from healthdesk.models.schemas import Slot, TriageResult
from healthdesk.services.availability import SqlAvailabilityProvider
from healthdesk.services.recommendation import assemble_recommendation, recommendation_window
from healthdesk.triage.specialty import EMERGENCY

MONDAY = datetime.date(2026, 10, 19)


@dataclass
class RecordingProvider:
    """In-memory AvailabilityProvider that records every call."""

    doctors: list[Doctor] = field(default_factory=list)
    slots: list[Slot] = field(default_factory=list)
    calls: list[tuple] = field(default_factory=list)

    async def find_doctors_by_specialty(self, specialty: str) -> list[Doctor]:
        self.calls.append(("find", specialty))
        return [d for d in self.doctors if d.specialty == specialty]

    async def get_open_slots(
        self, doctor_id: int, from_date: datetime.date, to_date: datetime.date
    ) -> list[Slot]:
        self.calls.append(("slots", doctor_id, from_date, to_date))
        return list(self.slots)


def _slot(hour: int) -> Slot:
    return Slot(
        start_ts=f"2026-10-19T{hour:02d}:00:00Z",
        end_ts=f"2026-10-19T{hour:02d}:30:00Z",
        local_date="2026-10-19",
        local_start=f"{hour + 2:02d}:00",
        local_end=f"{hour + 2:02d}:30",
        time_zone="Europe/Rome",
    )


def test_window_is_seven_days_from_today() -> None:
    assert recommendation_window(MONDAY) == (MONDAY, datetime.date(2026, 10, 26))
    assert recommendation_window(MONDAY, days=3)[1] == datetime.date(2026, 10, 22)


async def test_emergency_gets_no_recommendation() -> None:
    provider = RecordingProvider()
    triage = TriageResult(triage_level="HIGH", recommended_specialty=EMERGENCY)

    assert await assemble_recommendation(triage, provider) is None
    assert provider.calls == []


async def test_doctors_with_capped_slots() -> None:
    provider = RecordingProvider(
        doctors=[Doctor(id=7, name="Dr. Bianchi", specialty="Dermatology", bio="Skin")],
        slots=[_slot(h) for h in range(7, 14)],
    )
    triage = TriageResult(triage_level="LOW", recommended_specialty="Dermatology")

    recommendation = await assemble_recommendation(
        triage, provider, from_date=MONDAY, to_date=MONDAY, per_doctor=2
    )

    assert recommendation is not None
    assert recommendation.specialty == "Dermatology"
    assert recommendation.from_date == "2026-10-19"
    assert recommendation.to_date == "2026-10-19"
    assert [d.id for d in recommendation.doctors] == [7]
    assert [s.start_ts for s in recommendation.doctors[0].slots] == [
        "2026-10-19T07:00:00Z",
        "2026-10-19T08:00:00Z",
    ]
    assert ("slots", 7, MONDAY, MONDAY) in provider.calls


async def test_no_doctors_for_specialty() -> None:
    triage = TriageResult(triage_level="MEDIUM", recommended_specialty="Ophthalmology")
    recommendation = await assemble_recommendation(triage, RecordingProvider(), MONDAY, MONDAY)
    assert recommendation is not None
    assert recommendation.doctors == []


async def test_serializes_with_from_to_keys() -> None:
    triage = TriageResult(triage_level="LOW", recommended_specialty="Neurology")
    recommendation = await assemble_recommendation(triage, RecordingProvider(), MONDAY, MONDAY)
    dumped = recommendation.model_dump(by_alias=True)
    assert dumped["from"] == "2026-10-19"
    assert dumped["to"] == "2026-10-19"


async def test_with_sql_provider(session: AsyncSession, seed_doctors: list[Doctor]) -> None:
    triage = TriageResult(triage_level="MEDIUM", recommended_specialty="General Practice")
    recommendation = await assemble_recommendation(
        triage, SqlAvailabilityProvider(session), MONDAY, MONDAY + datetime.timedelta(days=6)
    )
    assert [d.name for d in recommendation.doctors] == ["Dr. Gina Rossi"]
    assert len(recommendation.doctors[0].slots) == 5
    assert recommendation.doctors[0].slots[0].local_start == "09:00"
