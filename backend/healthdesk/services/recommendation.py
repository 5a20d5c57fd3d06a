"""Turn a triage result into doctors with bookable slots."""

from __future__ import annotations

import datetime
import logging

from healthdesk.config import settings
from healthdesk.models.schemas import DoctorRecommendation, Recommendation, TriageResult
from healthdesk.services.availability import AvailabilityProvider
from healthdesk.triage.specialty import EMERGENCY

logger = logging.getLogger(__name__)


def recommendation_window(
    today: datetime.date | None = None, days: int | None = None
) -> tuple[datetime.date, datetime.date]:
    """Date window starting at the server's UTC date.

    Slots themselves are generated in the clinic timezone, so around midnight
    the window can be a day off from the clinic's calendar.
    """
    start = today or datetime.datetime.now(datetime.UTC).date()
    return start, start + datetime.timedelta(days=days or settings.recommendation_days)


async def assemble_recommendation(
    triage: TriageResult,
    provider: AvailabilityProvider,
    from_date: datetime.date | None = None,
    to_date: datetime.date | None = None,
    per_doctor: int | None = None,
) -> Recommendation | None:
    """Doctors for the triaged specialty with their first open slots.

    Emergencies get no recommendation at all: booking is never offered next
    to an emergency directive.
    """
    if triage.is_emergency or triage.recommended_specialty == EMERGENCY:
        logger.info("Emergency triage: skipping recommendation")
        return None

    if from_date is None or to_date is None:
        from_date, to_date = recommendation_window()
    per_doctor = per_doctor or settings.slots_per_doctor
    specialty = triage.recommended_specialty

    doctors = await provider.find_doctors_by_specialty(specialty)
    recommended = []
    for doctor in doctors:
        slots = await provider.get_open_slots(doctor.id, from_date, to_date)
        recommended.append(
            DoctorRecommendation(
                id=doctor.id,
                name=doctor.name,
                specialty=doctor.specialty,
                bio=doctor.bio,
                slots=slots[:per_doctor],
            )
        )

    logger.info(
        "Recommendation: specialty=%r doctors=%d window=%s..%s",
        specialty,
        len(recommended),
        from_date,
        to_date,
    )
    return Recommendation(
        from_date=from_date.isoformat(),
        to_date=to_date.isoformat(),
        specialty=specialty,
        doctors=recommended,
    )
