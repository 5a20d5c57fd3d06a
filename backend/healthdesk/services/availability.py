"""Doctor lookup and open-slot generation (availability collaborator).

Slots are generated from weekly availability rules in the clinic timezone,
minus BOOKED appointments. Timestamps are stored as naive UTC.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Sequence
from typing import Protocol
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from healthdesk.config import settings
from healthdesk.models.orm import Appointment, Doctor, DoctorAvailability
from healthdesk.models.schemas import Slot

logger = logging.getLogger(__name__)

UTC = datetime.UTC


class AvailabilityProvider(Protocol):
    async def find_doctors_by_specialty(self, specialty: str) -> Sequence[Doctor]: ...

    async def get_open_slots(
        self, doctor_id: int, from_date: datetime.date, to_date: datetime.date
    ) -> list[Slot]: ...


def _minutes(hhmm: str) -> int:
    hh, mm = hhmm.split(":")
    return int(hh) * 60 + int(mm)


def _to_naive_utc(dt: datetime.datetime) -> datetime.datetime:
    return dt.astimezone(UTC).replace(tzinfo=None)


def _iso_utc(dt: datetime.datetime) -> str:
    return dt.astimezone(UTC).isoformat().replace("+00:00", "Z")


class SqlAvailabilityProvider:
    """AvailabilityProvider backed by the doctors/availability/appointments tables."""

    def __init__(self, session: AsyncSession, time_zone: str | None = None) -> None:
        self.session = session
        self.time_zone = time_zone or settings.clinic_timezone

    async def find_doctors_by_specialty(self, specialty: str) -> Sequence[Doctor]:
        result = await self.session.execute(
            select(Doctor)
            .where(Doctor.specialty == specialty)
            .order_by(Doctor.created_at, Doctor.id)
        )
        return result.scalars().all()

    async def get_open_slots(
        self, doctor_id: int, from_date: datetime.date, to_date: datetime.date
    ) -> list[Slot]:
        if to_date < from_date:
            raise ValueError("to_date must be >= from_date")

        tz = ZoneInfo(self.time_zone)
        range_start = datetime.datetime.combine(from_date, datetime.time.min, tzinfo=tz)
        range_end = datetime.datetime.combine(
            to_date + datetime.timedelta(days=1), datetime.time.min, tzinfo=tz
        )

        rules = (
            await self.session.execute(
                select(DoctorAvailability).where(DoctorAvailability.doctor_id == doctor_id)
            )
        ).scalars().all()
        booked = (
            await self.session.execute(
                select(Appointment.start_ts, Appointment.end_ts).where(
                    Appointment.doctor_id == doctor_id,
                    Appointment.status == "BOOKED",
                    Appointment.start_ts < _to_naive_utc(range_end),
                    Appointment.end_ts > _to_naive_utc(range_start),
                )
            )
        ).all()
        booked_intervals = [
            (start.replace(tzinfo=UTC), end.replace(tzinfo=UTC)) for start, end in booked
        ]

        slots: list[tuple[datetime.datetime, Slot]] = []
        for offset in range((to_date - from_date).days + 1):
            day = from_date + datetime.timedelta(days=offset)
            for rule in rules:
                if rule.weekday != day.isoweekday():
                    continue
                cursor = _minutes(rule.start_time)
                end_minutes = _minutes(rule.end_time)
                while cursor + rule.slot_minutes <= end_minutes:
                    local_start = datetime.datetime.combine(
                        day, datetime.time(cursor // 60, cursor % 60), tzinfo=tz
                    )
                    local_end = local_start + datetime.timedelta(minutes=rule.slot_minutes)
                    cursor += rule.slot_minutes

                    start_utc = local_start.astimezone(UTC)
                    end_utc = local_end.astimezone(UTC)
                    if any(start_utc < b_end and end_utc > b_start for b_start, b_end in booked_intervals):
                        continue
                    slots.append(
                        (
                            start_utc,
                            Slot(
                                start_ts=_iso_utc(start_utc),
                                end_ts=_iso_utc(end_utc),
                                local_date=day.isoformat(),
                                local_start=local_start.strftime("%H:%M"),
                                local_end=local_end.strftime("%H:%M"),
                                time_zone=self.time_zone,
                            ),
                        )
                    )

        slots.sort(key=lambda pair: pair[0])
        logger.debug(
            "Doctor %d: %d open slots between %s and %s",
            doctor_id,
            len(slots),
            from_date,
            to_date,
        )
        return [slot for _, slot in slots]
