"""Patient data access service."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from healthdesk.models.orm import Patient


async def get_patient_by_id(session: AsyncSession, patient_id: int) -> Patient | None:
    result = await session.execute(select(Patient).where(Patient.id == patient_id))
    return result.scalar_one_or_none()
