"""Standalone doctor recommendation endpoint (triage without a chat)."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from healthdesk.database import get_session
from healthdesk.models.schemas import DoctorSlotsRequest, DoctorSlotsResponse, ErrorDetail
from healthdesk.services.availability import SqlAvailabilityProvider
from healthdesk.services.recommendation import assemble_recommendation
from healthdesk.triage.engine import triage_message

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/recommend", tags=["recommend"])


@router.post("/doctor-slots", response_model=DoctorSlotsResponse)
async def recommend_doctor_slots(
    body: DoctorSlotsRequest,
    session: AsyncSession = Depends(get_session),
) -> DoctorSlotsResponse:
    if body.to_date < body.from_date:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(
                code="INVALID_DATE_RANGE",
                message="'to' must be on or after 'from'",
            ).model_dump(),
        )

    logger.info("Doctor-slots recommendation: query=%r", body.query[:100])
    outcome = await triage_message(body.query)
    recommendation = await assemble_recommendation(
        outcome.triage,
        SqlAvailabilityProvider(session),
        from_date=body.from_date,
        to_date=body.to_date,
        per_doctor=body.per_doctor,
    )
    return DoctorSlotsResponse(
        query=body.query, triage=outcome.triage, recommendation=recommendation
    )
