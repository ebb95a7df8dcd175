import logging
from typing import Annotated, Dict, List
from datetime import date, datetime
from zoneinfo import ZoneInfo
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from exercita.auth import dependencies
from exercita.core.responses import StandardResponse
from exercita.database import get_db
from exercita.models.enums import AdminPermission
from exercita.models.user import User
from exercita.routers.progress import get_request_timezone
from exercita.services import symptom_service
from exercita.services.symptom_service import Trend

logger = logging.getLogger(__name__)

router = APIRouter()

can_view_analytics = dependencies.PermissionChecker(AdminPermission.VIEW_ANALYTICS)

# Look-back window in days, counted back from today in the request timezone.
PeriodQuery = Annotated[int, Query(ge=1, le=365)]


class SymptomEntryCreate(BaseModel):
    pain_level: int = Field(ge=0, le=10)
    stiffness_level: int = Field(ge=0, le=10)
    fatigue_level: int = Field(ge=0, le=10)
    notes: str | None = Field(default=None, max_length=1000)

class SymptomEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    day: date
    pain_level: int
    stiffness_level: int
    fatigue_level: int
    notes: str | None = None

class SymptomSummaryResponse(BaseModel):
    timezone: str
    period_days: int
    since: date
    entry_count: int
    averages: Dict[str, int]
    trends: Dict[str, Trend] | None = None
    latest: SymptomEntryResponse | None = None


async def _summary(user_id: uuid.UUID, db: AsyncSession, zone: ZoneInfo, period: int) -> SymptomSummaryResponse:
    since = symptom_service.period_start(datetime.now(zone), zone, period)
    summary = symptom_service.summarize(await symptom_service.load_symptoms(user_id, db, since=since))
    return SymptomSummaryResponse(
        timezone=str(zone),
        period_days=period,
        since=since,
        entry_count=summary.entry_count,
        averages=summary.averages,
        trends=summary.trends,
        latest=SymptomEntryResponse.model_validate(summary.latest) if summary.latest else None,
    )


@router.put("/today", response_model=StandardResponse[SymptomEntryResponse])
async def record_today(
    data: SymptomEntryCreate,
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    zone: Annotated[ZoneInfo, Depends(get_request_timezone)],
):
    """Record today's symptoms; a second check-in on the same local day replaces the first."""
    entry, created = await symptom_service.record_today(current_user.id, db, tz=zone, **data.model_dump())
    return StandardResponse(
        data=SymptomEntryResponse.model_validate(entry),
        message="Symptoms recorded" if created else "Symptoms updated",
    )


@router.get("", response_model=StandardResponse[List[SymptomEntryResponse]])
async def list_my_symptoms(
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    zone: Annotated[ZoneInfo, Depends(get_request_timezone)],
    period: PeriodQuery = 7,
):
    since = symptom_service.period_start(datetime.now(zone), zone, period)
    entries = await symptom_service.load_symptoms(current_user.id, db, since=since)
    return StandardResponse(data=[SymptomEntryResponse.model_validate(e) for e in entries])


@router.get("/summary", response_model=StandardResponse[SymptomSummaryResponse])
async def get_my_symptom_summary(
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    zone: Annotated[ZoneInfo, Depends(get_request_timezone)],
    period: PeriodQuery = 7,
):
    return StandardResponse(data=await _summary(current_user.id, db, zone, period))


@router.get("/users/{user_id}/summary", response_model=StandardResponse[SymptomSummaryResponse])
async def get_patient_symptom_summary(
    user_id: uuid.UUID,
    current_user: Annotated[User, Depends(can_view_analytics)],
    db: Annotated[AsyncSession, Depends(get_db)],
    zone: Annotated[ZoneInfo, Depends(get_request_timezone)],
    period: PeriodQuery = 7,
):
    """Symptom summary of one patient, for staff holding view_analytics."""
    if await db.get(User, user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    return StandardResponse(data=await _summary(user_id, db, zone, period))
