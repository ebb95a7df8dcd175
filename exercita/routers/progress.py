from typing import Annotated, List
from datetime import date, datetime
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from exercita.auth import dependencies
from exercita.core.responses import StandardResponse
from exercita.database import get_db
from exercita.models.user import User
from exercita.services import progress_service, timezone_service
from exercita.services.progress_service import DayClass

router = APIRouter()


class ProgressStatsResponse(BaseModel):
    timezone: str
    reference_date: date
    completed_dates: List[date]
    current_streak: int
    total_this_month: int
    this_week_count: int

class CalendarDayResponse(BaseModel):
    day: date
    day_class: DayClass

class CalendarResponse(BaseModel):
    timezone: str
    year: int
    month: int
    leading_blank_days: int
    days: List[CalendarDayResponse]


def get_request_timezone(
    tz: str | None = Query(None, description="IANA timezone used to bucket days"),
) -> ZoneInfo:
    try:
        return timezone_service.parse_timezone(tz)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/stats", response_model=StandardResponse[ProgressStatsResponse])
async def get_my_progress_stats(
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    zone: Annotated[ZoneInfo, Depends(get_request_timezone)],
):
    """Streak and month/week workout counts for the current user."""
    now = datetime.now(zone)
    stats, _ = await progress_service.get_user_progress(current_user.id, db, tz=zone, reference_now=now)
    return StandardResponse(
        data=ProgressStatsResponse(
            timezone=str(zone),
            reference_date=now.date(),
            completed_dates=sorted(stats.completed_dates),
            current_streak=stats.current_streak,
            total_this_month=stats.total_this_month,
            this_week_count=stats.this_week_count,
        )
    )


@router.get("/calendar", response_model=StandardResponse[CalendarResponse])
async def get_my_progress_calendar(
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    zone: Annotated[ZoneInfo, Depends(get_request_timezone)],
):
    """Current month laid out Sunday-first, each day tagged for display."""
    _, month = await progress_service.get_user_progress(current_user.id, db, tz=zone)
    return StandardResponse(
        data=CalendarResponse(
            timezone=str(zone),
            year=month.year,
            month=month.month,
            leading_blank_days=month.leading_blank_days,
            days=[CalendarDayResponse(day=cell.day, day_class=cell.day_class) for cell in month.days],
        )
    )
