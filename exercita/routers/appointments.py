import logging
from typing import Annotated, List
from datetime import datetime, timezone
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from exercita.auth import dependencies
from exercita.core.responses import StandardResponse
from exercita.database import get_db
from exercita.models.appointment import Appointment
from exercita.models.enums import AdminPermission, AppointmentStatus
from exercita.models.user import User
from exercita.services import permission_service

logger = logging.getLogger(__name__)

router = APIRouter()

can_manage_appointments = dependencies.PermissionChecker(AdminPermission.MANAGE_APPOINTMENTS)

# Allowed status moves; anything not listed is rejected.
STATUS_TRANSITIONS = {
    AppointmentStatus.SCHEDULED: {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED},
    AppointmentStatus.CONFIRMED: {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED},
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.CANCELLED: set(),
}


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class AppointmentCreate(BaseModel):
    appointment_date: datetime
    notes: str | None = Field(default=None, max_length=1000)

    @field_validator("appointment_date")
    @classmethod
    def validate_future_date(cls, value: datetime) -> datetime:
        value = _as_utc(value)
        if value <= datetime.now(timezone.utc):
            raise ValueError("appointment_date must be in the future")
        return value

class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus
    notes: str | None = Field(default=None, max_length=1000)

class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    appointment_date: datetime
    status: AppointmentStatus
    notes: str | None = None

    @field_validator("appointment_date")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


async def _get_appointment_or_404(db: AsyncSession, appointment_id: uuid.UUID) -> Appointment:
    appointment = await db.get(Appointment, appointment_id)
    if appointment is None:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return appointment


@router.post("", response_model=StandardResponse[AppointmentResponse])
async def book_appointment(
    data: AppointmentCreate,
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    appointment = Appointment(
        user_id=current_user.id,
        appointment_date=data.appointment_date,
        notes=data.notes,
        status=AppointmentStatus.SCHEDULED,
    )
    db.add(appointment)
    await db.commit()
    return StandardResponse(data=AppointmentResponse.model_validate(appointment), message="Appointment booked")


@router.get("/mine", response_model=StandardResponse[List[AppointmentResponse]])
async def list_my_appointments(
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    result = await db.execute(
        select(Appointment)
        .where(Appointment.user_id == current_user.id)
        .order_by(Appointment.appointment_date)
    )
    return StandardResponse(data=[AppointmentResponse.model_validate(a) for a in result.scalars().all()])


@router.get("", response_model=StandardResponse[List[AppointmentResponse]])
async def list_appointments(
    current_user: Annotated[User, Depends(can_manage_appointments)],
    db: Annotated[AsyncSession, Depends(get_db)],
    status: AppointmentStatus | None = Query(None),
):
    stmt = select(Appointment).order_by(Appointment.appointment_date)
    if status:
        stmt = stmt.where(Appointment.status == status)
    result = await db.execute(stmt)
    return StandardResponse(data=[AppointmentResponse.model_validate(a) for a in result.scalars().all()])


@router.patch("/{appointment_id}/status", response_model=StandardResponse[AppointmentResponse])
async def update_appointment_status(
    appointment_id: uuid.UUID,
    data: AppointmentStatusUpdate,
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Staff with manage_appointments may move any appointment; owners may only cancel theirs."""
    appointment = await _get_appointment_or_404(db, appointment_id)

    resolved = await permission_service.resolve_for_user(current_user, db)
    is_staff = resolved.has_permission(AdminPermission.MANAGE_APPOINTMENTS)
    is_owner = appointment.user_id == current_user.id
    if not is_staff and not is_owner:
        raise HTTPException(status_code=404, detail="Appointment not found")
    if not is_staff and data.status != AppointmentStatus.CANCELLED:
        raise HTTPException(status_code=403, detail="Operation not permitted")

    if data.status not in STATUS_TRANSITIONS[appointment.status]:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot move appointment from {appointment.status.value} to {data.status.value}",
        )

    appointment.status = data.status
    if data.notes is not None:
        appointment.notes = data.notes
    await db.commit()
    logger.info("Appointment %s moved to %s by %s", appointment.id, data.status.value, current_user.id)
    return StandardResponse(data=AppointmentResponse.model_validate(appointment), message="Appointment updated")
