import logging
from typing import Annotated, List
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import delete, select
from pydantic import BaseModel, EmailStr
import uuid

from exercita.database import get_db
from exercita.auth import dependencies
from exercita.auth.schemas import UserResponse
from exercita.models.admin import AdminPermissionGrant
from exercita.models.user import User
from exercita.models.enums import AdminPermission, Role
from exercita.core.responses import StandardResponse
from exercita.services import permission_service

logger = logging.getLogger(__name__)

router = APIRouter()

can_manage_users = dependencies.PermissionChecker(AdminPermission.MANAGE_USERS)

class UserUpdate(BaseModel):
    full_name: str | None = None
    email: EmailStr | None = None
    role: Role | None = None
    is_active: bool | None = None


async def _get_user_or_404(db: AsyncSession, user_id: uuid.UUID) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("", response_model=StandardResponse[List[UserResponse]])
async def list_users(
    current_user: Annotated[User, Depends(can_manage_users)],
    db: Annotated[AsyncSession, Depends(get_db)],
    search: str | None = Query(None, max_length=100),
    include_inactive: bool = Query(False),
):
    stmt = select(User).order_by(User.email)
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(User.email.ilike(pattern) | User.full_name.ilike(pattern))
    if not include_inactive:
        stmt = stmt.where(User.is_active.is_(True))
    result = await db.execute(stmt)
    return StandardResponse(data=[UserResponse.model_validate(u) for u in result.scalars().all()])


def _ensure_can_edit(current_user: User, user: User) -> None:
    """Staff accounts other than your own are editable by super admins only."""
    if user.id != current_user.id and user.is_admin and current_user.role != Role.SUPER_ADMIN:
        raise HTTPException(status_code=403, detail="Only super admins can edit admin accounts")


@router.put("/{user_id}", response_model=StandardResponse[UserResponse])
async def update_user(
    user_id: uuid.UUID,
    data: UserUpdate,
    current_user: Annotated[User, Depends(can_manage_users)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Admin updates user details. Only super-admins may change roles or edit staff accounts."""
    user = await _get_user_or_404(db, user_id)
    _ensure_can_edit(current_user, user)
    update_data = data.model_dump(exclude_unset=True)

    if user.role == Role.SUPER_ADMIN and user.id != current_user.id:
        if update_data.get("is_active") is False:
            raise HTTPException(status_code=400, detail="Super admins cannot be deactivated")
        if "email" in update_data and update_data["email"] != user.email:
            raise HTTPException(status_code=400, detail="A super admin's email can only be changed by that super admin")

    new_role = update_data.get("role")
    role_changed = new_role is not None and new_role != user.role
    if role_changed:
        if current_user.role != Role.SUPER_ADMIN:
            raise HTTPException(status_code=403, detail="Only super admins can change roles")
        if user.id == current_user.id:
            raise HTTPException(status_code=400, detail="You cannot change your own role")
    active_changed = "is_active" in update_data and update_data["is_active"] != user.is_active

    for key, value in update_data.items():
        setattr(user, key, value)
    if role_changed and new_role == Role.USER:
        await db.execute(delete(AdminPermissionGrant).where(AdminPermissionGrant.admin_id == user.id))

    await db.commit()
    if role_changed or active_changed:
        permission_service.invalidate_permissions(user.id)
    if role_changed:
        logger.info("Role of user %s changed to %s by %s", user.id, new_role.value, current_user.id)
    return StandardResponse(data=UserResponse.model_validate(user), message="User updated successfully")


@router.delete("/{user_id}", response_model=StandardResponse)
async def delete_user(
    user_id: uuid.UUID,
    current_user: Annotated[User, Depends(can_manage_users)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Soft delete a user (deactivate)."""
    user = await _get_user_or_404(db, user_id)
    if user.role == Role.SUPER_ADMIN:
        raise HTTPException(status_code=400, detail="Super admins cannot be deactivated")
    _ensure_can_edit(current_user, user)

    user.is_active = False
    await db.commit()
    permission_service.invalidate_permissions(user.id)
    return StandardResponse(message="User deactivated")
