import logging
from typing import Annotated, Dict, List
import uuid

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from exercita.auth import dependencies
from exercita.core.responses import StandardResponse
from exercita.database import get_db
from exercita.models.admin import AdminPermissionGrant
from exercita.models.enums import AdminPermission, Role
from exercita.models.user import User
from exercita.services import permission_service
from exercita.services.permission_service import FallbackReason, ResolutionState

logger = logging.getLogger(__name__)

router = APIRouter()

PERMISSION_LABELS = {
    AdminPermission.MANAGE_WORKOUTS: ("Manage workouts", "Create, edit and delete workout plans", "Training"),
    AdminPermission.MANAGE_EXERCISES: ("Manage exercises", "Create, edit and delete exercises", "Training"),
    AdminPermission.MANAGE_CATEGORIES: ("Manage categories", "Organise workout and exercise categories", "Training"),
    AdminPermission.MANAGE_PRODUCTS: ("Manage products", "Maintain the store catalogue", "Store"),
    AdminPermission.MANAGE_USERS: ("Manage users", "View and update patient accounts", "Patients"),
    AdminPermission.MANAGE_APPOINTMENTS: ("Manage appointments", "Schedule and update consultations", "Sessions"),
    AdminPermission.MANAGE_PAYMENTS: ("Manage payments", "Configure payment methods and fees", "Finance"),
    AdminPermission.MANAGE_GYM_PHOTOS: ("Manage gym photos", "Review photos uploaded by patients", "Patients"),
    AdminPermission.VIEW_ANALYTICS: ("View analytics", "Access patient progress reports", "Reports"),
}


class PermissionCatalogItem(BaseModel):
    name: AdminPermission
    label: str
    description: str
    category: str

class MyPermissionsResponse(BaseModel):
    admin_id: uuid.UUID | None
    is_admin: bool
    is_super_admin: bool
    state: ResolutionState
    fallback_reason: FallbackReason | None = None
    permissions: Dict[str, bool]

class AdminSummary(BaseModel):
    id: uuid.UUID
    email: str
    full_name: str | None = None
    role: Role
    permissions: List[AdminPermission]


async def _get_admin_or_404(db: AsyncSession, admin_id: uuid.UUID) -> User:
    admin = await db.get(User, admin_id)
    if admin is None or admin.role not in (Role.ADMIN, Role.SUPER_ADMIN):
        raise HTTPException(status_code=404, detail="Admin not found")
    return admin


async def _granted_permissions(db: AsyncSession, admin_id: uuid.UUID) -> List[AdminPermission]:
    result = await db.execute(
        select(AdminPermissionGrant.permission)
        .where(AdminPermissionGrant.admin_id == admin_id)
        .order_by(AdminPermissionGrant.permission)
    )
    return list(result.scalars().all())


@router.get("/permissions/catalog", response_model=StandardResponse[List[PermissionCatalogItem]])
async def list_permission_catalog(
    current_user: Annotated[User, Depends(dependencies.get_current_admin)],
):
    return StandardResponse(
        data=[
            PermissionCatalogItem(name=permission, label=label, description=description, category=category)
            for permission, (label, description, category) in PERMISSION_LABELS.items()
        ]
    )


@router.get("/permissions/me", response_model=StandardResponse[MyPermissionsResponse])
async def get_my_permissions(
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Resolved permission map for the caller; plain users get an all-false map."""
    resolved = await permission_service.resolve_for_user(current_user, db)
    return StandardResponse(
        data=MyPermissionsResponse(
            admin_id=resolved.identity.admin_id,
            is_admin=resolved.identity.is_admin,
            is_super_admin=resolved.identity.is_super_admin,
            state=resolved.state,
            fallback_reason=resolved.fallback_reason,
            permissions=resolved.as_mapping(),
        )
    )


@router.get("/admins", response_model=StandardResponse[List[AdminSummary]])
async def list_admins(
    current_user: Annotated[User, Depends(dependencies.get_current_super_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    result = await db.execute(
        select(User).where(User.role.in_([Role.ADMIN, Role.SUPER_ADMIN])).order_by(User.email)
    )
    admins = []
    for admin in result.scalars().all():
        admins.append(
            AdminSummary(
                id=admin.id,
                email=admin.email,
                full_name=admin.full_name,
                role=admin.role,
                permissions=await _granted_permissions(db, admin.id),
            )
        )
    return StandardResponse(data=admins)


@router.get("/admins/{admin_id}/permissions", response_model=StandardResponse[List[AdminPermission]])
async def get_admin_permissions(
    admin_id: uuid.UUID,
    current_user: Annotated[User, Depends(dependencies.get_current_super_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    await _get_admin_or_404(db, admin_id)
    return StandardResponse(data=await _granted_permissions(db, admin_id))


@router.put("/admins/{admin_id}/permissions/{permission}", response_model=StandardResponse)
async def grant_permission(
    admin_id: uuid.UUID,
    permission: AdminPermission,
    current_user: Annotated[User, Depends(dependencies.get_current_super_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Grant a permission to an admin. Granting an existing permission is a no-op."""
    await _get_admin_or_404(db, admin_id)
    existing = await db.execute(
        select(AdminPermissionGrant).where(
            AdminPermissionGrant.admin_id == admin_id,
            AdminPermissionGrant.permission == permission,
        )
    )
    if existing.scalar_one_or_none() is None:
        db.add(AdminPermissionGrant(admin_id=admin_id, permission=permission, granted_by=current_user.id))
        await db.commit()
        logger.info("Permission %s granted to admin %s by %s", permission.value, admin_id, current_user.id)
    permission_service.invalidate_permissions(admin_id)
    return StandardResponse(message="Permission granted")


@router.delete("/admins/{admin_id}/permissions/{permission}", response_model=StandardResponse)
async def revoke_permission(
    admin_id: uuid.UUID,
    permission: AdminPermission,
    current_user: Annotated[User, Depends(dependencies.get_current_super_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    await _get_admin_or_404(db, admin_id)
    result = await db.execute(
        select(AdminPermissionGrant).where(
            AdminPermissionGrant.admin_id == admin_id,
            AdminPermissionGrant.permission == permission,
        )
    )
    grant = result.scalar_one_or_none()
    if grant is None:
        raise HTTPException(status_code=404, detail="Permission not granted")
    await db.delete(grant)
    await db.commit()
    permission_service.invalidate_permissions(admin_id)
    logger.info("Permission %s revoked from admin %s by %s", permission.value, admin_id, current_user.id)
    return StandardResponse(message="Permission revoked")
