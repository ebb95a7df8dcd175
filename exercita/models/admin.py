import uuid
from datetime import datetime, timezone
from sqlalchemy import ForeignKey, DateTime, UniqueConstraint, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from exercita.database import Base
from exercita.models.enums import AdminPermission


class AdminPermissionGrant(Base):
    """One named capability granted to one admin by a super-admin."""
    __tablename__ = "admin_permissions"
    __table_args__ = (UniqueConstraint("admin_id", "permission", name="uq_admin_permission"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    admin_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    permission: Mapped[AdminPermission] = mapped_column(SAEnum(AdminPermission, native_enum=False, length=64), nullable=False)
    granted_by: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    admin = relationship("User", foreign_keys=[admin_id])
