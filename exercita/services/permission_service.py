"""Permission service: resolves which named admin permissions an identity holds.

Super-admins hold every permission and never consult the grant store. Plain
admins hold exactly the permissions granted to them. When the grant store
cannot be consulted the answer degrades to least privilege (only super-admins
pass) and the failure is logged, never raised.
"""
from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from exercita.config import settings
from exercita.models.admin import AdminPermissionGrant
from exercita.models.enums import AdminPermission, Role
from exercita.models.user import User

logger = logging.getLogger(__name__)

ALL_PERMISSIONS: tuple[str, ...] = tuple(permission.value for permission in AdminPermission)


class ResolutionState(str, Enum):
    UNRESOLVED = "UNRESOLVED"
    RESOLVING = "RESOLVING"
    RESOLVED = "RESOLVED"
    FALLBACK = "FALLBACK"


class FallbackReason(str, Enum):
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    CONTEXT_UNAVAILABLE = "CONTEXT_UNAVAILABLE"


def permission_name(permission: AdminPermission | str) -> str:
    return permission.value if isinstance(permission, AdminPermission) else str(permission)


@dataclass(frozen=True)
class AdminIdentity:
    admin_id: uuid.UUID | None = None
    is_admin: bool = False
    is_super_admin: bool = False

    @classmethod
    def from_user(cls, user: User | None) -> AdminIdentity:
        if user is None:
            return cls()
        role = user.role if isinstance(user.role, Role) else Role(user.role)
        is_super_admin = role == Role.SUPER_ADMIN
        is_admin = is_super_admin or role == Role.ADMIN
        return cls(
            admin_id=user.id if is_admin else None,
            is_admin=is_admin,
            is_super_admin=is_super_admin,
        )


class PermissionGrantStore(Protocol):
    async def list_permissions(self, admin_id: uuid.UUID) -> Iterable[str]: ...


class SqlPermissionGrantStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_permissions(self, admin_id: uuid.UUID) -> list[str]:
        try:
            result = await self.db.execute(
                select(AdminPermissionGrant.permission).where(AdminPermissionGrant.admin_id == admin_id)
            )
        except SQLAlchemyError:
            # Leave the session usable for the rest of the request.
            await self.db.rollback()
            raise
        return [permission_name(permission) for permission in result.scalars().all()]


@dataclass(frozen=True)
class ResolvedPermissionSet:
    identity: AdminIdentity
    state: ResolutionState
    granted: frozenset[str] = frozenset()
    fallback_reason: FallbackReason | None = None

    def has_permission(self, permission: AdminPermission | str) -> bool:
        if self.identity.is_super_admin:
            return True
        if self.state == ResolutionState.FALLBACK:
            return False
        return permission_name(permission) in self.granted

    def as_mapping(self) -> dict[str, bool]:
        return {name: self.has_permission(name) for name in ALL_PERMISSIONS}


def _fallback(identity: AdminIdentity, reason: FallbackReason) -> ResolvedPermissionSet:
    return ResolvedPermissionSet(identity=identity, state=ResolutionState.FALLBACK, fallback_reason=reason)


async def resolve(identity: AdminIdentity, store: PermissionGrantStore | None) -> ResolvedPermissionSet:
    if identity.is_super_admin:
        return ResolvedPermissionSet(
            identity=identity,
            state=ResolutionState.RESOLVED,
            granted=frozenset(ALL_PERMISSIONS),
        )
    if identity.admin_id is None:
        return ResolvedPermissionSet(identity=identity, state=ResolutionState.RESOLVED)
    if store is None:
        logger.warning("No permission grant store for admin %s; using least-privilege fallback", identity.admin_id)
        return _fallback(identity, FallbackReason.CONTEXT_UNAVAILABLE)

    try:
        names = await store.list_permissions(identity.admin_id)
    except Exception:
        logger.warning(
            "Permission grant store unavailable for admin %s; using least-privilege fallback",
            identity.admin_id,
            exc_info=True,
        )
        return _fallback(identity, FallbackReason.STORE_UNAVAILABLE)

    return ResolvedPermissionSet(
        identity=identity,
        state=ResolutionState.RESOLVED,
        granted=frozenset(permission_name(name) for name in names),
    )


@dataclass
class _CacheEntry:
    resolved: ResolvedPermissionSet
    expires_at: float


class PermissionCache:
    """Keeps the last RESOLVED set per admin for ``ttl_seconds``.

    ``invalidate`` bumps the admin's generation; a resolution that was in flight
    across a generation change is discarded and redone against the new snapshot.
    """

    MAX_ATTEMPTS = 3

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[uuid.UUID, _CacheEntry] = {}
        self._generations: dict[uuid.UUID, int] = {}
        self._states: dict[uuid.UUID, ResolutionState] = {}

    def state(self, admin_id: uuid.UUID) -> ResolutionState:
        return self._states.get(admin_id, ResolutionState.UNRESOLVED)

    async def get(self, identity: AdminIdentity, store: PermissionGrantStore | None) -> ResolvedPermissionSet:
        # Super-admins and non-admins never touch the grant store.
        if identity.is_super_admin or identity.admin_id is None:
            return await resolve(identity, store)

        admin_id = identity.admin_id
        entry = self._entries.get(admin_id)
        if entry and entry.expires_at > self._clock() and entry.resolved.identity == identity:
            return entry.resolved

        for _ in range(self.MAX_ATTEMPTS):
            generation = self._generations.setdefault(admin_id, 0)
            self._states[admin_id] = ResolutionState.RESOLVING
            resolved = await resolve(identity, store)
            if self._generations.get(admin_id, 0) != generation:
                logger.info("Discarding permission resolution for admin %s invalidated in flight", admin_id)
                continue

            self._states[admin_id] = resolved.state
            if resolved.state == ResolutionState.RESOLVED:
                self._entries[admin_id] = _CacheEntry(resolved, self._clock() + self._ttl_seconds)
            return resolved

        logger.warning("Permissions for admin %s kept changing during resolution; using fallback", admin_id)
        self._states[admin_id] = ResolutionState.FALLBACK
        return _fallback(identity, FallbackReason.STORE_UNAVAILABLE)

    def invalidate(self, admin_id: uuid.UUID | None = None) -> None:
        targets = list(self._states) if admin_id is None else [admin_id]
        for target in targets:
            self._entries.pop(target, None)
            self._generations[target] = self._generations.get(target, 0) + 1
            self._states[target] = ResolutionState.UNRESOLVED

    def reset(self) -> None:
        """Drop every entry; resolutions still in flight are discarded like after ``invalidate``."""
        self._entries.clear()
        self._states.clear()
        for admin_id in self._generations:
            self._generations[admin_id] += 1


permission_cache = PermissionCache(ttl_seconds=settings.PERMISSION_CACHE_TTL_SECONDS)


async def reset_permission_cache() -> None:
    permission_cache.reset()


def invalidate_permissions(admin_id: uuid.UUID | None = None) -> None:
    permission_cache.invalidate(admin_id)


async def resolve_for_user(user: User, db: AsyncSession) -> ResolvedPermissionSet:
    return await permission_cache.get(AdminIdentity.from_user(user), SqlPermissionGrantStore(db))
