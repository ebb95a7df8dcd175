import asyncio
import logging
import uuid

from sqlalchemy import text

from exercita.models.enums import AdminPermission, Role
from exercita.models.user import User
from exercita.services.permission_service import (
    ALL_PERMISSIONS,
    AdminIdentity,
    FallbackReason,
    PermissionCache,
    ResolutionState,
    SqlPermissionGrantStore,
    resolve,
)

ADMIN_ID = uuid.uuid4()


class FakeGrantStore:
    def __init__(self, grants: dict[uuid.UUID, list[str]] | None = None):
        self.grants = grants or {}
        self.calls = 0

    async def list_permissions(self, admin_id):
        self.calls += 1
        return list(self.grants.get(admin_id, []))


class BrokenGrantStore:
    def __init__(self):
        self.calls = 0

    async def list_permissions(self, admin_id):
        self.calls += 1
        raise ConnectionError("grant store unreachable")


class GatedGrantStore(FakeGrantStore):
    """Blocks each read until the test releases it."""

    def __init__(self, grants):
        super().__init__(grants)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def list_permissions(self, admin_id):
        self.calls += 1
        if self.calls == 1:
            self.started.set()
            await self.release.wait()
        return list(self.grants.get(admin_id, []))


def _admin(admin_id=ADMIN_ID):
    return AdminIdentity(admin_id=admin_id, is_admin=True)


async def test_super_admin_holds_every_permission_without_grants():
    store = FakeGrantStore()
    resolved = await resolve(AdminIdentity(admin_id=ADMIN_ID, is_admin=True, is_super_admin=True), store)

    assert resolved.state == ResolutionState.RESOLVED
    assert all(resolved.has_permission(name) for name in ALL_PERMISSIONS)
    assert resolved.has_permission("something_not_in_the_catalog")
    assert store.calls == 0


async def test_super_admin_ignores_a_broken_store():
    resolved = await resolve(AdminIdentity(admin_id=ADMIN_ID, is_super_admin=True), BrokenGrantStore())
    assert resolved.state == ResolutionState.RESOLVED
    assert resolved.has_permission(AdminPermission.MANAGE_USERS)


async def test_plain_admin_gets_exactly_the_granted_permissions():
    store = FakeGrantStore({ADMIN_ID: ["manage_workouts"]})
    resolved = await resolve(_admin(), store)

    assert resolved.has_permission("manage_workouts")
    assert resolved.has_permission(AdminPermission.MANAGE_WORKOUTS)
    assert not resolved.has_permission("manage_products")
    mapping = resolved.as_mapping()
    assert mapping["manage_workouts"] is True
    assert sum(mapping.values()) == 1


async def test_identity_without_admin_id_has_nothing():
    store = FakeGrantStore({ADMIN_ID: ["manage_workouts"]})
    resolved = await resolve(AdminIdentity(), store)

    assert resolved.state == ResolutionState.RESOLVED
    assert not any(resolved.as_mapping().values())
    assert store.calls == 0


async def test_store_failure_falls_back_to_least_privilege(caplog):
    with caplog.at_level(logging.WARNING, logger="exercita.services.permission_service"):
        resolved = await resolve(_admin(), BrokenGrantStore())

    assert resolved.state == ResolutionState.FALLBACK
    assert resolved.fallback_reason == FallbackReason.STORE_UNAVAILABLE
    assert resolved.has_permission("manage_users") is False
    assert "least-privilege fallback" in caplog.text


async def test_missing_store_is_a_context_fallback():
    resolved = await resolve(_admin(), None)
    assert resolved.state == ResolutionState.FALLBACK
    assert resolved.fallback_reason == FallbackReason.CONTEXT_UNAVAILABLE
    assert not resolved.has_permission("manage_workouts")


def test_identity_from_user_roles():
    user_id = uuid.uuid4()
    plain = AdminIdentity.from_user(User(id=user_id, email="u@test.com", hashed_password="x", role=Role.USER))
    admin = AdminIdentity.from_user(User(id=user_id, email="a@test.com", hashed_password="x", role=Role.ADMIN))
    owner = AdminIdentity.from_user(User(id=user_id, email="s@test.com", hashed_password="x", role="SUPER_ADMIN"))

    assert plain == AdminIdentity()
    assert admin == AdminIdentity(admin_id=user_id, is_admin=True, is_super_admin=False)
    assert owner == AdminIdentity(admin_id=user_id, is_admin=True, is_super_admin=True)
    assert AdminIdentity.from_user(None) == AdminIdentity()


class TestPermissionCache:
    async def test_resolved_sets_are_cached_until_invalidated(self):
        store = FakeGrantStore({ADMIN_ID: ["manage_workouts"]})
        cache = PermissionCache(ttl_seconds=30)

        first = await cache.get(_admin(), store)
        second = await cache.get(_admin(), store)
        assert first is second
        assert store.calls == 1
        assert cache.state(ADMIN_ID) == ResolutionState.RESOLVED

        store.grants[ADMIN_ID] = []
        cache.invalidate(ADMIN_ID)
        assert cache.state(ADMIN_ID) == ResolutionState.UNRESOLVED
        third = await cache.get(_admin(), store)
        assert not third.has_permission("manage_workouts")
        assert store.calls == 2

    async def test_entries_expire_after_ttl(self):
        clock = [100.0]
        store = FakeGrantStore({ADMIN_ID: ["manage_workouts"]})
        cache = PermissionCache(ttl_seconds=30, clock=lambda: clock[0])

        await cache.get(_admin(), store)
        clock[0] += 29
        await cache.get(_admin(), store)
        assert store.calls == 1
        clock[0] += 2
        await cache.get(_admin(), store)
        assert store.calls == 2

    async def test_fallback_results_are_not_cached(self):
        cache = PermissionCache(ttl_seconds=30)
        broken = BrokenGrantStore()

        resolved = await cache.get(_admin(), broken)
        assert resolved.state == ResolutionState.FALLBACK
        assert cache.state(ADMIN_ID) == ResolutionState.FALLBACK

        healthy = FakeGrantStore({ADMIN_ID: ["manage_users"]})
        recovered = await cache.get(_admin(), healthy)
        assert recovered.state == ResolutionState.RESOLVED
        assert recovered.has_permission("manage_users")

    async def test_resolution_invalidated_in_flight_is_discarded(self):
        store = GatedGrantStore({ADMIN_ID: ["manage_workouts"]})
        cache = PermissionCache(ttl_seconds=30)

        pending = asyncio.create_task(cache.get(_admin(), store))
        await store.started.wait()
        assert cache.state(ADMIN_ID) == ResolutionState.RESOLVING

        # Revoked while the first read is outstanding.
        store.grants[ADMIN_ID] = []
        cache.invalidate(ADMIN_ID)
        store.release.set()

        resolved = await pending
        assert store.calls == 2
        assert not resolved.has_permission("manage_workouts")
        cached = await cache.get(_admin(), store)
        assert cached is resolved

    async def test_reset_discards_resolution_in_flight(self):
        store = GatedGrantStore({ADMIN_ID: ["manage_workouts"]})
        cache = PermissionCache(ttl_seconds=30)

        pending = asyncio.create_task(cache.get(_admin(), store))
        await store.started.wait()

        store.grants[ADMIN_ID] = ["view_analytics"]
        cache.reset()
        assert cache.state(ADMIN_ID) == ResolutionState.UNRESOLVED
        store.release.set()

        resolved = await pending
        assert store.calls == 2
        assert resolved.has_permission("view_analytics")
        assert not resolved.has_permission("manage_workouts")

    async def test_super_admins_bypass_the_cache(self):
        store = FakeGrantStore()
        cache = PermissionCache(ttl_seconds=30)
        identity = AdminIdentity(admin_id=ADMIN_ID, is_admin=True, is_super_admin=True)

        resolved = await cache.get(identity, store)
        assert resolved.has_permission("manage_payments")
        assert cache.state(ADMIN_ID) == ResolutionState.UNRESOLVED
        assert store.calls == 0


async def test_sql_store_reads_grants(db_session, create_user):
    admin = await create_user(
        "physio@test.com",
        Role.ADMIN,
        [AdminPermission.MANAGE_WORKOUTS, AdminPermission.VIEW_ANALYTICS],
    )
    other = await create_user("other@test.com", Role.ADMIN, [AdminPermission.MANAGE_USERS])

    names = await SqlPermissionGrantStore(db_session).list_permissions(admin.id)
    assert sorted(names) == ["manage_workouts", "view_analytics"]

    resolved = await resolve(AdminIdentity.from_user(other), SqlPermissionGrantStore(db_session))
    assert resolved.has_permission("manage_users")
    assert not resolved.has_permission("manage_workouts")


async def test_unreachable_sql_store_falls_back(db_engine, db_session):
    async with db_engine.begin() as conn:
        await conn.execute(text("DROP TABLE admin_permissions"))

    resolved = await resolve(_admin(), SqlPermissionGrantStore(db_session))

    assert resolved.state == ResolutionState.FALLBACK
    assert resolved.fallback_reason == FallbackReason.STORE_UNAVAILABLE
    assert resolved.has_permission("manage_users") is False
