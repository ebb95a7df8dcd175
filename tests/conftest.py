import os

os.environ.setdefault("SECRET_KEY", "exercita-test-secret-key-0123456789")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./exercita_test.db")

import pytest
from typing import AsyncGenerator, Iterable
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

import exercita.models  # noqa: F401
from exercita.auth.security import get_password_hash
from exercita.config import settings
from exercita.core.rate_limit import reset_rate_limiter_state
from exercita.database import Base, get_db
from exercita.main import app
from exercita.models.admin import AdminPermissionGrant
from exercita.models.enums import AdminPermission, Role
from exercita.models.user import User
from exercita.services.permission_service import reset_permission_cache

TEST_PASSWORD = "password123"


@pytest.fixture(scope="function")
async def db_engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'exercita.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()

@pytest.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    async_session = async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )
    async with async_session() as session:
        yield session

@pytest.fixture(scope="function")
async def client(db_session) -> AsyncGenerator[AsyncClient, None]:
    await reset_rate_limiter_state()
    await reset_permission_cache()

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
    await reset_rate_limiter_state()
    await reset_permission_cache()

@pytest.fixture
def create_user(db_session):
    async def _create_user(
        email: str,
        role: Role = Role.USER,
        permissions: Iterable[AdminPermission] = (),
        *,
        is_active: bool = True,
    ) -> User:
        user = User(
            email=email,
            hashed_password=get_password_hash(TEST_PASSWORD),
            full_name=email.split("@")[0].title(),
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.flush()
        for permission in permissions:
            db_session.add(AdminPermissionGrant(admin_id=user.id, permission=permission))
        await db_session.commit()
        return user

    return _create_user

@pytest.fixture
def login(client):
    async def _login(email: str, password: str = TEST_PASSWORD) -> dict[str, str]:
        response = await client.post(
            f"{settings.API_V1_STR}/auth/login",
            json={"email": email, "password": password},
        )
        assert response.status_code == 200, response.text
        token = response.json()["data"]["access_token"]
        return {"Authorization": f"Bearer {token}"}

    return _login

@pytest.fixture
async def super_admin_headers(create_user, login):
    await create_user("owner@test.com", Role.SUPER_ADMIN)
    return await login("owner@test.com")

@pytest.fixture
async def user_headers(create_user, login):
    await create_user("patient@test.com")
    return await login("patient@test.com")
