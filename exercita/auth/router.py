import logging
from typing import Annotated
from datetime import timedelta
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from exercita.config import settings
from exercita.database import get_db
from exercita.auth import schemas, security, dependencies
from exercita.core.rate_limit import rate_limit_dependency
from exercita.core.responses import StandardResponse
from exercita.models.enums import Role
from exercita.models.user import User

logger = logging.getLogger(__name__)

router = APIRouter()


async def _get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


@router.post("/register", response_model=StandardResponse[schemas.UserResponse])
async def register(
    user_in: schemas.UserCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Self sign-up. Accounts created here are always plain users."""
    if await _get_user_by_email(db, user_in.email):
        raise HTTPException(
            status_code=400,
            detail="The user with this email already exists in the system.",
        )

    user = User(
        email=user_in.email,
        hashed_password=security.get_password_hash(user_in.password),
        full_name=user_in.full_name,
        phone_number=user_in.phone_number,
        role=Role.USER,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("Registered user %s", user.id)

    return StandardResponse(data=schemas.UserResponse.model_validate(user), message="User registered successfully")


@router.post(
    "/login",
    response_model=StandardResponse[schemas.Token],
    dependencies=[
        rate_limit_dependency(
            scope="auth_login",
            limit=settings.LOGIN_RATE_LIMIT,
            window_seconds=settings.LOGIN_RATE_WINDOW_SECONDS,
        )
    ],
)
async def login(
    login_data: schemas.LoginRequest,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    user = await _get_user_by_email(db, login_data.email)

    if not user or not security.verify_password(login_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user")

    access_token = security.create_access_token(
        subject=user.email,
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    return StandardResponse(
        data=schemas.Token(access_token=access_token, token_type="bearer"),
        message="Login Successful"
    )


@router.get("/me", response_model=StandardResponse[schemas.CurrentUserResponse])
async def read_users_me(
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
):
    return StandardResponse(data=schemas.CurrentUserResponse.model_validate(current_user))
