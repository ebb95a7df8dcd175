from typing import Optional
import re
import uuid
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from exercita.models.enums import Role

PHONE_PATTERN = re.compile(r"^\+?[0-9][0-9\s\-()]{6,19}$")


def _normalize_phone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    normalized = value.strip()
    if not PHONE_PATTERN.match(normalized):
        raise ValueError("Invalid phone number format")
    return normalized


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"

class TokenPayload(BaseModel):
    sub: Optional[str] = None
    exp: Optional[int] = None
    type: Optional[str] = None

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6, max_length=72)
    full_name: Optional[str] = None
    phone_number: Optional[str] = None

    @field_validator("phone_number")
    @classmethod
    def validate_phone_number(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_phone(value)

class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: EmailStr
    full_name: Optional[str] = None
    role: Role
    is_active: bool
    phone_number: Optional[str] = None

class CurrentUserResponse(UserResponse):
    is_admin: bool
    is_super_admin: bool
