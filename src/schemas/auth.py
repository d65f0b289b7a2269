"""
Authentication and user management schemas.
"""

import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from src.kernel.models.user import UserRole


def _check_password_strength(v: str) -> str:
    if len(v) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not any(c.isupper() for c in v):
        raise ValueError("Password must contain at least one uppercase letter")
    if not any(c.islower() for c in v):
        raise ValueError("Password must contain at least one lowercase letter")
    if not any(c.isdigit() for c in v):
        raise ValueError("Password must contain at least one digit")
    return v


class UserLogin(BaseModel):
    """Login request."""

    email: EmailStr
    password: str = Field(..., min_length=1)


class UserCreate(BaseModel):
    """User creation request (administrators only)."""

    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    role: UserRole = UserRole.STAFF

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password_strength(v)


class ChangePasswordRequest(BaseModel):
    """Password change request."""

    current_password: str
    new_password: str = Field(..., min_length=8, max_length=128)

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password_strength(v)


class IdentityResponse(BaseModel):
    """The identity attached to an authenticated request."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    email: str
    role: UserRole


class UserResponse(IdentityResponse):
    """User as seen by administrators."""

    is_active: bool


class LoginResponse(BaseModel):
    """Successful login."""

    success: bool = True
    token: str
    token_type: str = "bearer"
    expires_in: int
    user: IdentityResponse


class UserStatusUpdate(BaseModel):
    is_active: bool


class UserRoleUpdate(BaseModel):
    role: UserRole


class AuthStatsResponse(BaseModel):
    user_cache: dict
    revoked_tokens: int
    maintenance_running: bool


class MigrationStatusResponse(BaseModel):
    version: str
    name: str
    state: str
    applied_at: Optional[str] = None
