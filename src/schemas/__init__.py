"""
Pydantic schemas for API request/response validation.
"""

from src.schemas.auth import (
    AuthStatsResponse,
    ChangePasswordRequest,
    IdentityResponse,
    LoginResponse,
    MigrationStatusResponse,
    UserCreate,
    UserLogin,
    UserResponse,
    UserRoleUpdate,
    UserStatusUpdate,
)
from src.schemas.common import (
    ErrorResponse,
    HealthResponse,
    SuccessResponse,
)

__all__ = [
    # Auth
    "ChangePasswordRequest",
    "IdentityResponse",
    "LoginResponse",
    "UserCreate",
    "UserLogin",
    "UserResponse",
    "UserRoleUpdate",
    "UserStatusUpdate",
    # System
    "AuthStatsResponse",
    "MigrationStatusResponse",
    # Common
    "ErrorResponse",
    "HealthResponse",
    "SuccessResponse",
]
