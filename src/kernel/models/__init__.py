"""
Kernel Data Models

SQLAlchemy models owned by the kernel layer.
"""

from src.kernel.models.base import Base, TimestampMixin, generate_uuid
from src.kernel.models.user import User, UserRole

__all__ = [
    "Base",
    "TimestampMixin",
    "generate_uuid",
    "User",
    "UserRole",
]
