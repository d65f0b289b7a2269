"""
Identity snapshots passed between the store, the cache and request handlers.

Neither type carries the password hash; it never leaves IdentityService.
"""

import uuid
from dataclasses import dataclass

from src.kernel.models.user import UserRole


@dataclass(frozen=True)
class Identity:
    """Resolved identity attached to an authenticated request."""

    id: uuid.UUID
    name: str
    email: str
    role: UserRole


@dataclass(frozen=True)
class UserRecord:
    """Store-side view of a user: identity fields plus the active flag."""

    id: uuid.UUID
    name: str
    email: str
    role: UserRole
    is_active: bool

    def to_identity(self) -> Identity:
        return Identity(id=self.id, name=self.name, email=self.email, role=self.role)
