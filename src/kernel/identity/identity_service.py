"""
Identity service: credential store access and user management.
"""

import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.kernel.identity.jwt import IssuedToken, TokenIssuer
from src.kernel.identity.password import hash_password, needs_rehash, verify_password
from src.kernel.identity.records import UserRecord
from src.kernel.models.user import User, UserRole
from src.logging_config import get_logger

logger = get_logger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def to_record(user: User) -> UserRecord:
    """Project an ORM user onto the hash-free record type."""
    return UserRecord(
        id=user.id,
        name=user.name,
        email=user.email,
        role=UserRole(user.role),
        is_active=bool(user.is_active),
    )


class IdentityService:
    """
    Service for user identity operations.

    One instance per request/session. Methods that change a user record do
    not touch the user cache; callers must invalidate it afterwards.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_identity(self, user_id: uuid.UUID) -> Optional[UserRecord]:
        """Credential store lookup used by the authentication gate."""
        query = select(
            User.id, User.name, User.email, User.role, User.is_active
        ).where(User.id == user_id)
        row = (await self.session.execute(query)).one_or_none()
        if row is None:
            return None
        return UserRecord(
            id=row.id,
            name=row.name,
            email=row.email,
            role=UserRole(row.role),
            is_active=bool(row.is_active),
        )

    async def get_user_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        """Get a user by ID."""
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Get a user by email (case-insensitive)."""
        result = await self.session.execute(
            select(User).where(User.email == normalize_email(email))
        )
        return result.scalar_one_or_none()

    async def list_users(self, include_inactive: bool = True) -> List[UserRecord]:
        query = select(User).order_by(User.name)
        if not include_inactive:
            query = query.where(User.is_active.is_(True))
        result = await self.session.execute(query)
        return [to_record(user) for user in result.scalars().all()]

    async def register_user(
        self,
        name: str,
        email: str,
        password: str,
        role: UserRole = UserRole.STAFF,
    ) -> UserRecord:
        """
        Create a new user.

        Raises:
            ValueError: If the email is already registered
        """
        if await self.get_user_by_email(email):
            raise ValueError("Email already registered")

        user = User(
            name=name.strip(),
            email=normalize_email(email),
            password_hash=hash_password(password),
            role=UserRole(role).value,
            is_active=True,
        )
        self.session.add(user)
        await self.session.flush()

        logger.info("User registered", extra={"user_id": str(user.id), "role": user.role})
        return to_record(user)

    async def authenticate(
        self,
        email: str,
        password: str,
        issuer: TokenIssuer,
    ) -> Optional[tuple[UserRecord, IssuedToken]]:
        """
        Check credentials and issue an access token.

        Returns None for an unknown email, an inactive user or a wrong
        password; the caller reports all three the same way.
        """
        user = await self.get_user_by_email(email)
        if not user or not user.is_active:
            return None

        if not verify_password(password, user.password_hash):
            return None

        if needs_rehash(user.password_hash):
            user.password_hash = hash_password(password)

        record = to_record(user)
        issued = issuer.issue(record.id, record.email, record.role)
        return record, issued

    async def set_active(self, user_id: uuid.UUID, active: bool) -> Optional[UserRecord]:
        """Activate or deactivate a user. Callers must invalidate the user cache."""
        user = await self.get_user_by_id(user_id)
        if not user:
            return None
        user.is_active = active
        await self.session.flush()
        logger.info("User active flag changed", extra={"user_id": str(user_id), "active": active})
        return to_record(user)

    async def change_role(self, user_id: uuid.UUID, new_role: UserRole) -> Optional[UserRecord]:
        """Change a user's role. Callers must invalidate the user cache."""
        user = await self.get_user_by_id(user_id)
        if not user:
            return None
        previous = user.role
        user.role = UserRole(new_role).value
        await self.session.flush()
        logger.info(
            "User role changed",
            extra={"user_id": str(user_id), "previous_role": previous, "new_role": user.role},
        )
        return to_record(user)

    async def change_password(
        self,
        user_id: uuid.UUID,
        current_password: str,
        new_password: str,
    ) -> bool:
        """Returns False when the user is unknown or the current password is wrong."""
        user = await self.get_user_by_id(user_id)
        if not user or not verify_password(current_password, user.password_hash):
            return False
        user.password_hash = hash_password(new_password)
        await self.session.flush()
        return True
