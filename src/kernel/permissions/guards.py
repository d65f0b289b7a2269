"""
Authorization guards.

Guards are pure checks over an already-resolved Identity: they never touch
the database, and they either return or raise an AuthError subclass.
"""

import uuid
from typing import Callable, Iterable

from src.kernel.identity.errors import AccessDeniedError, InsufficientRoleError
from src.kernel.identity.records import Identity
from src.kernel.models.user import UserRole

Guard = Callable[[Identity], None]


def has_role(identity: Identity, role: UserRole) -> bool:
    return identity.role == role


def is_self(identity: Identity, subject_id: uuid.UUID | str) -> bool:
    return str(identity.id) == str(subject_id)


def require_role(role: UserRole) -> Guard:
    """Pass iff the identity holds exactly ``role``."""

    def guard(identity: Identity) -> None:
        if not has_role(identity, role):
            raise InsufficientRoleError(required=role.value, actual=identity.role.value)

    return guard


def require_self_or_role(subject_id: uuid.UUID | str, role: UserRole) -> Guard:
    """Pass iff the identity holds ``role`` or is the subject itself."""

    def guard(identity: Identity) -> None:
        if not (has_role(identity, role) or is_self(identity, subject_id)):
            raise AccessDeniedError(
                required_subject=str(subject_id),
                actual_subject=str(identity.id),
                required_role=role.value,
            )

    return guard


def enforce(identity: Identity, guards: Iterable[Guard]) -> Identity:
    """Run ``guards`` in order; the first failure propagates."""
    for guard in guards:
        guard(identity)
    return identity
