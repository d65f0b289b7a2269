"""
FastAPI dependencies for authentication, authorization, and database sessions.
"""

import uuid
from typing import Annotated, List, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.database import get_db
from src.kernel.identity.errors import AuthError
from src.kernel.identity.gate import Authentication
from src.kernel.identity.identity_service import IdentityService
from src.kernel.identity.maintenance import AuthComponents
from src.kernel.identity.records import Identity
from src.kernel.models.user import UserRole
from src.kernel.permissions.guards import Guard, enforce, require_role, require_self_or_role


DbSession = Annotated[AsyncSession, Depends(get_db)]


def get_auth_components(request: Request) -> AuthComponents:
    """Process-wide auth components created by the application factory."""
    return request.app.state.auth


Auth = Annotated[AuthComponents, Depends(get_auth_components)]


def get_request_id(request: Request) -> Optional[str]:
    """Get request correlation ID (set by RequestIdMiddleware)."""
    return getattr(request.state, "request_id", None)


def get_client_ip(request: Request) -> Optional[str]:
    """Extract client IP from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


async def get_authentication(
    request: Request,
    auth: Auth,
    db: DbSession,
) -> Authentication:
    """
    Run the authentication gate for this request.

    Failures raise AuthError subclasses, which the application's exception
    handler turns into the JSON error body.
    """
    result = await auth.gate.authenticate(
        request.headers.get("Authorization"),
        IdentityService(db),
        client_ip=get_client_ip(request),
    )
    request.state.user = result.identity
    return result


CurrentAuth = Annotated[Authentication, Depends(get_authentication)]


async def get_current_identity(authentication: CurrentAuth) -> Identity:
    return authentication.identity


CurrentIdentity = Annotated[Identity, Depends(get_current_identity)]


def enforce_audited(request: Request, identity: Identity, guards: List[Guard]) -> Identity:
    """Run guards and record any denial with its required vs. actual context."""
    try:
        return enforce(identity, guards)
    except AuthError as exc:
        request.app.state.auth.audit.record_security_event(
            "authorization_denied",
            reason=exc.kind.value,
            client_ip=get_client_ip(request),
            subject_id=identity.id,
            path=request.url.path,
            **exc.audit_context(),
        )
        raise


class RoleChecker:
    """
    Dependency class that requires an exact role.

    Usage:
        @router.get("/users")
        async def list_users(
            identity: Annotated[Identity, Depends(RoleChecker(UserRole.ADMINISTRATOR))],
        ):
            ...
    """

    def __init__(self, role: UserRole):
        self.role = role

    async def __call__(self, request: Request, identity: CurrentIdentity) -> Identity:
        return enforce_audited(request, identity, [require_role(self.role)])


class SelfOrRoleChecker:
    """
    Dependency class that admits the subject named by a path parameter, or
    anyone holding ``role``.
    """

    def __init__(self, role: UserRole, param: str = "user_id"):
        self.role = role
        self.param = param

    async def __call__(self, request: Request, identity: CurrentIdentity) -> Identity:
        subject_id = request.path_params.get(self.param, "")
        try:
            subject_id = uuid.UUID(str(subject_id))
        except ValueError:
            pass
        return enforce_audited(request, identity, [require_self_or_role(subject_id, self.role)])


AdminIdentity = Annotated[Identity, Depends(RoleChecker(UserRole.ADMINISTRATOR))]
SelfOrAdminIdentity = Annotated[Identity, Depends(SelfOrRoleChecker(UserRole.ADMINISTRATOR))]
