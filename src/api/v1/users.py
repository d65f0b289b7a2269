"""
User management endpoints.
"""

import uuid
from typing import List

from fastapi import APIRouter, HTTPException, Request, status

from src.api.deps import AdminIdentity, Auth, DbSession, SelfOrAdminIdentity, get_client_ip
from src.kernel.identity.identity_service import IdentityService
from src.schemas.auth import UserResponse, UserRoleUpdate, UserStatusUpdate

router = APIRouter()


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")


@router.get("", response_model=List[UserResponse])
async def list_users(
    admin: AdminIdentity,
    db: DbSession,
    include_inactive: bool = True,
):
    """List all users. Administrators only."""
    users = await IdentityService(db).list_users(include_inactive=include_inactive)
    return [UserResponse.model_validate(user) for user in users]


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: uuid.UUID,
    identity: SelfOrAdminIdentity,
    db: DbSession,
):
    """Get one user. Users may read their own record; administrators any."""
    user = await IdentityService(db).find_identity(user_id)
    if not user:
        raise _not_found()
    return UserResponse.model_validate(user)


@router.patch("/{user_id}/status", response_model=UserResponse)
async def update_user_status(
    request: Request,
    user_id: uuid.UUID,
    data: UserStatusUpdate,
    admin: AdminIdentity,
    db: DbSession,
    auth: Auth,
):
    """
    Activate or deactivate a user.

    Deactivation takes effect on the user's next request even while their
    token is still valid.
    """
    if user_id == admin.id and not data.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Administrators cannot deactivate themselves",
        )

    user = await IdentityService(db).set_active(user_id, data.is_active)
    if not user:
        raise _not_found()

    # Invalidate only after the change is committed
    await db.commit()
    auth.cache.invalidate(user_id)
    auth.audit.record_auth_event(
        "user_activated" if data.is_active else "user_deactivated",
        subject_id=user_id,
        client_ip=get_client_ip(request),
        changed_by=str(admin.id),
    )
    return UserResponse.model_validate(user)


@router.patch("/{user_id}/role", response_model=UserResponse)
async def update_user_role(
    request: Request,
    user_id: uuid.UUID,
    data: UserRoleUpdate,
    admin: AdminIdentity,
    db: DbSession,
    auth: Auth,
):
    """Change a user's role. Administrators only."""
    user = await IdentityService(db).change_role(user_id, data.role)
    if not user:
        raise _not_found()

    # Invalidate only after the change is committed
    await db.commit()
    auth.cache.invalidate(user_id)
    auth.audit.record_auth_event(
        "user_role_changed",
        subject_id=user_id,
        client_ip=get_client_ip(request),
        changed_by=str(admin.id),
        new_role=user.role.value,
    )
    return UserResponse.model_validate(user)
