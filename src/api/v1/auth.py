"""
Authentication endpoints.
"""

import time

from fastapi import APIRouter, HTTPException, Request, status

from src.api.deps import AdminIdentity, Auth, CurrentAuth, CurrentIdentity, DbSession, get_client_ip
from src.kernel.identity.identity_service import IdentityService
from src.schemas.auth import (
    ChangePasswordRequest,
    IdentityResponse,
    LoginResponse,
    UserCreate,
    UserLogin,
    UserResponse,
)
from src.schemas.common import SuccessResponse

router = APIRouter()


@router.post("/login", response_model=LoginResponse)
async def login(
    request: Request,
    data: UserLogin,
    db: DbSession,
    auth: Auth,
):
    """
    Check credentials and return an access token.
    """
    start = time.perf_counter()
    client_ip = get_client_ip(request)

    result = await IdentityService(db).authenticate(data.email, data.password, auth.issuer)
    duration_ms = (time.perf_counter() - start) * 1000

    if not result:
        auth.audit.record_auth_event(
            "login_failed",
            outcome="invalid_credentials",
            duration_ms=duration_ms,
            client_ip=client_ip,
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    user, issued = result
    # Drop any snapshot taken before this login so the next request re-reads the store
    auth.cache.invalidate(user.id)
    auth.audit.record_auth_event(
        "login_success",
        subject_id=user.id,
        duration_ms=duration_ms,
        client_ip=client_ip,
    )

    return LoginResponse(
        token=issued.token,
        expires_in=issued.expires_in,
        user=IdentityResponse.model_validate(user.to_identity()),
    )


@router.post("/logout", response_model=SuccessResponse)
async def logout(
    request: Request,
    authentication: CurrentAuth,
    auth: Auth,
):
    """Revoke the token presented with this request."""
    auth.revocations.revoke(authentication.token, authentication.claims.exp)
    auth.audit.record_auth_event(
        "logout",
        subject_id=authentication.identity.id,
        client_ip=get_client_ip(request),
    )
    return SuccessResponse(message="Logged out")


@router.get("/me", response_model=IdentityResponse)
async def get_me(identity: CurrentIdentity):
    """Get the identity attached to this request."""
    return IdentityResponse.model_validate(identity)


@router.post("/change-password", response_model=SuccessResponse)
async def change_password(
    request: Request,
    data: ChangePasswordRequest,
    authentication: CurrentAuth,
    db: DbSession,
    auth: Auth,
):
    """
    Change the current user's password.

    The token used for this request is revoked; the client must log in again.
    """
    identity_service = IdentityService(db)
    changed = await identity_service.change_password(
        authentication.identity.id,
        data.current_password,
        data.new_password,
    )
    if not changed:
        auth.audit.record_security_event(
            "password_change_failed",
            reason="invalid_current_password",
            client_ip=get_client_ip(request),
            subject_id=authentication.identity.id,
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect",
        )

    auth.revocations.revoke(authentication.token, authentication.claims.exp)
    auth.audit.record_auth_event(
        "password_changed",
        subject_id=authentication.identity.id,
        client_ip=get_client_ip(request),
    )
    return SuccessResponse(message="Password changed, please log in again")


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    data: UserCreate,
    admin: AdminIdentity,
    db: DbSession,
):
    """
    Create a user account. Administrators only.
    """
    try:
        user = await IdentityService(db).register_user(
            name=data.name,
            email=data.email,
            password=data.password,
            role=data.role,
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    return UserResponse.model_validate(user)
