"""
Operational endpoints for administrators.
"""

from typing import List

from fastapi import APIRouter, Request

from src.api.deps import AdminIdentity, Auth
from src.kernel.migrations import MigrationManager
from src.schemas.auth import AuthStatsResponse, MigrationStatusResponse

router = APIRouter()


@router.get("/auth-stats", response_model=AuthStatsResponse)
async def auth_stats(admin: AdminIdentity, auth: Auth):
    """User cache and revocation registry counters."""
    return AuthStatsResponse(
        user_cache=auth.cache.stats(),
        revoked_tokens=len(auth.revocations),
        maintenance_running=auth.maintenance.running,
    )


@router.get("/migrations", response_model=List[MigrationStatusResponse])
async def migration_status(request: Request, admin: AdminIdentity):
    """Applied and pending migration units, in version order."""
    manager = MigrationManager(request.app.state.engine, request.app.state.settings.migrations_dir)
    return [
        MigrationStatusResponse(
            version=item.version,
            name=item.name,
            state=item.state,
            applied_at=item.applied_at,
        )
        for item in await manager.status()
    ]
