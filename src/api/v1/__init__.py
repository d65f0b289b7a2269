"""
API v1 routes.
"""

from fastapi import APIRouter

from src.api.v1 import auth, system, users

router = APIRouter()

router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(system.router, prefix="/system", tags=["System"])
