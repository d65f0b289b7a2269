"""
Per-process auth components and their periodic housekeeping.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from src.config import Settings
from src.kernel.identity.audit import AuthAuditLogger
from src.kernel.identity.gate import AuthenticationGate
from src.kernel.identity.jwt import TokenIssuer
from src.kernel.identity.revocation import RevocationRegistry
from src.kernel.identity.user_cache import UserCache
from src.logging_config import get_logger

logger = get_logger(__name__)


class CacheMaintenance:
    """
    Background task that sweeps expired cache entries and compacts the
    revocation registry on a fixed period, independent of request traffic.
    """

    def __init__(self, cache: UserCache, revocations: RevocationRegistry, interval_seconds: float):
        self.cache = cache
        self.revocations = revocations
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    def run_once(self) -> tuple[int, int]:
        swept = self.cache.sweep()
        compacted = self.revocations.compact()
        if swept or compacted:
            logger.debug(
                "Auth cache maintenance",
                extra={"swept": swept, "compacted": compacted},
            )
        return swept, compacted

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.run_once()
            except Exception:
                logger.exception("Auth cache maintenance failed")

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop(), name="auth-cache-maintenance")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()


@dataclass
class AuthComponents:
    """The process-wide auth objects, built once and shared by reference."""

    issuer: TokenIssuer
    cache: UserCache
    revocations: RevocationRegistry
    audit: AuthAuditLogger
    gate: AuthenticationGate
    maintenance: CacheMaintenance = field(repr=False)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthComponents":
        issuer = TokenIssuer(
            secret_key=settings.secret_key,
            algorithm=settings.algorithm,
            access_token_expire_minutes=settings.access_token_expire_minutes,
        )
        cache = UserCache(
            ttl_seconds=settings.user_cache_ttl_seconds,
            max_size=settings.user_cache_max_size,
        )
        revocations = RevocationRegistry(max_entries=settings.revocation_max_entries)
        audit = AuthAuditLogger()
        return cls(
            issuer=issuer,
            cache=cache,
            revocations=revocations,
            audit=audit,
            gate=AuthenticationGate(issuer, cache, revocations, audit),
            maintenance=CacheMaintenance(cache, revocations, settings.auth_cleanup_interval_seconds),
        )
