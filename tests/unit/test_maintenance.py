"""Unit tests for auth component wiring and periodic maintenance."""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from src.config import Settings
from src.kernel.identity.maintenance import AuthComponents, CacheMaintenance
from src.kernel.identity.records import UserRecord
from src.kernel.identity.revocation import RevocationRegistry
from src.kernel.identity.user_cache import UserCache
from src.kernel.models.user import UserRole


class FakeClock:
    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_run_once_sweeps_cache_and_compacts_registry():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    cache_clock = FakeClock(0.0)
    cache = UserCache(ttl_seconds=10, max_size=10, clock=cache_clock)
    registry = RevocationRegistry(clock=now.timestamp)

    user = UserRecord(id=uuid.uuid4(), name="A", email="a@example.com", role=UserRole.STAFF, is_active=True)
    cache.put(user.id, user)
    cache_clock.now = 11.0
    registry.revoke("h.p.expired", now - timedelta(seconds=1))
    registry.revoke("h.p.live", now + timedelta(hours=1))

    maintenance = CacheMaintenance(cache, registry, interval_seconds=60)
    assert maintenance.run_once() == (1, 1)
    assert len(cache) == 0
    assert len(registry) == 1


@pytest.mark.asyncio
async def test_start_and_stop():
    maintenance = CacheMaintenance(UserCache(), RevocationRegistry(), interval_seconds=0.01)
    maintenance.start()
    assert maintenance.running
    await asyncio.sleep(0.05)
    await maintenance.stop()
    assert not maintenance.running


def test_components_from_settings_share_instances():
    settings = Settings(
        secret_key="components-test-secret-key-0123456789",
        user_cache_ttl_seconds=42,
        user_cache_max_size=7,
        revocation_max_entries=50,
    )
    components = AuthComponents.from_settings(settings)

    assert components.gate.cache is components.cache
    assert components.gate.revocations is components.revocations
    assert components.gate.issuer is components.issuer
    assert components.maintenance.cache is components.cache
    assert components.cache.ttl_seconds == 42
    assert components.cache.max_size == 7
    assert components.revocations.max_entries == 50
