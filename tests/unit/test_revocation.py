"""Unit tests for the revoked-token registry."""

from datetime import datetime, timedelta, timezone

import pytest

from src.kernel.identity.jwt import TokenIssuer, token_fingerprint
from src.kernel.identity.revocation import RevocationRegistry

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def fake_token(n: int) -> str:
    return f"header{n}.payload{n}.signature{n}"


class TestRevocationRegistry:

    def test_revoked_token_is_reported(self):
        registry = RevocationRegistry(clock=NOW.timestamp)
        token = fake_token(1)
        assert registry.revoke(token, NOW + timedelta(hours=1)) is True
        assert registry.is_revoked(token) is True
        assert registry.is_revoked(fake_token(2)) is False

    def test_fingerprint_is_signature_segment(self):
        registry = RevocationRegistry(clock=NOW.timestamp)
        registry.revoke("a.b.sig", NOW + timedelta(hours=1))
        # Same signature under a different header/payload is the same fingerprint
        assert registry.is_revoked("x.y.sig") is True

    def test_value_without_three_parts_is_ignored(self):
        registry = RevocationRegistry(clock=NOW.timestamp)
        assert registry.revoke("not-a-token") is False
        assert len(registry) == 0
        assert registry.is_revoked("not-a-token") is False

    def test_expiry_defaults_to_token_exp_claim(self, issuer: TokenIssuer, user_record):
        issued = issuer.issue(user_record.id, user_record.email, user_record.role, ttl=timedelta(minutes=5))
        clock_now = issued.expires_at + timedelta(seconds=1)
        registry = RevocationRegistry(clock=clock_now.timestamp)
        registry.revoke(issued.token)
        assert registry.compact() == 1
        assert registry.is_revoked(issued.token) is False

    def test_compact_drops_only_expired_entries(self):
        registry = RevocationRegistry(clock=NOW.timestamp)
        registry.revoke(fake_token(1), NOW - timedelta(minutes=1))
        registry.revoke(fake_token(2), NOW + timedelta(minutes=1))

        assert registry.compact() == 1
        assert registry.is_revoked(fake_token(1)) is False
        assert registry.is_revoked(fake_token(2)) is True

    def test_overflow_drops_oldest_half(self):
        registry = RevocationRegistry(max_entries=4, clock=NOW.timestamp)
        future = NOW + timedelta(hours=1)
        for n in range(5):
            registry.revoke(fake_token(n), future)

        # 5 live entries > 4: the two oldest go
        assert len(registry) == 3
        assert registry.is_revoked(fake_token(0)) is False
        assert registry.is_revoked(fake_token(1)) is False
        assert registry.is_revoked(fake_token(4)) is True

    def test_overflow_prefers_expired_entries(self):
        registry = RevocationRegistry(max_entries=4, clock=NOW.timestamp)
        future = NOW + timedelta(hours=1)
        registry.revoke(fake_token(0), future)
        registry.revoke(fake_token(1), NOW - timedelta(seconds=1))
        for n in range(2, 5):
            registry.revoke(fake_token(n), future)

        assert len(registry) == 4
        assert registry.is_revoked(fake_token(0)) is True
        assert registry.is_revoked(fake_token(1)) is False

    def test_small_capacity_rejected(self):
        with pytest.raises(ValueError):
            RevocationRegistry(max_entries=1)


def test_token_fingerprint():
    assert token_fingerprint("a.b.c") == "c"
    assert token_fingerprint("a.b") is None
    assert token_fingerprint("a.b.") is None
