"""
Revoked-token registry.

Tokens are recorded by fingerprint (signature segment) together with the
token's own expiry. Once a token has expired it can never verify again, so
its entry is dead weight and compaction removes it first.
"""

import math
import time
from collections import OrderedDict
from datetime import datetime
from typing import Callable, Optional

from src.kernel.identity.jwt import TokenIssuer, token_fingerprint
from src.logging_config import get_logger

logger = get_logger(__name__)


class RevocationRegistry:
    """
    Process-local set of revoked token fingerprints.

    Presence always means reject. Absence proves nothing: the token must
    still verify and its subject must still resolve.
    """

    def __init__(
        self,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.time,
    ):
        if max_entries < 2:
            raise ValueError("max_entries must be at least 2")
        self.max_entries = max_entries
        self._clock = clock
        # Insertion order is kept for the overflow fallback in compact()
        self._entries: "OrderedDict[str, float]" = OrderedDict()

    def revoke(self, token: str, expires_at: Optional[datetime] = None) -> bool:
        """
        Record ``token`` as revoked.

        ``expires_at`` defaults to the token's own (unverified) exp claim.
        Returns False for values without the three-part token structure.
        """
        fingerprint = token_fingerprint(token)
        if fingerprint is None:
            return False

        if expires_at is None:
            expires_at = TokenIssuer.unverified_expiry(token)
        self._entries[fingerprint] = expires_at.timestamp() if expires_at else math.inf

        if len(self._entries) > self.max_entries:
            self.compact()
        return True

    def is_revoked(self, token: str) -> bool:
        fingerprint = token_fingerprint(token)
        return fingerprint is not None and fingerprint in self._entries

    def compact(self) -> int:
        """
        Drop entries for tokens that have already expired; if the registry
        is still above ``max_entries``, drop the oldest half by insertion.

        Returns the number of entries removed.
        """
        now = self._clock()
        expired = [fp for fp, expires in self._entries.items() if expires <= now]
        for fp in expired:
            del self._entries[fp]
        removed = len(expired)

        if len(self._entries) > self.max_entries:
            overflow = len(self._entries) // 2
            for _ in range(overflow):
                self._entries.popitem(last=False)
            removed += overflow
            logger.warning(
                "Revocation registry over capacity, dropped oldest entries",
                extra={"dropped": overflow, "remaining": len(self._entries)},
            )
        return removed

    def __len__(self) -> int:
        return len(self._entries)
