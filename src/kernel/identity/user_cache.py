"""
In-process user cache keyed by subject id.

Entries expire a fixed time after creation (not after last access) and the
cache is bounded; when full, the least recently accessed entry is evicted.
All operations are synchronous and never await, so they are atomic with
respect to other coroutines on the event loop.
"""

import time
import uuid
from collections import OrderedDict
from typing import Any, Callable, Optional

from src.kernel.identity.records import UserRecord
from src.logging_config import get_logger

logger = get_logger(__name__)


class CacheEntry:
    """A cached user snapshot with access bookkeeping."""

    __slots__ = ("user", "created_at", "last_accessed", "access_count")

    def __init__(self, user: UserRecord, now: float):
        self.user = user
        self.created_at = now
        self.last_accessed = now
        self.access_count = 1

    def touch(self, now: float) -> None:
        self.last_accessed = now
        self.access_count += 1


class UserCache:
    """
    TTL + LRU cache of active users.

    Coherence contract: any code that changes a user record (deactivation,
    role change, profile edit) must call ``invalidate`` for that user.
    """

    def __init__(
        self,
        ttl_seconds: float = 900,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        # Ordered by recency of access: first item is the LRU candidate
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    @staticmethod
    def _key(user_id: uuid.UUID | str) -> str:
        return str(user_id)

    def is_expired(self, entry: CacheEntry, now: Optional[float] = None) -> bool:
        """Single expiry predicate shared by lookups and sweeps."""
        if now is None:
            now = self._clock()
        return now - entry.created_at > self.ttl_seconds

    def get(self, user_id: uuid.UUID | str) -> Optional[UserRecord]:
        """Return a live cached user and record the access, or None on miss."""
        key = self._key(user_id)
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        now = self._clock()
        if self.is_expired(entry, now):
            del self._entries[key]
            self.misses += 1
            return None

        entry.touch(now)
        self._entries.move_to_end(key)
        self.hits += 1
        return entry.user

    def peek(self, user_id: uuid.UUID | str) -> Optional[CacheEntry]:
        """Return the raw entry without touching it or checking expiry."""
        return self._entries.get(self._key(user_id))

    def put(self, user_id: uuid.UUID | str, user: UserRecord) -> bool:
        """
        Cache ``user`` if it is active.

        An inactive user is never stored; any existing entry for it is
        dropped instead. Returns True if the user was cached.
        """
        key = self._key(user_id)
        if not user.is_active:
            self._entries.pop(key, None)
            return False

        if key not in self._entries and len(self._entries) >= self.max_size:
            evicted_key, _ = self._entries.popitem(last=False)
            self.evictions += 1
            logger.debug("User cache full, evicted LRU entry", extra={"user_id": evicted_key})

        self._entries[key] = CacheEntry(user, self._clock())
        self._entries.move_to_end(key)
        return True

    def invalidate(self, user_id: uuid.UUID | str) -> bool:
        """Drop the entry for ``user_id``. Returns True if one existed."""
        return self._entries.pop(self._key(user_id), None) is not None

    def sweep(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if self.is_expired(entry, now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, user_id: object) -> bool:
        return self._key(user_id) in self._entries  # type: ignore[arg-type]

    def stats(self) -> dict[str, Any]:
        """Counters for monitoring."""
        lookups = self.hits + self.misses
        created = [entry.created_at for entry in self._entries.values()]
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "ttl_seconds": self.ttl_seconds,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": (self.hits / lookups) if lookups else 0.0,
            "oldest_entry_age": (self._clock() - min(created)) if created else None,
            "newest_entry_age": (self._clock() - max(created)) if created else None,
        }
