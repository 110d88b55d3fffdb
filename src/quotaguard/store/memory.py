"""In-memory store backend implementation."""

import asyncio
import logging
import time
from typing import Any, Callable

from quotaguard.store.base import (
    FieldCounts,
    StoreBackend,
    StoreEntry,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)


class InMemoryStore(StoreBackend):
    """
    In-memory store backend using plain dictionaries.

    Best for:
    - Single-process deployments
    - Development and testing

    Limitations:
    - Not shared across processes, so quotas are per process
    - Lost on restart

    Expired keys are dropped lazily on access. The internal lock only
    emulates the atomicity a real store gives one batch.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        """
        Initialize in-memory store.

        Args:
            clock: Source of epoch seconds used for key expiry
        """
        self._clock = clock
        self._store: dict[str, StoreEntry] = {}
        self._lock = asyncio.Lock()
        self._connected = True

    @property
    def name(self) -> str:
        return "memory"

    @property
    def is_connected(self) -> bool:
        return self._connected

    def connect(self) -> bool:
        """Mark the store reachable again."""
        self._connected = True
        return True

    def disconnect(self) -> None:
        """Make every operation fail until ``connect`` is called; data is kept."""
        self._connected = False

    def _ensure_connected(self) -> None:
        if not self._connected:
            raise StoreUnavailableError("in-memory store is disconnected")

    def _live(self, key: str) -> StoreEntry | None:
        """Get an entry, dropping it if expired (caller must hold lock)."""
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._store[key]
            return None
        return entry

    def _zset(self, key: str) -> dict[str, float]:
        entry = self._live(key)
        if entry is None:
            entry = StoreEntry(value={})
            self._store[key] = entry
        return entry.value

    @staticmethod
    def _prune(members: dict[str, float], window_start: float) -> None:
        stale = [m for m, score in members.items() if score < window_start]
        for member in stale:
            del members[member]

    async def window_hit(
        self,
        key: str,
        now: float,
        member: str,
        window_start: float,
        ttl_seconds: int,
    ) -> int:
        """Insert, prune, count and expire under one lock."""
        self._ensure_connected()
        async with self._lock:
            members = self._zset(key)
            members[member] = now
            self._prune(members, window_start)
            self._store[key].expires_at = self._clock() + ttl_seconds
            return len(members)

    async def window_peek(self, key: str, window_start: float) -> int:
        """Prune and count without inserting."""
        self._ensure_connected()
        async with self._lock:
            entry = self._live(key)
            if entry is None:
                return 0
            self._prune(entry.value, window_start)
            return len(entry.value)

    async def increment_fields(
        self,
        key: str,
        increments: dict[str, int],
        ttl_seconds: int,
    ) -> None:
        """Increment hash fields and refresh the TTL."""
        self._ensure_connected()
        async with self._lock:
            entry = self._live(key)
            if entry is None:
                entry = StoreEntry(value={})
                self._store[key] = entry
            for name, delta in increments.items():
                entry.value[name] = entry.value.get(name, 0) + delta
            entry.expires_at = self._clock() + ttl_seconds

    async def get_fields_many(self, keys: list[str]) -> list[FieldCounts]:
        """Read hash fields for several keys."""
        self._ensure_connected()
        async with self._lock:
            results = []
            for key in keys:
                entry = self._live(key)
                fields = dict(entry.value) if entry is not None else {}
                results.append(FieldCounts(key=key, fields=fields))
            return results

    async def delete(self, *keys: str) -> int:
        """Delete keys."""
        self._ensure_connected()
        async with self._lock:
            deleted = 0
            for key in keys:
                if self._live(key) is not None:
                    del self._store[key]
                    deleted += 1
            return deleted

    async def ping(self) -> bool:
        self._ensure_connected()
        return True

    async def close(self) -> None:
        """Close the store and drop all data."""
        self._connected = False
        self._store.clear()

    async def health_check(self) -> dict[str, Any]:
        """Return health status with key statistics."""
        async with self._lock:
            total_keys = len(self._store)
            now = self._clock()
            expired_keys = sum(1 for e in self._store.values() if e.is_expired(now))

        return {
            "backend": self.name,
            "connected": self.is_connected,
            "total_keys": total_keys,
            "expired_keys": expired_keys,
        }

    def ttl(self, key: str) -> float | None:
        """Remaining TTL for a key (sync helper for inspection)."""
        entry = self._store.get(key)
        if entry is None:
            return None
        return entry.ttl_remaining(self._clock())

    def size(self) -> int:
        """Get current number of keys (sync method for convenience)."""
        return len(self._store)
