"""Abstract base class for admission store backends."""

import asyncio
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, TypeVar

T = TypeVar("T")


class StoreUnavailableError(Exception):
    """Raised when the backing store cannot be reached or times out."""

    pass


@dataclass
class StoreEntry:
    """
    A stored value with expiry metadata.

    Attributes:
        value: Stored data (sorted-set members or hash fields)
        expires_at: Epoch seconds after which the entry is gone (None = never)
    """

    value: Any
    expires_at: float | None = None

    def is_expired(self, now: float) -> bool:
        """Check if entry has expired at ``now``."""
        if self.expires_at is None:
            return False
        return now >= self.expires_at

    def ttl_remaining(self, now: float) -> float | None:
        """Get remaining TTL in seconds, or None if no expiry."""
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - now)


@dataclass
class FieldCounts:
    """Integer hash fields read back from the store."""

    key: str
    fields: dict[str, int] = field(default_factory=dict)

    def get(self, name: str) -> int:
        return self.fields.get(name, 0)


def window_ttl(window_seconds: float) -> int:
    """TTL applied to a window key, at least one second."""
    return max(1, math.ceil(window_seconds))


class StoreBackend(ABC):
    """
    Abstract base class for admission store backends.

    A backend must offer ordered-set insert/prune/count, key TTL, hash
    increments and a liveness ping. Each method is one round trip; the
    multi-command methods run as a single atomic batch.

    Implementations raise ``StoreUnavailableError`` on any connection,
    timeout or protocol failure.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """
        Unique identifier for this backend.

        Returns:
            Backend name (e.g., 'memory', 'redis')
        """
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """
        Check if the backend believes it is connected.

        Returns:
            True if connected, False otherwise
        """
        ...

    @abstractmethod
    async def window_hit(
        self,
        key: str,
        now: float,
        member: str,
        window_start: float,
        ttl_seconds: int,
    ) -> int:
        """
        Record one attempt and count the live window in one atomic batch.

        Inserts ``member`` scored ``now``, prunes members scored below
        ``window_start``, counts what remains and refreshes the key TTL.

        Args:
            key: Window key
            now: Current epoch seconds (score of the new member)
            member: Unique member name for this attempt
            window_start: Entries scored below this are pruned
            ttl_seconds: Expiry applied to the key

        Returns:
            Live entry count including the new member
        """
        ...

    @abstractmethod
    async def window_peek(self, key: str, window_start: float) -> int:
        """
        Prune and count a window without recording an attempt.

        Args:
            key: Window key
            window_start: Entries scored below this are pruned

        Returns:
            Live entry count
        """
        ...

    @abstractmethod
    async def increment_fields(
        self,
        key: str,
        increments: dict[str, int],
        ttl_seconds: int,
    ) -> None:
        """
        Increment hash fields and set the key TTL in one atomic batch.

        Args:
            key: Hash key
            increments: Field name to delta
            ttl_seconds: Expiry applied to the key
        """
        ...

    @abstractmethod
    async def get_fields_many(self, keys: list[str]) -> list[FieldCounts]:
        """
        Read integer hash fields for several keys.

        Args:
            keys: Hash keys

        Returns:
            One FieldCounts per key, in order; missing keys have no fields
        """
        ...

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """
        Delete keys.

        Returns:
            Number of keys that existed
        """
        ...

    @abstractmethod
    async def ping(self) -> bool:
        """Liveness probe; raises StoreUnavailableError when unreachable."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the store connection."""
        ...

    async def health_check(self) -> dict[str, Any]:
        """
        Perform a health check on the store backend.

        Returns:
            Dict with health status info
        """
        try:
            reachable = await self.ping()
        except StoreUnavailableError as e:
            return {"backend": self.name, "connected": False, "error": str(e)}
        return {"backend": self.name, "connected": reachable}


async def bounded(awaitable: Awaitable[T], timeout: float | None) -> T:
    """
    Await a store call, converting a timeout into ``StoreUnavailableError``.

    Args:
        awaitable: The store call
        timeout: Seconds to wait (None = no bound)
    """
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as e:
        raise StoreUnavailableError(f"store call exceeded {timeout}s") from e
