"""
Fixed-window counting against the admission store.

Windows are aligned to the clock: a call at ``now`` falls in
``[floor(now / w) * w, that + w)``. Every attempt is recorded, admitted
or not, then entries older than the window start are pruned and the rest
counted, all in one store batch. Batches from concurrent callers can
interleave, so a window may admit slightly more than its limit under
contention. Because windows are aligned rather than rolling, a caller can
use up to twice the limit across a window boundary.
"""

import logging
import math
import time
import uuid
from typing import Callable

from quotaguard.quota.models import (
    AdmissionDecision,
    DecisionSource,
    WindowKey,
    WindowKind,
    utc_datetime,
)
from quotaguard.store.base import StoreBackend, bounded, window_ttl

logger = logging.getLogger(__name__)


def window_bounds(now: float, window_seconds: float) -> tuple[float, float]:
    """Start and end of the aligned window containing ``now``."""
    start = math.floor(now / window_seconds) * window_seconds
    return start, start + window_seconds


class WindowCounter:
    """Counts attempts per key inside aligned windows."""

    def __init__(
        self,
        store: StoreBackend,
        clock: Callable[[], float] = time.time,
        timeout: float | None = None,
        source: DecisionSource = DecisionSource.MAIN,
    ) -> None:
        """
        Initialize the counter.

        Args:
            store: Backing store holding the entry sets
            clock: Source of epoch seconds
            timeout: Bound on each store round trip
            source: Tag put on the decisions this counter produces
        """
        self._store = store
        self.source = source
        self._clock = clock
        self._timeout = timeout

    async def hit(
        self,
        key: WindowKey,
        window_seconds: float,
        max_count: int,
    ) -> AdmissionDecision:
        """
        Record an attempt and decide it.

        Raises:
            StoreUnavailableError: If the store fails or times out
        """
        now = self._clock()
        start, end = window_bounds(now, window_seconds)
        member = f"{now}-{uuid.uuid4().hex}"

        count = await bounded(
            self._store.window_hit(
                key.render(),
                now=now,
                member=member,
                window_start=start,
                ttl_seconds=window_ttl(window_seconds),
            ),
            self._timeout,
        )

        decision = AdmissionDecision.from_count(count, max_count, now, end, self.source)
        if not decision.allowed:
            logger.debug(
                f"{key.render()} over limit: {count}/{max_count}, "
                f"retry in {decision.retry_after:.3f}s"
            )
        return decision

    async def peek(
        self,
        key: WindowKey,
        window_seconds: float,
        max_count: int,
    ) -> tuple[int, AdmissionDecision]:
        """
        Count the current window without recording an attempt.

        The decision describes what the next attempt would get: allowed
        while fewer than ``max_count`` entries are live.

        Raises:
            StoreUnavailableError: If the store fails or times out
        """
        now = self._clock()
        start, end = window_bounds(now, window_seconds)
        count = await bounded(self._store.window_peek(key.render(), start), self._timeout)
        if count < max_count:
            return count, AdmissionDecision(
                allowed=True,
                remaining=max_count - count,
                reset_at=utc_datetime(end),
                source=self.source,
            )
        return count, AdmissionDecision.from_count(count + 1, max_count, now, end, self.source)


class BurstGate:
    """
    Per-second window consulted before the main quota.

    Uses the same counting as the main window under the ``:burst`` key
    of the scope.
    """

    window_seconds = 1.0

    def __init__(
        self,
        store: StoreBackend,
        clock: Callable[[], float] = time.time,
        timeout: float | None = None,
    ) -> None:
        self._counter = WindowCounter(store, clock, timeout, source=DecisionSource.BURST)

    @staticmethod
    def burst_key(key: WindowKey) -> WindowKey:
        return WindowKey(key.dependency_name, key.identifier, WindowKind.BURST)

    async def hit(self, key: WindowKey, burst_limit: int) -> AdmissionDecision:
        return await self._counter.hit(self.burst_key(key), self.window_seconds, burst_limit)

    async def peek(self, key: WindowKey, burst_limit: int) -> tuple[int, AdmissionDecision]:
        return await self._counter.peek(self.burst_key(key), self.window_seconds, burst_limit)
