"""
Rate limiter facade for outbound third-party API calls.

Callers ask ``check_rate_limit`` before calling a dependency, or
``wait_for_rate_limit`` to sleep out a rejection, and report the outcome
with ``record_request`` afterwards.

Request-path operations never raise on store trouble: checks fail open,
recording becomes a no-op and reads come back empty. Administrative
operations (``update_config``, ``reset_rate_limit``) do raise.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

from quotaguard.config import Settings, get_settings
from quotaguard.quota.models import (
    DEFAULT_IDENTIFIER,
    AdmissionDecision,
    Configured,
    CurrentLimits,
    DailyStats,
    DecisionSource,
    HealthStatus,
    QuotaConfig,
    WindowKey,
)
from quotaguard.quota.recorder import UsageRecorder
from quotaguard.quota.registry import QuotaRegistry
from quotaguard.quota.window import BurstGate, WindowCounter
from quotaguard.store.base import StoreBackend, StoreUnavailableError, bounded
from quotaguard.store.factory import create_store

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Admission control per external dependency and caller identifier.

    Each configured dependency has a main fixed-window quota and an
    optional per-second burst limit. The burst gate is consulted first;
    a burst rejection leaves the main window untouched.
    """

    def __init__(
        self,
        store: StoreBackend,
        registry: QuotaRegistry | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        store_timeout: float | None = 0.5,
        stats_retention_days: int = 7,
    ) -> None:
        """
        Initialize the limiter.

        Args:
            store: Backing store shared by every process enforcing the quotas
            registry: Quota configuration (defaults to the built-in quotas)
            clock: Source of epoch seconds
            sleep: Coroutine used by ``wait_for_rate_limit``
            store_timeout: Bound on each store round trip, in seconds
            stats_retention_days: How long daily usage counters are kept
        """
        self._store = store
        self._registry = registry if registry is not None else QuotaRegistry.with_defaults()
        self._clock = clock
        self._sleep = sleep
        self._timeout = store_timeout
        self._window = WindowCounter(store, clock, store_timeout)
        self._burst = BurstGate(store, clock, store_timeout)
        self._recorder = UsageRecorder(store, clock, store_timeout, stats_retention_days)

    @property
    def registry(self) -> QuotaRegistry:
        return self._registry

    @property
    def store(self) -> StoreBackend:
        return self._store

    async def check_rate_limit(
        self,
        dependency_name: str,
        identifier: str | None = None,
    ) -> AdmissionDecision:
        """
        Decide whether one outbound call may proceed, counting the attempt.

        Args:
            dependency_name: External API name (e.g., 'amazon')
            identifier: Caller scope within the dependency

        Returns:
            AdmissionDecision; always allowed for unconfigured dependencies
            and when the store is unavailable
        """
        lookup = self._registry.get(dependency_name)
        if not isinstance(lookup, Configured):
            logger.warning(f"No rate limit config found for API: {dependency_name}")
            return AdmissionDecision.unlimited(self._clock(), DecisionSource.UNCONFIGURED)

        config = lookup.config
        key = WindowKey(dependency_name, identifier or DEFAULT_IDENTIFIER)

        try:
            if config.burst_limit is not None:
                burst = await self._burst.hit(key, config.burst_limit)
                if not burst.allowed:
                    return burst

            return await self._window.hit(key, config.window_seconds, config.max_requests)
        except StoreUnavailableError as e:
            logger.error(f"Rate limit check failed for {dependency_name}, allowing: {e}")
            return AdmissionDecision.unlimited(self._clock(), DecisionSource.FAIL_OPEN)

    async def wait_for_rate_limit(
        self,
        dependency_name: str,
        identifier: str | None = None,
    ) -> AdmissionDecision:
        """
        Check once and, if rejected, sleep until the deciding window resets.

        The sleep is an ordinary ``asyncio.sleep``; cancelling the calling
        task cancels the wait. The call is not re-checked afterwards.

        Returns:
            The decision that was acted on
        """
        decision = await self.check_rate_limit(dependency_name, identifier)

        if not decision.allowed and decision.retry_after:
            logger.info(
                f"Rate limit exceeded for {dependency_name}, "
                f"waiting {decision.retry_after:.2f} seconds"
            )
            await self._sleep(decision.retry_after)

        return decision

    async def record_request(
        self,
        dependency_name: str,
        identifier: str | None = None,
        success: bool = True,
    ) -> None:
        """Count one completed outbound call in today's usage statistics."""
        try:
            await self._recorder.record(
                dependency_name, identifier or DEFAULT_IDENTIFIER, success
            )
        except StoreUnavailableError as e:
            logger.error(f"Failed to record API request stats for {dependency_name}: {e}")

    async def get_api_stats(
        self,
        dependency_name: str,
        identifier: str | None = None,
        days: int = 7,
    ) -> dict[str, DailyStats]:
        """
        Daily usage for the last ``days`` UTC days, keyed by ISO date.

        Returns:
            Stats per day; empty if the store is unavailable
        """
        try:
            return await self._recorder.stats(
                dependency_name, identifier or DEFAULT_IDENTIFIER, days
            )
        except StoreUnavailableError as e:
            logger.error(f"Failed to get API stats for {dependency_name}: {e}")
            return {}

    async def get_current_limits(
        self,
        dependency_name: str,
        identifier: str | None = None,
    ) -> CurrentLimits:
        """
        Configuration and live window counts, without recording an attempt.

        ``current`` is what the next check would decide on: the burst view
        when the burst window is full, the main window view otherwise.
        """
        lookup = self._registry.get(dependency_name)
        if not isinstance(lookup, Configured):
            return CurrentLimits(
                config=None,
                current=AdmissionDecision.unlimited(self._clock(), DecisionSource.UNCONFIGURED),
            )

        config = lookup.config
        key = WindowKey(dependency_name, identifier or DEFAULT_IDENTIFIER)

        try:
            burst_count = 0
            burst = None
            if config.burst_limit is not None:
                burst_count, burst = await self._burst.peek(key, config.burst_limit)
            main_count, current = await self._window.peek(
                key, config.window_seconds, config.max_requests
            )
        except StoreUnavailableError as e:
            logger.error(f"Failed to read current limits for {dependency_name}: {e}")
            return CurrentLimits(
                config=config,
                current=AdmissionDecision.unlimited(self._clock(), DecisionSource.FAIL_OPEN),
            )

        if burst is not None and not burst.allowed:
            current = burst
        return CurrentLimits(
            config=config,
            current=current,
            main_count=main_count,
            burst_count=burst_count,
        )

    async def reset_rate_limit(
        self,
        dependency_name: str,
        identifier: str | None = None,
    ) -> None:
        """
        Drop the main and burst windows of a scope.

        Raises:
            StoreUnavailableError: If the store fails or times out
        """
        key = WindowKey(dependency_name, identifier or DEFAULT_IDENTIFIER)
        try:
            await bounded(
                self._store.delete(key.render(), BurstGate.burst_key(key).render()),
                self._timeout,
            )
        except StoreUnavailableError as e:
            logger.error(f"Failed to reset rate limit for {dependency_name}: {e}")
            raise

        logger.info(f"Rate limit reset for {dependency_name}:{key.identifier}")

    def update_config(self, dependency_name: str, config: QuotaConfig) -> QuotaConfig:
        """
        Replace the quota of a dependency for future checks.

        Raises:
            InvalidQuotaConfigError: If the configuration is invalid; the
                previous configuration stays in effect
        """
        updated = self._registry.set(dependency_name, config)
        logger.info(
            f"Updated rate limit config for {dependency_name}: "
            f"{updated.max_requests}/{updated.window_seconds}s, burst {updated.burst_limit}"
        )
        return updated

    async def health_check(self) -> HealthStatus:
        """Probe the store and list configured dependencies."""
        try:
            details = await bounded(self._store.health_check(), self._timeout)
        except StoreUnavailableError as e:
            details = {"backend": self._store.name, "connected": False, "error": str(e)}

        reachable = bool(details.get("connected"))
        if not reachable:
            logger.error(f"Store health check failed: {details.get('error', 'not connected')}")

        return HealthStatus(
            store_reachable=reachable,
            configured_apis=self._registry.names(),
            backend=self._store.name,
            details=details,
        )


def create_rate_limiter(
    settings: Settings | None = None,
    store: StoreBackend | None = None,
) -> RateLimiter:
    """
    Build a limiter from settings.

    Args:
        settings: Settings to read from, defaults to the process settings
        store: Store to use instead of the configured backend

    Returns:
        RateLimiter seeded from ``quota_config_path`` or the built-in quotas
    """
    settings = settings or get_settings()
    if settings.quota_config_path:
        registry = QuotaRegistry.from_file(settings.quota_config_path)
    else:
        registry = QuotaRegistry.with_defaults()

    return RateLimiter(
        store=store or create_store(settings=settings),
        registry=registry,
        store_timeout=settings.store_timeout_seconds,
        stats_retention_days=settings.stats_retention_days,
    )
