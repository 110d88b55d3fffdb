"""Daily usage counters per dependency, independent of admission."""

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable

from quotaguard.quota.models import DEFAULT_IDENTIFIER, DailyStats
from quotaguard.store.base import StoreBackend, bounded

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60


def stats_key(dependency_name: str, identifier: str, day: str) -> str:
    return f"api_stats:{dependency_name}:{identifier}:{day}"


class UsageRecorder:
    """
    Counts total, successful and failed outbound calls per UTC day.

    Each day is one store hash with ``total``, ``success`` and ``error``
    fields, expiring after the retention period.
    """

    def __init__(
        self,
        store: StoreBackend,
        clock: Callable[[], float] = time.time,
        timeout: float | None = None,
        retention_days: int = 7,
    ) -> None:
        self._store = store
        self._clock = clock
        self._timeout = timeout
        self._retention_days = retention_days
        self._retention_seconds = retention_days * DAY_SECONDS

    def _today(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    async def record(
        self,
        dependency_name: str,
        identifier: str = DEFAULT_IDENTIFIER,
        success: bool = True,
    ) -> None:
        """
        Count one call against today.

        Raises:
            StoreUnavailableError: If the store fails or times out
        """
        day = self._today().date().isoformat()
        await bounded(
            self._store.increment_fields(
                stats_key(dependency_name, identifier, day),
                {"total": 1, "success" if success else "error": 1},
                ttl_seconds=self._retention_seconds,
            ),
            self._timeout,
        )

    async def stats(
        self,
        dependency_name: str,
        identifier: str = DEFAULT_IDENTIFIER,
        days: int = 7,
    ) -> dict[str, DailyStats]:
        """
        Read today and the ``days - 1`` previous days, newest first.

        ``days`` is capped at the retention period; older days have expired.

        Raises:
            StoreUnavailableError: If the store fails or times out
        """
        today = self._today()
        span = max(0, min(days, self._retention_days))
        dates = [(today - timedelta(days=i)).date().isoformat() for i in range(span)]
        if not dates:
            return {}

        rows = await bounded(
            self._store.get_fields_many(
                [stats_key(dependency_name, identifier, day) for day in dates]
            ),
            self._timeout,
        )
        return {
            day: DailyStats(
                total=row.get("total"),
                success=row.get("success"),
                error=row.get("error"),
            )
            for day, row in zip(dates, rows)
        }
