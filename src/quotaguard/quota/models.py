"""
Data types for admission control.

Quota configuration, the tagged registry lookup, window keys and the
decision/statistics records returned to callers.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union

DEFAULT_IDENTIFIER = "default"

# Sentinel "remaining" for decisions that enforce nothing
UNLIMITED_REMAINING = 999_999

# Horizon reported as reset time for permissive decisions
UNLIMITED_RESET_SECONDS = 3600.0


class InvalidQuotaConfigError(ValueError):
    """Raised when a quota configuration is malformed."""

    pass


@dataclass(frozen=True)
class QuotaConfig:
    """
    Rate limits for one external dependency.

    ``max_requests`` calls are admitted per fixed, clock-aligned window of
    ``window_seconds``. When ``burst_limit`` is set, at most that many
    calls are admitted per clock second on top of the main window.
    """

    dependency_name: str
    window_seconds: float
    max_requests: int
    burst_limit: int | None = None

    def validate(self) -> None:
        """
        Check the configuration.

        Raises:
            InvalidQuotaConfigError: If any limit is missing or not positive
        """
        if not isinstance(self.dependency_name, str) or not self.dependency_name:
            raise InvalidQuotaConfigError("dependency_name must be a non-empty string")
        if (
            isinstance(self.window_seconds, bool)
            or not isinstance(self.window_seconds, (int, float))
            or not math.isfinite(self.window_seconds)
            or self.window_seconds <= 0
        ):
            raise InvalidQuotaConfigError(
                f"{self.dependency_name}: window_seconds must be > 0, got {self.window_seconds!r}"
            )
        if (
            isinstance(self.max_requests, bool)
            or not isinstance(self.max_requests, int)
            or self.max_requests <= 0
        ):
            raise InvalidQuotaConfigError(
                f"{self.dependency_name}: max_requests must be a positive integer, "
                f"got {self.max_requests!r}"
            )
        if self.burst_limit is not None and (
            isinstance(self.burst_limit, bool)
            or not isinstance(self.burst_limit, int)
            or self.burst_limit <= 0
        ):
            raise InvalidQuotaConfigError(
                f"{self.dependency_name}: burst_limit must be a positive integer, "
                f"got {self.burst_limit!r}"
            )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> QuotaConfig:
        try:
            return cls(
                dependency_name=name,
                window_seconds=data["window_seconds"],
                max_requests=data["max_requests"],
                burst_limit=data.get("burst_limit"),
            )
        except KeyError as e:
            raise InvalidQuotaConfigError(f"{name}: missing field {e.args[0]}") from e


@dataclass(frozen=True)
class Configured:
    """Registry lookup hit."""

    config: QuotaConfig


@dataclass(frozen=True)
class Unconfigured:
    """Registry lookup miss; the dependency is unlimited."""

    dependency_name: str


QuotaLookup = Union[Configured, Unconfigured]


class WindowKind(str, Enum):
    """Which counter a window key belongs to."""

    MAIN = "main"
    BURST = "burst"


@dataclass(frozen=True)
class WindowKey:
    """One counted scope: dependency, caller identifier and window kind."""

    dependency_name: str
    identifier: str = DEFAULT_IDENTIFIER
    kind: WindowKind = WindowKind.MAIN

    def render(self) -> str:
        base = f"ratelimit:{self.dependency_name}:{self.identifier}"
        if self.kind is WindowKind.BURST:
            return f"{base}:burst"
        return base


class DecisionSource(str, Enum):
    """What produced an admission decision."""

    MAIN = "main"
    BURST = "burst"
    UNCONFIGURED = "unconfigured"
    FAIL_OPEN = "fail_open"


def utc_datetime(epoch: float) -> datetime:
    return datetime.fromtimestamp(epoch, tz=timezone.utc)


@dataclass
class AdmissionDecision:
    """Result of an admission check."""

    allowed: bool
    """Whether the outbound call may proceed."""

    remaining: int
    """Calls left in the deciding window."""

    reset_at: datetime
    """When the deciding window ends (UTC)."""

    retry_after: float | None = None
    """Seconds to wait before retrying (rejections only)."""

    source: DecisionSource = DecisionSource.MAIN
    """Which counter or policy decided."""

    @classmethod
    def unlimited(cls, now: float, source: DecisionSource) -> AdmissionDecision:
        """Permissive decision used for unconfigured dependencies and fail-open."""
        return cls(
            allowed=True,
            remaining=UNLIMITED_REMAINING,
            reset_at=utc_datetime(now + UNLIMITED_RESET_SECONDS),
            source=source,
        )

    @classmethod
    def from_count(
        cls,
        count: int,
        max_count: int,
        now: float,
        window_end: float,
        source: DecisionSource,
    ) -> AdmissionDecision:
        """Decide from the live count of a window that includes this attempt."""
        if count > max_count:
            return cls(
                allowed=False,
                remaining=0,
                reset_at=utc_datetime(window_end),
                retry_after=max(0.0, window_end - now),
                source=source,
            )
        return cls(
            allowed=True,
            remaining=max_count - count,
            reset_at=utc_datetime(window_end),
            source=source,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "remaining": self.remaining,
            "reset_at": self.reset_at.isoformat(),
            "retry_after": self.retry_after,
            "source": self.source.value,
        }


@dataclass
class DailyStats:
    """Usage counters for one UTC day."""

    total: int = 0
    success: int = 0
    error: int = 0

    @property
    def success_rate(self) -> float:
        """Percentage of successful calls; 100 when nothing was recorded."""
        if self.total > 0:
            return self.success / self.total * 100
        return 100.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "success": self.success,
            "error": self.error,
            "success_rate": self.success_rate,
        }


@dataclass
class CurrentLimits:
    """Read-only view of a scope's configuration and window usage."""

    config: QuotaConfig | None
    current: AdmissionDecision
    main_count: int = 0
    burst_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "config": self.config.to_dict() if self.config else None,
            "current": self.current.to_dict(),
            "main_count": self.main_count,
            "burst_count": self.burst_count,
        }


@dataclass
class HealthStatus:
    """Limiter health as seen through the store."""

    store_reachable: bool
    configured_apis: list[str]
    backend: str
    details: dict[str, Any] = field(default_factory=dict)
    """Backend-specific health info (key counts, server version)."""

    @property
    def limiter_active(self) -> bool:
        return self.store_reachable

    def to_dict(self) -> dict[str, Any]:
        return {
            "store_reachable": self.store_reachable,
            "limiter_active": self.limiter_active,
            "configured_apis": self.configured_apis,
            "backend": self.backend,
            "details": self.details,
        }
