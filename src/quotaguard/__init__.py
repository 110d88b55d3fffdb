"""quotaguard - admission control for outbound third-party API calls."""

from quotaguard.quota import (
    AdmissionDecision,
    CurrentLimits,
    DailyStats,
    HealthStatus,
    InvalidQuotaConfigError,
    QuotaConfig,
    QuotaRegistry,
    RateLimiter,
    create_rate_limiter,
)
from quotaguard.store import StoreUnavailableError

__version__ = "0.1.0"

__all__ = [
    "AdmissionDecision",
    "CurrentLimits",
    "DailyStats",
    "HealthStatus",
    "InvalidQuotaConfigError",
    "QuotaConfig",
    "QuotaRegistry",
    "RateLimiter",
    "StoreUnavailableError",
    "create_rate_limiter",
]
