"""
Admission control for outbound third-party API calls.

Provides per-dependency fixed-window quotas with a per-second burst gate,
daily usage statistics and the ``RateLimiter`` facade tying them together.
"""

from quotaguard.quota.models import (
    AdmissionDecision,
    Configured,
    CurrentLimits,
    DailyStats,
    DecisionSource,
    HealthStatus,
    InvalidQuotaConfigError,
    QuotaConfig,
    QuotaLookup,
    Unconfigured,
    WindowKey,
    WindowKind,
)
from quotaguard.quota.registry import DEFAULT_QUOTAS, QuotaRegistry
from quotaguard.quota.window import BurstGate, WindowCounter
from quotaguard.quota.recorder import UsageRecorder
from quotaguard.quota.limiter import RateLimiter, create_rate_limiter

__all__ = [
    "AdmissionDecision",
    "BurstGate",
    "Configured",
    "CurrentLimits",
    "DEFAULT_QUOTAS",
    "DailyStats",
    "DecisionSource",
    "HealthStatus",
    "InvalidQuotaConfigError",
    "QuotaConfig",
    "QuotaLookup",
    "QuotaRegistry",
    "RateLimiter",
    "Unconfigured",
    "UsageRecorder",
    "WindowCounter",
    "WindowKey",
    "WindowKind",
    "create_rate_limiter",
]
