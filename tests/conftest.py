"""Pytest configuration and fixtures."""

import pytest

from quotaguard.quota import QuotaConfig, QuotaRegistry, RateLimiter
from quotaguard.store import InMemoryStore

# Aligned to both the minute and the second
START = 1_700_000_040.0


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, now: float = START) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Clock starting on a minute boundary."""
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryStore:
    """In-memory store sharing the fake clock."""
    return InMemoryStore(clock=clock)


@pytest.fixture
def registry() -> QuotaRegistry:
    """Registry with one 60s/3 request provider and a 2/s burst."""
    return QuotaRegistry(
        [QuotaConfig("provider", window_seconds=60, max_requests=3, burst_limit=2)]
    )


@pytest.fixture
def limiter(store: InMemoryStore, registry: QuotaRegistry, clock: FakeClock) -> RateLimiter:
    """Limiter over the in-memory store and fake clock."""
    return RateLimiter(store=store, registry=registry, clock=clock, store_timeout=1.0)
