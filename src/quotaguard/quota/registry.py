"""
Quota registry.

Maps dependency names to their ``QuotaConfig``. The registry is an
explicit object handed to the limiter, so each limiter (and each test)
owns its configuration. Changes apply to future checks only.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from quotaguard.quota.models import (
    Configured,
    QuotaConfig,
    QuotaLookup,
    Unconfigured,
)

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60

# Marketplace and price APIs called by the business services
DEFAULT_QUOTAS: tuple[QuotaConfig, ...] = (
    QuotaConfig("amazon", window_seconds=DAY_SECONDS, max_requests=2000, burst_limit=10),
    QuotaConfig("rakuten", window_seconds=DAY_SECONDS, max_requests=10000, burst_limit=20),
    QuotaConfig("yahoo", window_seconds=DAY_SECONDS, max_requests=50000, burst_limit=100),
    # Keepa meters tokens per day, 5 requests per second
    QuotaConfig("keepa-api", window_seconds=DAY_SECONDS, max_requests=100000, burst_limit=5),
)


class QuotaRegistry:
    """In-process map from dependency name to quota configuration."""

    def __init__(self, configs: list[QuotaConfig] | tuple[QuotaConfig, ...] = ()) -> None:
        self._configs: dict[str, QuotaConfig] = {}
        for config in configs:
            self.set(config.dependency_name, config)

    @classmethod
    def with_defaults(cls) -> QuotaRegistry:
        """Registry seeded with the built-in marketplace quotas."""
        return cls(DEFAULT_QUOTAS)

    @classmethod
    def from_file(cls, path: str | Path) -> QuotaRegistry:
        """
        Seed a registry from a JSON file.

        The file maps dependency names to ``{"window_seconds", "max_requests",
        "burst_limit"}`` objects and replaces the built-in defaults entirely.
        A missing or unreadable file falls back to the defaults.
        """
        path = Path(path)
        if not path.exists():
            logger.warning(f"Quota config {path} not found, using defaults")
            return cls.with_defaults()

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            configs = [QuotaConfig.from_dict(name, limits) for name, limits in data.items()]
            registry = cls(configs)
        except (OSError, ValueError, AttributeError, TypeError) as e:
            logger.warning(f"Failed to load quota config from {path}: {e}, using defaults")
            return cls.with_defaults()

        logger.info(f"Loaded {len(configs)} quota configs from {path}")
        return registry

    def get(self, name: str) -> QuotaLookup:
        config = self._configs.get(name)
        if config is None:
            return Unconfigured(name)
        return Configured(config)

    def set(self, name: str, config: QuotaConfig) -> QuotaConfig:
        """
        Validate and register a configuration under ``name``.

        Raises:
            InvalidQuotaConfigError: If the configuration is invalid; the
                registry is left unmodified.
        """
        if config.dependency_name != name:
            config = QuotaConfig(
                dependency_name=name,
                window_seconds=config.window_seconds,
                max_requests=config.max_requests,
                burst_limit=config.burst_limit,
            )
        config.validate()
        self._configs[name] = config
        return config

    def remove(self, name: str) -> bool:
        return self._configs.pop(name, None) is not None

    def names(self) -> list[str]:
        return list(self._configs)

    def snapshot(self) -> dict[str, QuotaConfig]:
        return dict(self._configs)

    def __contains__(self, name: object) -> bool:
        return name in self._configs

    def __len__(self) -> int:
        return len(self._configs)
