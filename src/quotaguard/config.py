"""Configuration module using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Store
    store_backend: str = "redis"  # "memory" or "redis"
    redis_url: str | None = None  # e.g. redis://localhost:6379/0
    redis_prefix: str = "quotaguard:"  # Key prefix for namespacing
    redis_max_connections: int = 10
    redis_socket_timeout: float = 1.0

    # Upper bound on one store round trip before failing open
    store_timeout_seconds: float = 0.5

    # Usage statistics
    stats_retention_days: int = 7

    # Optional JSON file seeding the quota registry at startup
    quota_config_path: str | None = None

    # Logging
    log_level: str = "INFO"

    # Admin API server
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_key: str | None = None  # Optional bearer token for the admin API


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience function for quick access
settings = get_settings()
