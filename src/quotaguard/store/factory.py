"""Store factory for creating backends based on configuration."""

import logging
import time
from typing import Any, Callable

from quotaguard.config import Settings, settings as default_settings
from quotaguard.store.base import StoreBackend
from quotaguard.store.memory import InMemoryStore
from quotaguard.store.redis import RedisStore

logger = logging.getLogger(__name__)


def create_store(
    backend: str | None = None,
    settings: Settings | None = None,
    clock: Callable[[], float] = time.time,
    **kwargs: Any,
) -> StoreBackend:
    """
    Create a store backend instance.

    Args:
        backend: Backend type ("memory" or "redis"), defaults to config
        settings: Settings to read from, defaults to the process settings
        clock: Clock for the in-memory backend's key expiry
        **kwargs: Overrides passed to the Redis backend

    Returns:
        StoreBackend instance

    Raises:
        ValueError: If backend type is unknown
    """
    settings = settings or default_settings
    backend_type = backend or settings.store_backend

    if backend_type == "memory":
        return InMemoryStore(clock=clock)

    elif backend_type == "redis":
        if not settings.redis_url:
            logger.warning(
                "Redis URL not configured, falling back to in-memory store. "
                "Quotas will not be shared across processes. "
                "Set REDIS_URL environment variable to enable Redis."
            )
            return InMemoryStore(clock=clock)

        return RedisStore(
            url=kwargs.get("url", settings.redis_url),
            prefix=kwargs.get("prefix", settings.redis_prefix),
            max_connections=kwargs.get("max_connections", settings.redis_max_connections),
            socket_timeout=kwargs.get("socket_timeout", settings.redis_socket_timeout),
            socket_connect_timeout=kwargs.get(
                "socket_connect_timeout", settings.redis_socket_timeout
            ),
        )

    else:
        raise ValueError(f"Unknown store backend: {backend_type}")


async def initialize_store(store: StoreBackend) -> StoreBackend:
    """
    Establish the store connection during startup.

    A Redis store that cannot connect is kept as is: it retries on the
    next operation and the limiter fails open meanwhile.

    Returns:
        The same store
    """
    if isinstance(store, RedisStore):
        connected = await store.connect()
        if not connected:
            logger.warning("Redis not reachable at startup; admission checks will fail open")
    logger.info(f"Initialized {store.name} store backend")
    return store


async def shutdown_store(store: StoreBackend) -> None:
    """Close the store during shutdown."""
    await store.close()
    logger.info("Store shutdown complete")
