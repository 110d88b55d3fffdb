"""
Store module for admission-control state.

Provides pluggable backends (in-memory and Redis) holding window entry
sets and daily usage hashes shared across limiter instances.
"""

from quotaguard.store.base import (
    FieldCounts,
    StoreBackend,
    StoreEntry,
    StoreUnavailableError,
    bounded,
)
from quotaguard.store.memory import InMemoryStore
from quotaguard.store.redis import RedisStore
from quotaguard.store.factory import create_store, initialize_store, shutdown_store

__all__ = [
    "FieldCounts",
    "InMemoryStore",
    "RedisStore",
    "StoreBackend",
    "StoreEntry",
    "StoreUnavailableError",
    "bounded",
    "create_store",
    "initialize_store",
    "shutdown_store",
]
