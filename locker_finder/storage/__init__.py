"""Result cache layer."""

from __future__ import annotations

from locker_finder.config import CacheConfig, DatabaseConfig
from locker_finder.core.types import CacheBackend
from locker_finder.storage.base_cache import BaseResultCache
from locker_finder.storage.json_cache import JsonFileResultCache
from locker_finder.storage.postgres_cache import PostgresResultCache

__all__ = [
    "BaseResultCache",
    "JsonFileResultCache",
    "PostgresResultCache",
    "build_cache",
]


def build_cache(
    cache_config: CacheConfig,
    db_config: DatabaseConfig | None = None,
) -> BaseResultCache | None:
    """Instantiate the configured backend, or ``None`` when caching is off."""
    backend = CacheBackend(cache_config.backend)
    if backend is CacheBackend.NONE:
        return None
    if backend is CacheBackend.POSTGRES:
        return PostgresResultCache(
            db_config or DatabaseConfig(),
            namespace=cache_config.namespace,
            ttl_ms=cache_config.ttl_ms,
        )
    return JsonFileResultCache(
        cache_config.path,
        namespace=cache_config.namespace,
        ttl_ms=cache_config.ttl_ms,
    )
