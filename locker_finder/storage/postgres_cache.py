"""PostgreSQL result cache using asyncpg."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable

import asyncpg

from locker_finder.config import DatabaseConfig
from locker_finder.core.models import CacheEntry
from locker_finder.core.utils import epoch_millis
from locker_finder.storage.base_cache import DEFAULT_TTL_MS, BaseResultCache

logger = logging.getLogger(__name__)

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS kv_store (
    key             TEXT            PRIMARY KEY,
    value           JSONB           NOT NULL DEFAULT '{}'::jsonb,
    updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW()
);
"""

# Merges one token into the namespace row; concurrent writers to other
# tokens are preserved, same-token writers are last-write-wins.
_UPSERT_SQL = """
INSERT INTO kv_store (key, value, updated_at)
VALUES ($1, jsonb_build_object($2::text, $3::jsonb), NOW())
ON CONFLICT (key) DO UPDATE
    SET value = kv_store.value || EXCLUDED.value,
        updated_at = NOW()
"""

_SELECT_SQL = "SELECT value -> $2 FROM kv_store WHERE key = $1"


class PostgresResultCache(BaseResultCache):
    """One ``kv_store`` row per namespace holding the token mapping."""

    name = "postgres"

    def __init__(
        self,
        config: DatabaseConfig,
        namespace: str = "clanker_v1_lockers",
        ttl_ms: int = DEFAULT_TTL_MS,
        clock: Callable[[], int] = epoch_millis,
    ) -> None:
        super().__init__(ttl_ms=ttl_ms, clock=clock)
        self._config = config
        self._namespace = namespace
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        try:
            self._pool = await asyncpg.create_pool(
                dsn=self._config.dsn,
                min_size=self._config.pool_min,
                max_size=self._config.pool_max,
            )
            async with self._pool.acquire() as conn:
                await conn.execute(_SCHEMA_SQL)
        except Exception:
            # Lookups still work, just uncached
            logger.exception("PostgreSQL cache unavailable, continuing without it")
            self._pool = None
            return
        logger.info(
            "PostgreSQL pool created (%d-%d) and schema ensured",
            self._config.pool_min,
            self._config.pool_max,
        )

    async def close(self) -> None:
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("PostgreSQL pool closed")

    async def _load(self, key: str) -> CacheEntry | None:
        if self._pool is None:
            return None
        async with self._pool.acquire() as conn:
            raw = await conn.fetchval(_SELECT_SQL, self._namespace, key)
        if raw is None:
            return None
        return CacheEntry.from_json(json.loads(raw))

    async def _store(self, key: str, entry: CacheEntry) -> None:
        if self._pool is None:
            return
        async with self._pool.acquire() as conn:
            await conn.execute(
                _UPSERT_SQL, self._namespace, key, json.dumps(entry.to_json())
            )
