"""Abstract result cache — allows swapping the JSON file for PostgreSQL etc."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable

from locker_finder.core.models import CacheEntry
from locker_finder.core.utils import epoch_millis, short

logger = logging.getLogger(__name__)

DEFAULT_TTL_MS = 24 * 60 * 60 * 1000


class BaseResultCache(ABC):
    """Token address -> discovered locker, with a read-time TTL.

    The cache is an optimization only. ``get`` and ``put`` never raise:
    storage failures are logged and behave like a miss or a no-op.
    Expired entries are ignored on read and left in place.
    """

    name = "base"

    def __init__(
        self,
        ttl_ms: int = DEFAULT_TTL_MS,
        clock: Callable[[], int] = epoch_millis,
    ) -> None:
        self._ttl_ms = ttl_ms
        self._clock = clock

    async def connect(self) -> None:
        """Prepare the backing store."""
        return None

    async def close(self) -> None:
        """Release the backing store."""
        return None

    async def get(self, token_address: str) -> CacheEntry | None:
        key = token_address.lower()
        try:
            entry = await self._load(key)
        except Exception as exc:
            logger.warning("Cache read failed for %s: %s", short(key), exc)
            return None
        if entry is None:
            return None
        if not entry.is_fresh(self._clock(), self._ttl_ms):
            logger.debug("Cache entry for %s expired", short(key))
            return None
        return entry

    async def put(
        self, token_address: str, locker_address: str, token_id: int | str
    ) -> None:
        key = token_address.lower()
        entry = CacheEntry(
            locker_address=locker_address,
            token_id=str(token_id),
            timestamp=self._clock(),
        )
        try:
            await self._store(key, entry)
        except Exception as exc:
            logger.warning("Failed to save %s to cache: %s", short(key), exc)

    @abstractmethod
    async def _load(self, key: str) -> CacheEntry | None:
        """Raw lookup by lower-cased address; may raise."""
        ...

    @abstractmethod
    async def _store(self, key: str, entry: CacheEntry) -> None:
        """Upsert by lower-cased address; may raise."""
        ...
