"""Result cache kept in a single JSON document on disk."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

from locker_finder.core.models import CacheEntry
from locker_finder.core.utils import epoch_millis
from locker_finder.storage.base_cache import DEFAULT_TTL_MS, BaseResultCache

logger = logging.getLogger(__name__)


class JsonFileResultCache(BaseResultCache):
    """``{namespace: {token: entry}}`` persisted to *path*.

    Writes go through a temp file and ``os.replace`` so readers never
    see a half-written document. An asyncio lock serializes
    read-modify-write cycles within the process.
    """

    name = "json"

    def __init__(
        self,
        path: str | Path,
        namespace: str = "clanker_v1_lockers",
        ttl_ms: int = DEFAULT_TTL_MS,
        clock: Callable[[], int] = epoch_millis,
    ) -> None:
        super().__init__(ttl_ms=ttl_ms, clock=clock)
        self._path = Path(path)
        self._namespace = namespace
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def _load(self, key: str) -> CacheEntry | None:
        raw = self._read_namespace().get(key)
        if raw is None:
            return None
        return CacheEntry.from_json(raw)

    async def _store(self, key: str, entry: CacheEntry) -> None:
        async with self._lock:
            document = self._read_document()
            bucket = document.get(self._namespace)
            if not isinstance(bucket, dict):
                bucket = {}
                document[self._namespace] = bucket
            bucket[key] = entry.to_json()
            self._write_document(document)

    def _read_namespace(self) -> dict[str, Any]:
        bucket = self._read_document().get(self._namespace)
        return bucket if isinstance(bucket, dict) else {}

    def _read_document(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        document = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(document, dict):
            raise ValueError(f"cache file {self._path} is not a JSON object")
        return document

    def _write_document(self, document: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(
            dir=self._path.parent, prefix=".lockers-", suffix=".json"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2, sort_keys=True)
            os.replace(tmp, self._path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.debug("Cache written to %s", self._path)
