"""Shared type aliases and enumerations."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TypeVar

T = TypeVar("T")

# Receives human-readable status lines during a scan
ProgressCallback = Callable[[str], None]

# A single no-argument chain call, e.g. ``lambda: client.get_block_number()``
AsyncOperation = Callable[[], Awaitable[T]]


class Strategy(str, Enum):
    """How a discovery request was (or will be) resolved."""

    CACHE = "cache"
    TARGETED = "targeted"
    FULL = "full"

    def __str__(self) -> str:
        return self.value


class CacheBackend(str, Enum):
    """Supported result cache stores."""

    JSON = "json"
    POSTGRES = "postgres"
    NONE = "none"

    def __str__(self) -> str:
        return self.value
