"""Core models, errors, types, and utilities."""

from locker_finder.core.errors import (
    DiscoveryError,
    InvalidEventFormatError,
    InvalidInputError,
    NotFoundError,
    RpcRequestError,
    TransientRpcError,
)
from locker_finder.core.models import CacheEntry, DiscoveryResult, LogEvent, ScanRange
from locker_finder.core.types import ProgressCallback, Strategy

__all__ = [
    "CacheEntry",
    "DiscoveryError",
    "DiscoveryResult",
    "InvalidEventFormatError",
    "InvalidInputError",
    "LogEvent",
    "NotFoundError",
    "ProgressCallback",
    "RpcRequestError",
    "ScanRange",
    "Strategy",
    "TransientRpcError",
]
