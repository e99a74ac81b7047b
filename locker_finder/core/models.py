"""Domain models used across the application."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from eth_utils import decode_hex


@dataclass(frozen=True, slots=True)
class DiscoveryResult:
    """Locker and position NFT found for a token."""

    token_address: str
    locker_address: str
    token_id: int

    def as_dict(self) -> dict[str, str]:
        # Token ids can exceed 2**53, keep them as decimal text
        return {
            "tokenAddress": self.token_address,
            "lockerAddress": self.locker_address,
            "tokenId": str(self.token_id),
        }


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """A cached discovery — maps 1:1 to the persisted JSON object."""

    locker_address: str
    token_id: str
    timestamp: int  # epoch millis

    def is_fresh(self, now_ms: int, ttl_ms: int) -> bool:
        return now_ms - self.timestamp <= ttl_ms

    def to_json(self) -> dict[str, Any]:
        return {
            "lockerAddress": self.locker_address,
            "tokenId": self.token_id,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_json(cls, raw: dict[str, Any]) -> CacheEntry:
        return cls(
            locker_address=str(raw["lockerAddress"]),
            token_id=str(int(raw["tokenId"])),
            timestamp=int(raw["timestamp"]),
        )


@dataclass(frozen=True, slots=True)
class LogEvent:
    """Read-only projection of an EVM log record."""

    address: str
    topics: tuple[str, ...] = ()
    data: bytes = b""
    transaction_hash: str = ""
    block_number: int = 0
    log_index: int = 0

    @classmethod
    def from_rpc(cls, raw: dict[str, Any]) -> LogEvent:
        """Build from a JSON-RPC log object (hex quantities)."""
        return cls(
            address=raw["address"],
            topics=tuple(t.lower() for t in raw.get("topics") or ()),
            data=decode_hex(raw.get("data") or "0x"),
            transaction_hash=raw.get("transactionHash") or "",
            block_number=_hex_to_int(raw.get("blockNumber")),
            log_index=_hex_to_int(raw.get("logIndex")),
        )


@dataclass(frozen=True, slots=True)
class ScanRange:
    """Inclusive block range ``[from_block, to_block]``."""

    from_block: int
    to_block: int

    def __post_init__(self) -> None:
        if self.from_block < 0 or self.to_block < 0:
            raise ValueError(f"negative block in range {self}")
        if self.from_block > self.to_block:
            raise ValueError(
                f"from_block {self.from_block} > to_block {self.to_block}"
            )

    def windows(self, size: int) -> Iterator[ScanRange]:
        """Yield consecutive non-overlapping windows of at most *size* blocks."""
        if size < 1:
            raise ValueError("window size must be positive")
        start = self.from_block
        while start <= self.to_block:
            end = min(start + size - 1, self.to_block)
            yield ScanRange(start, end)
            start = end + 1

    def __len__(self) -> int:
        return self.to_block - self.from_block + 1


@dataclass(slots=True)
class HealthStatus:
    """Lookup service health snapshot."""

    uptime_seconds: float = 0.0
    lookups_served: int = 0
    lookups_failed: int = 0
    cache_backend: str = "none"
    rpc_url: str = ""
    chain_head: int | None = None


def _hex_to_int(value: str | int | None) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return int(value, 16)
