"""Structural log patterns that identify a token's locker.

Neither pattern relies on a correlating id: both lean on the order and
shape of the events the launch transaction emits. All functions here are
pure and work on already-fetched :class:`LogEvent` sequences.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from eth_utils import (
    big_endian_to_int,
    decode_hex,
    encode_hex,
    keccak,
    to_checksum_address,
)

from locker_finder.core.errors import InvalidEventFormatError
from locker_finder.core.models import LogEvent

# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = encode_hex(keccak(text="Transfer(address,address,uint256)"))

ZERO_TOPIC = "0x" + "00" * 32


def unique_transaction_hashes(logs: Iterable[LogEvent]) -> list[str]:
    """Distinct parent transaction hashes, in first-seen order."""
    seen: dict[str, None] = {}
    for log in logs:
        seen.setdefault(log.transaction_hash, None)
    return list(seen)


def find_locker_pair(logs: Sequence[LogEvent]) -> tuple[str, int] | None:
    """Locker deposit pattern: two adjacent logs from the same contract.

    The first carries exactly two topics, the second exactly one, and
    both share the same data word (the position id). Returns
    ``(locker_address, token_id)`` for the first such pair, else ``None``.
    """
    for log, nxt in zip(logs, logs[1:]):
        if (
            log.address.lower() == nxt.address.lower()
            and len(log.topics) == 2
            and len(nxt.topics) == 1
            and log.data == nxt.data
        ):
            return to_checksum_address(log.address), big_endian_to_int(log.data)
    return None


def receipt_mentions(logs: Iterable[LogEvent], address: str) -> bool:
    """True if any log in the receipt was emitted by *address*."""
    wanted = address.lower()
    return any(log.address.lower() == wanted for log in logs)


def is_position_mint(log: LogEvent, factory_address: str) -> bool:
    """ERC-721 ``Transfer`` from the zero address emitted by the factory."""
    return (
        len(log.topics) >= 2
        and log.topics[0] == TRANSFER_TOPIC
        and log.topics[1] == ZERO_TOPIC
        and log.address.lower() == factory_address.lower()
    )


def find_mint_event(
    logs: Iterable[LogEvent], factory_address: str
) -> LogEvent | None:
    """First position-NFT mint in the receipt, if any."""
    for log in logs:
        if is_position_mint(log, factory_address):
            return log
    return None


def decode_mint_event(log: LogEvent) -> tuple[str, int]:
    """Return ``(recipient, token_id)`` from a mint ``Transfer`` log.

    The recipient (topic 2) is the locker and topic 3 is the NFT id.
    """
    if len(log.topics) < 4 or not log.topics[2] or not log.topics[3]:
        raise InvalidEventFormatError(
            f"Invalid NFT transfer event format in tx {log.transaction_hash} "
            f"({len(log.topics)} topics)"
        )
    recipient = decode_hex(log.topics[2])[-20:]
    return to_checksum_address(recipient), big_endian_to_int(
        decode_hex(log.topics[3])
    )
