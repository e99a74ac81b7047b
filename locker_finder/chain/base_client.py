"""Abstract chain log client — the only way the engine talks to a node."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from locker_finder.core.models import LogEvent


class BaseChainClient(ABC):
    """Read-only log access to an EVM chain.

    Implementations return logs in node order (ascending block, then log
    index) and raise on any failure; retrying is the caller's business.
    """

    @abstractmethod
    async def get_logs(
        self,
        address: str,
        from_block: int,
        to_block: int,
        topics: Sequence[str | None] | None = None,
    ) -> list[LogEvent]:
        """Logs emitted by *address* in the inclusive block range."""
        ...

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> list[LogEvent]:
        """Every log of the transaction's receipt, in log index order."""
        ...

    @abstractmethod
    async def get_block_number(self) -> int:
        """Current chain head."""
        ...

    async def close(self) -> None:
        """Release network resources."""
        return None
