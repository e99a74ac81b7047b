"""Locker discovery: cache lookup, targeted probe and full historical scan."""

from __future__ import annotations

import logging

from eth_utils import is_address, to_checksum_address

from locker_finder.chain.base_client import BaseChainClient
from locker_finder.config import ScanConfig
from locker_finder.core.errors import (
    InvalidInputError,
    NotFoundError,
    TransientRpcError,
)
from locker_finder.core.models import DiscoveryResult, LogEvent, ScanRange
from locker_finder.core.retry import CallExecutor
from locker_finder.core.types import AsyncOperation, ProgressCallback, Strategy, T
from locker_finder.core.utils import short
from locker_finder.discovery.patterns import (
    decode_mint_event,
    find_locker_pair,
    find_mint_event,
    receipt_mentions,
    unique_transaction_hashes,
)
from locker_finder.storage.base_cache import BaseResultCache

logger = logging.getLogger(__name__)

FOUND_MESSAGE = "Found!"
CACHE_HIT_MESSAGE = "Loaded from cache"
ERROR_PREFIX = "Error: "


class DiscoveryScanner:
    """Finds the locker contract and position id for a launched token.

    With a hint block only the few blocks around it are probed
    (targeted strategy). Without one, every factory transaction from the
    factory's deployment block up to the current head is inspected in
    fixed-size windows (full strategy). Windows and transactions are
    processed one at a time.
    """

    def __init__(
        self,
        client: BaseChainClient,
        settings: ScanConfig | None = None,
        executor: CallExecutor | None = None,
        cache: BaseResultCache | None = None,
    ) -> None:
        self._client = client
        self._cfg = settings or ScanConfig()
        self._executor = executor or CallExecutor()
        self._cache = cache

    async def discover(
        self,
        token_address: str,
        known_block: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> DiscoveryResult:
        """Resolve *token_address* to its locker and position token id.

        Raises
        ------
        InvalidInputError
            Malformed address or negative hint block.
        NotFoundError
            The searched range holds no locker pattern.
        InvalidEventFormatError
            A mint event lacks its recipient or id topic.
        TransientRpcError
            A chain call still failed after all retries.
        """
        result, _ = await self.discover_with_strategy(
            token_address, known_block, on_progress
        )
        return result

    async def discover_with_strategy(
        self,
        token_address: str,
        known_block: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> tuple[DiscoveryResult, Strategy]:
        """Same as :meth:`discover`, also returning the strategy that answered."""
        try:
            result, strategy = await self._discover(
                token_address, known_block, on_progress
            )
        except Exception as exc:
            _report(on_progress, f"{ERROR_PREFIX}{str(exc) or type(exc).__name__}")
            raise

        logger.info(
            "Locker for %s: %s (token id %d, via %s)",
            short(result.token_address),
            result.locker_address,
            result.token_id,
            strategy,
        )
        _report(on_progress, FOUND_MESSAGE)
        return result, strategy

    async def _discover(
        self,
        token_address: str,
        known_block: int | None,
        on_progress: ProgressCallback | None,
    ) -> tuple[DiscoveryResult, Strategy]:
        token = _validate_address(token_address)
        if known_block is not None and (
            isinstance(known_block, bool)
            or not isinstance(known_block, int)
            or known_block < 0
        ):
            raise InvalidInputError(f"Invalid block number: {known_block!r}")

        # Step 1: cache
        if self._cache is not None:
            entry = await self._cache.get(token)
            if entry is not None:
                logger.debug("Cache hit for %s", short(token))
                _report(on_progress, CACHE_HIT_MESSAGE)
                return (
                    DiscoveryResult(
                        token_address=token,
                        locker_address=entry.locker_address,
                        token_id=int(entry.token_id),
                    ),
                    Strategy.CACHE,
                )

        # Step 2: scan
        _report(on_progress, "Starting search...")
        if known_block is not None:
            strategy = Strategy.TARGETED
            result = await self._targeted_search(token, known_block, on_progress)
        else:
            strategy = Strategy.FULL
            result = await self._full_search(token, on_progress)

        # Step 3: remember
        if self._cache is not None:
            await self._cache.put(token, result.locker_address, result.token_id)

        return result, strategy

    # ------------------------------------------------------------------
    # Targeted strategy
    # ------------------------------------------------------------------

    async def _targeted_search(
        self,
        token: str,
        known_block: int,
        on_progress: ProgressCallback | None,
    ) -> DiscoveryResult:
        radius = self._cfg.targeted_radius
        window = ScanRange(max(0, known_block - radius), known_block + radius)
        _report(
            on_progress,
            f"Searching blocks {window.from_block} to {window.to_block}...",
        )

        token_logs = await self._call(
            lambda: self._client.get_logs(
                token, window.from_block, window.to_block
            )
        )
        tx_hashes = unique_transaction_hashes(token_logs)
        logger.info(
            "Found %d log(s) in %d transaction(s) for %s in blocks %d-%d",
            len(token_logs),
            len(tx_hashes),
            short(token),
            window.from_block,
            window.to_block,
        )

        for tx_hash in tx_hashes:
            receipt = await self._receipt(tx_hash)
            match = find_locker_pair(receipt)
            if match is not None:
                locker, token_id = match
                logger.debug("Locker pair found in tx %s", tx_hash)
                return DiscoveryResult(token, locker, token_id)
            logger.debug(
                "No locker pair in tx %s (%d logs)", tx_hash, len(receipt)
            )

        raise NotFoundError(
            f"Token not found in block {known_block}", scope=known_block
        )

    # ------------------------------------------------------------------
    # Full historical strategy
    # ------------------------------------------------------------------

    async def _full_search(
        self,
        token: str,
        on_progress: ProgressCallback | None,
    ) -> DiscoveryResult:
        factory = self._cfg.factory_address
        genesis = self._cfg.genesis_block

        # Head is read once; blocks mined during the scan are not visited
        head = await self._call(self._client.get_block_number)
        if head < genesis:
            raise NotFoundError(
                f"Token not found in factory events: {token}", scope=token
            )

        total = max(head - genesis, 1)
        for window in ScanRange(genesis, head).windows(self._cfg.window_size):
            pct = (window.from_block - genesis) * 100 / total
            _report(
                on_progress,
                f"Searching blocks {window.from_block} to {window.to_block} "
                f"({pct:.1f}% complete)...",
            )
            try:
                result = await self._scan_window(token, factory, window)
            except TransientRpcError as exc:
                logger.warning(
                    "Error searching blocks %d to %d, continuing: %s",
                    window.from_block,
                    window.to_block,
                    exc,
                )
                continue
            if result is not None:
                return result

        raise NotFoundError(
            f"Token not found in factory events: {token}", scope=token
        )

    async def _scan_window(
        self, token: str, factory: str, window: ScanRange
    ) -> DiscoveryResult | None:
        factory_logs = await self._call(
            lambda: self._client.get_logs(
                factory, window.from_block, window.to_block
            )
        )
        logger.debug(
            "Found %d factory log(s) in blocks %d to %d",
            len(factory_logs),
            window.from_block,
            window.to_block,
        )

        for tx_hash in unique_transaction_hashes(factory_logs):
            receipt = await self._receipt(tx_hash)
            if not receipt_mentions(receipt, token):
                continue

            logger.info("Found transaction with token: %s", tx_hash)
            mint = find_mint_event(receipt, factory)
            if mint is None:
                logger.debug("No locker NFT mint found in tx %s", tx_hash)
                continue

            # Malformed mint aborts the whole scan, it is never skipped
            locker, token_id = decode_mint_event(mint)
            return DiscoveryResult(token, locker, token_id)

        return None

    # ------------------------------------------------------------------
    # RPC helpers
    # ------------------------------------------------------------------

    async def _receipt(self, tx_hash: str) -> list[LogEvent]:
        return await self._call(
            lambda: self._client.get_transaction_receipt(tx_hash)
        )

    async def _call(self, operation: AsyncOperation[T]) -> T:
        try:
            return await self._executor.execute(operation)
        except Exception as exc:
            raise TransientRpcError(
                f"RPC call failed after retries: {exc}", last_error=exc
            ) from exc


def _validate_address(token_address: str) -> str:
    if (
        not isinstance(token_address, str)
        or not token_address.startswith("0x")
        or not is_address(token_address)
    ):
        raise InvalidInputError(f"Invalid token address: {token_address!r}")
    return to_checksum_address(token_address)


def _report(on_progress: ProgressCallback | None, message: str) -> None:
    if on_progress is None:
        return
    try:
        on_progress(message)
    except Exception:
        logger.exception("Progress callback failed on %r", message)
