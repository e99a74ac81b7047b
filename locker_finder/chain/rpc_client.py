"""JSON-RPC chain client over HTTP using aiohttp."""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Sequence
from typing import Any

import aiohttp

from locker_finder.chain.base_client import BaseChainClient
from locker_finder.config import RpcConfig
from locker_finder.core.errors import RpcRequestError
from locker_finder.core.models import LogEvent
from locker_finder.core.utils import short

logger = logging.getLogger(__name__)


class JsonRpcClient(BaseChainClient):
    """Single-endpoint Ethereum JSON-RPC client.

    One request per call, no batching and no retries.
    """

    def __init__(self, config: RpcConfig) -> None:
        self._url = config.url
        self._timeout = aiohttp.ClientTimeout(total=config.timeout_seconds)
        self._session: aiohttp.ClientSession | None = None
        self._ids = itertools.count(1)

    @property
    def url(self) -> str:
        return self._url

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> JsonRpcClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def call(self, method: str, params: list[Any]) -> Any:
        """Send one JSON-RPC request and return its ``result``."""
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        session = await self._get_session()
        try:
            async with session.post(self._url, json=payload) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    raise RpcRequestError(
                        method, f"HTTP {resp.status}: {body[:200]}"
                    )
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise RpcRequestError(method, f"{type(exc).__name__}: {exc}") from exc

        if not isinstance(data, dict):
            raise RpcRequestError(method, f"unexpected response {data!r:.200}")
        error = data.get("error")
        if error:
            if not isinstance(error, dict):
                raise RpcRequestError(method, str(error))
            raise RpcRequestError(
                method, str(error.get("message", error)), code=error.get("code")
            )
        return data.get("result")

    async def get_logs(
        self,
        address: str,
        from_block: int,
        to_block: int,
        topics: Sequence[str | None] | None = None,
    ) -> list[LogEvent]:
        flt: dict[str, Any] = {
            "address": address,
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block),
        }
        if topics:
            flt["topics"] = list(topics)
        result = await self.call("eth_getLogs", [flt])
        logs = [LogEvent.from_rpc(raw) for raw in result or []]
        logger.debug(
            "eth_getLogs %s [%d, %d] -> %d log(s)",
            short(address),
            from_block,
            to_block,
            len(logs),
        )
        return logs

    async def get_transaction_receipt(self, tx_hash: str) -> list[LogEvent]:
        receipt = await self.call("eth_getTransactionReceipt", [tx_hash])
        if receipt is None:
            # Unknown or not yet indexed by this node
            raise RpcRequestError(
                "eth_getTransactionReceipt", f"no receipt for {tx_hash}"
            )
        return [LogEvent.from_rpc(raw) for raw in receipt.get("logs") or []]

    async def get_block_number(self) -> int:
        result = await self.call("eth_blockNumber", [])
        return int(result, 16)
