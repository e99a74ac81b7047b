"""Main application entry point — CLI lookup and HTTP lookup service.

Usage:
    python -m locker_finder.app 0xTOKEN
    python -m locker_finder.app 0xTOKEN --block 23547886
    python -m locker_finder.app 0xTOKEN --no-cache --debug
    python -m locker_finder.app --serve
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
import time

from aiohttp import web

from locker_finder.chain import BaseChainClient, JsonRpcClient
from locker_finder.config import AppConfig
from locker_finder.core.errors import (
    DiscoveryError,
    InvalidEventFormatError,
    InvalidInputError,
    NotFoundError,
    TransientRpcError,
)
from locker_finder.core.models import DiscoveryResult, HealthStatus
from locker_finder.core.retry import CallExecutor
from locker_finder.core.types import ProgressCallback, Strategy
from locker_finder.core.utils import setup_logging, short
from locker_finder.discovery import DiscoveryScanner
from locker_finder.storage import BaseResultCache, build_cache

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Optional Prometheus metrics (graceful if library missing)
# ---------------------------------------------------------------------------
try:
    from prometheus_client import Counter, start_http_server

    PROM_AVAILABLE = True
    LOOKUPS_TOTAL = Counter(
        "locker_lookups_total",
        "Locker lookups by strategy and outcome",
        ["strategy", "outcome"],
    )
    CACHE_HITS_TOTAL = Counter(
        "locker_cache_hits_total",
        "Lookups answered from the result cache",
    )
except ImportError:
    PROM_AVAILABLE = False


_ERROR_STATUS: dict[type[DiscoveryError], int] = {
    InvalidInputError: 400,
    NotFoundError: 404,
    InvalidEventFormatError: 422,
    TransientRpcError: 502,
}


class LockerFinderApp:
    """Wires chain client -> executor -> cache -> scanner."""

    def __init__(
        self,
        config: AppConfig,
        use_cache: bool = True,
        client: BaseChainClient | None = None,
    ) -> None:
        self._config = config
        self._start_time = time.monotonic()

        self._client = client or JsonRpcClient(config.rpc)
        self._cache: BaseResultCache | None = (
            build_cache(config.cache, config.database) if use_cache else None
        )
        self._scanner = DiscoveryScanner(
            client=self._client,
            settings=config.scan,
            executor=CallExecutor(config.retry),
            cache=self._cache,
        )

        self._runner: web.AppRunner | None = None
        self._stopped = asyncio.Event()

        # Counters for health
        self._lookups_served = 0
        self._lookups_failed = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._cache is not None:
            await self._cache.connect()
        if PROM_AVAILABLE and self._config.metrics.enabled:
            start_http_server(self._config.metrics.port)
            logger.info(
                "Prometheus metrics on :%d/metrics",
                self._config.metrics.port,
            )

    def stop(self) -> None:
        """Ask a running ``serve()`` to return."""
        self._stopped.set()

    async def shutdown(self) -> None:
        """Graceful shutdown — stop the server, close connections."""
        self._stopped.set()
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        await self._client.close()
        if self._cache is not None:
            await self._cache.close()
        logger.info("Shutdown complete")

    async def lookup(
        self,
        token_address: str,
        known_block: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> DiscoveryResult:
        """Run one discovery, updating health counters and metrics."""
        try:
            result, strategy = await self._scanner.discover_with_strategy(
                token_address, known_block, on_progress
            )
        except DiscoveryError as exc:
            self._lookups_failed += 1
            attempted = Strategy.FULL if known_block is None else Strategy.TARGETED
            self._count(attempted, type(exc).__name__)
            raise

        self._lookups_served += 1
        metrics_on = PROM_AVAILABLE and self._config.metrics.enabled
        if strategy is Strategy.CACHE and metrics_on:
            CACHE_HITS_TOTAL.inc()
        self._count(strategy, "found")
        return result

    # ------------------------------------------------------------------
    # HTTP lookup service
    # ------------------------------------------------------------------

    def build_web_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/", self._handle_health)
        app.router.add_get("/lockers/{token}", self._handle_lookup)
        return app

    async def serve(self) -> None:
        """Serve ``/lockers/{token}`` and ``/health`` until shutdown."""
        self._runner = web.AppRunner(self.build_web_app())
        await self._runner.setup()
        site = web.TCPSite(
            self._runner, self._config.server.host, self._config.server.port
        )
        await site.start()
        logger.info(
            "Lookup service on %s:%d", self._config.server.host, self._config.server.port
        )
        await self._stopped.wait()

    async def _handle_lookup(self, request: web.Request) -> web.Response:
        token = request.match_info["token"]
        raw_block = request.query.get("block")
        known_block: int | None = None
        if raw_block:
            if not (raw_block.isascii() and raw_block.isdigit()):
                return web.json_response(
                    {"error": f"Invalid block number: {raw_block!r}"}, status=400
                )
            known_block = int(raw_block)

        try:
            result = await asyncio.wait_for(
                self.lookup(
                    token,
                    known_block,
                    lambda msg: logger.debug("[%s] %s", short(token), msg),
                ),
                timeout=self._config.server.lookup_timeout_seconds,
            )
        except asyncio.TimeoutError:
            return web.json_response(
                {"error": "Lookup timed out"}, status=504
            )
        except DiscoveryError as exc:
            return web.json_response(
                {"error": str(exc), "kind": type(exc).__name__},
                status=_ERROR_STATUS.get(type(exc), 500),
            )
        return web.json_response(result.as_dict())

    async def _handle_health(self, _request: web.Request) -> web.Response:
        status = await self._get_health()
        code = 200 if status.chain_head is not None else 503
        return web.json_response(
            {
                "status": "ok" if code == 200 else "degraded",
                "uptime_seconds": round(status.uptime_seconds, 1),
                "lookups_served": status.lookups_served,
                "lookups_failed": status.lookups_failed,
                "cache_backend": status.cache_backend,
                "rpc_url": status.rpc_url,
                "chain_head": status.chain_head,
            },
            status=code,
        )

    async def _get_health(self) -> HealthStatus:
        try:
            head: int | None = await self._client.get_block_number()
        except Exception:
            logger.warning("Health probe could not reach the RPC endpoint")
            head = None
        return HealthStatus(
            uptime_seconds=time.monotonic() - self._start_time,
            lookups_served=self._lookups_served,
            lookups_failed=self._lookups_failed,
            cache_backend=self._cache.name if self._cache else "none",
            rpc_url=self._config.rpc.url,
            chain_head=head,
        )

    def _count(self, strategy: Strategy, outcome: str) -> None:
        if PROM_AVAILABLE and self._config.metrics.enabled:
            LOOKUPS_TOTAL.labels(strategy=str(strategy), outcome=outcome).inc()


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def _block_number(value: str) -> int:
    if not (value.isascii() and value.isdigit()):
        raise argparse.ArgumentTypeError(f"invalid block number: {value!r}")
    return int(value)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Locker Finder — find the LP locker and position id of a token"
    )
    parser.add_argument(
        "token",
        nargs="?",
        help="Token contract address (0x...)",
    )
    parser.add_argument(
        "--block",
        type=_block_number,
        default=None,
        help="Known creation block; probes only the blocks around it",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Neither read nor write the result cache",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Run the HTTP lookup service instead of a single lookup",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args(argv)
    if not args.serve and not args.token:
        parser.error("a token address is required unless --serve is given")
    return args


async def _run_lookup(app: LockerFinderApp, args: argparse.Namespace) -> int:
    try:
        result = await app.lookup(
            args.token,
            args.block,
            lambda msg: logger.info("%s", msg),
        )
    except DiscoveryError as exc:
        print(
            json.dumps({"error": str(exc), "kind": type(exc).__name__}),
            file=sys.stderr,
        )
        return 1
    print(json.dumps(result.as_dict(), indent=2))
    return 0


async def _main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    config = AppConfig()

    # Override log level if --debug
    log_level = "DEBUG" if args.debug else config.log_level
    setup_logging(level=log_level, json_format=config.log_json)

    config.validate()

    app = LockerFinderApp(config=config, use_cache=not args.no_cache)
    await app.start()
    try:
        if not args.serve:
            return await _run_lookup(app, args)

        # Graceful shutdown on SIGINT / SIGTERM
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, app.stop)
        await app.serve()
        return 0
    finally:
        await app.shutdown()


def main() -> None:
    raise SystemExit(asyncio.run(_main()))


if __name__ == "__main__":
    main()
