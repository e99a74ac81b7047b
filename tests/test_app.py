"""Tests for the application shell: lookups, HTTP service, CLI and config."""

from __future__ import annotations

import argparse
import asyncio
import json
from collections.abc import AsyncIterator, Sequence
from pathlib import Path

import pytest
import pytest_asyncio
from aiohttp import test_utils
from eth_utils import to_checksum_address
from prometheus_client import REGISTRY

from locker_finder.app import LockerFinderApp, _run_lookup, parse_args
from locker_finder.config import (
    AppConfig,
    CacheConfig,
    MetricsConfig,
    RetryPolicy,
    ScanConfig,
    ServerConfig,
)
from locker_finder.core.errors import InvalidEventFormatError, NotFoundError
from locker_finder.core.models import LogEvent
from tests.fakes import (
    FACTORY,
    LOCKER,
    TOKEN,
    FakeChainClient,
    locker_pair,
    mint_log,
    token_transfer,
    tx_hash,
)


def _config(
    cache: CacheConfig | None = None,
    server: ServerConfig | None = None,
    metrics: MetricsConfig | None = None,
) -> AppConfig:
    return AppConfig(
        retry=RetryPolicy(max_attempts=2, delay_ms=0),
        scan=ScanConfig(
            factory_address=FACTORY,
            genesis_block=100,
            window_size=10,
            targeted_radius=5,
        ),
        cache=cache
        or CacheConfig(backend="none", path="", namespace="ns", ttl_hours=24.0),
        server=server or ServerConfig(host="127.0.0.1", port=0),
        metrics=metrics or MetricsConfig(enabled=False),
    )


class SlowChainClient(FakeChainClient):
    """Chain whose log queries take longer than the lookup deadline."""

    async def get_logs(
        self,
        address: str,
        from_block: int,
        to_block: int,
        topics: Sequence[str | None] | None = None,
    ) -> list[LogEvent]:
        await asyncio.sleep(5)
        return await super().get_logs(address, from_block, to_block, topics)


def _sample(name: str, **labels: str) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.fixture
def launched_chain(chain: FakeChainClient) -> FakeChainClient:
    chain.add_transaction(
        tx_hash(1), 1000, [token_transfer(TOKEN), *locker_pair(LOCKER, 77)]
    )
    return chain


@pytest.fixture
def app(launched_chain: FakeChainClient) -> LockerFinderApp:
    return LockerFinderApp(_config(), client=launched_chain)


@pytest_asyncio.fixture
async def http(app: LockerFinderApp) -> AsyncIterator[test_utils.TestClient]:
    client = test_utils.TestClient(test_utils.TestServer(app.build_web_app()))
    await client.start_server()
    try:
        yield client
    finally:
        await client.close()


# ---------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------


class TestLookup:
    @pytest.mark.asyncio
    async def test_lookup_counts_success(self, app: LockerFinderApp) -> None:
        messages: list[str] = []
        result = await app.lookup(TOKEN, 1000, messages.append)
        assert result.token_id == 77
        assert messages[-1] == "Found!"
        health = await app._get_health()
        assert health.lookups_served == 1
        assert health.lookups_failed == 0
        assert health.chain_head == 150
        assert health.cache_backend == "none"

    @pytest.mark.asyncio
    async def test_lookup_counts_failure(self, app: LockerFinderApp) -> None:
        with pytest.raises(NotFoundError):
            await app.lookup(TOKEN, 5000)
        health = await app._get_health()
        assert health.lookups_failed == 1

    @pytest.mark.asyncio
    async def test_json_cache_backend(
        self, launched_chain: FakeChainClient, tmp_path: Path
    ) -> None:
        cache_cfg = CacheConfig(
            backend="json",
            path=str(tmp_path / "lockers.json"),
            namespace="clanker_v1_lockers",
            ttl_hours=24.0,
        )
        app = LockerFinderApp(_config(cache_cfg), client=launched_chain)
        await app.start()
        try:
            first = await app.lookup(TOKEN, 1000)
            calls = len(launched_chain.calls)
            second = await app.lookup(TOKEN, 1000)
        finally:
            await app.shutdown()
        assert first == second
        assert len(launched_chain.calls) == calls
        assert (tmp_path / "lockers.json").exists()


# ---------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------


class TestMetrics:
    @pytest.mark.asyncio
    async def test_counters_track_strategy_and_outcome(
        self, launched_chain: FakeChainClient, tmp_path: Path
    ) -> None:
        cache_cfg = CacheConfig(
            backend="json",
            path=str(tmp_path / "lockers.json"),
            namespace="clanker_v1_lockers",
            ttl_hours=24.0,
        )
        app = LockerFinderApp(
            _config(cache_cfg, metrics=MetricsConfig(enabled=True, port=0)),
            client=launched_chain,
        )
        lookups = "locker_lookups_total"
        targeted = _sample(lookups, strategy="targeted", outcome="found")
        cached = _sample(lookups, strategy="cache", outcome="found")
        missed = _sample(lookups, strategy="targeted", outcome="NotFoundError")
        hits = _sample("locker_cache_hits_total")

        await app.lookup(TOKEN, 1000)
        await app.lookup(TOKEN, 1000)
        with pytest.raises(NotFoundError):
            await app.lookup(to_checksum_address("0x" + "66" * 20), 5000)

        assert _sample(lookups, strategy="targeted", outcome="found") == targeted + 1
        assert _sample(lookups, strategy="cache", outcome="found") == cached + 1
        assert (
            _sample(lookups, strategy="targeted", outcome="NotFoundError")
            == missed + 1
        )
        assert _sample("locker_cache_hits_total") == hits + 1

    @pytest.mark.asyncio
    async def test_disabled_metrics_stay_untouched(
        self, app: LockerFinderApp
    ) -> None:
        before = _sample("locker_lookups_total", strategy="targeted", outcome="found")
        await app.lookup(TOKEN, 1000)
        after = _sample("locker_lookups_total", strategy="targeted", outcome="found")
        assert after == before


# ---------------------------------------------------------------
# HTTP service
# ---------------------------------------------------------------


class TestHttpService:
    @pytest.mark.asyncio
    async def test_lookup_with_hint(self, http: test_utils.TestClient) -> None:
        resp = await http.get(f"/lockers/{TOKEN}", params={"block": "1000"})
        assert resp.status == 200
        assert await resp.json() == {
            "tokenAddress": to_checksum_address(TOKEN),
            "lockerAddress": to_checksum_address(LOCKER),
            "tokenId": "77",
        }

    @pytest.mark.asyncio
    async def test_invalid_token(self, http: test_utils.TestClient) -> None:
        resp = await http.get("/lockers/0x1234")
        assert resp.status == 400
        body = await resp.json()
        assert body["kind"] == "InvalidInputError"

    @pytest.mark.asyncio
    async def test_invalid_block(self, http: test_utils.TestClient) -> None:
        resp = await http.get(f"/lockers/{TOKEN}", params={"block": "-3"})
        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_non_ascii_digits_block(self, http: test_utils.TestClient) -> None:
        resp = await http.get(f"/lockers/{TOKEN}", params={"block": "²"})
        assert resp.status == 400
        assert "Invalid block number" in (await resp.json())["error"]

    @pytest.mark.asyncio
    async def test_not_found(self, http: test_utils.TestClient) -> None:
        resp = await http.get(f"/lockers/{TOKEN}", params={"block": "5000"})
        assert resp.status == 404
        body = await resp.json()
        assert body["kind"] == "NotFoundError"

    @pytest.mark.asyncio
    async def test_rpc_failure(
        self, http: test_utils.TestClient, launched_chain: FakeChainClient
    ) -> None:
        launched_chain.fail_next["get_logs"] = 2
        resp = await http.get(f"/lockers/{TOKEN}", params={"block": "1000"})
        assert resp.status == 502

    @pytest.mark.asyncio
    async def test_health(self, http: test_utils.TestClient) -> None:
        await http.get(f"/lockers/{TOKEN}", params={"block": "1000"})
        resp = await http.get("/health")
        assert resp.status == 200
        body = await resp.json()
        assert body["status"] == "ok"
        assert body["lookups_served"] == 1
        assert body["chain_head"] == 150

    @pytest.mark.asyncio
    async def test_health_degraded_when_rpc_down(
        self, http: test_utils.TestClient, launched_chain: FakeChainClient
    ) -> None:
        launched_chain.fail_next["get_block_number"] = 1
        resp = await http.get("/health")
        assert resp.status == 503
        assert (await resp.json())["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_malformed_mint_is_unprocessable(
        self, chain: FakeChainClient
    ) -> None:
        chain.add_transaction(
            tx_hash(2), 103, [token_transfer(TOKEN), mint_log(FACTORY, LOCKER, None)]
        )
        app = LockerFinderApp(_config(), client=chain)
        client = test_utils.TestClient(test_utils.TestServer(app.build_web_app()))
        await client.start_server()
        try:
            resp = await client.get(f"/lockers/{TOKEN}")
            assert resp.status == 422
            body = await resp.json()
        finally:
            await client.close()
        assert body["kind"] == InvalidEventFormatError.__name__

    @pytest.mark.asyncio
    async def test_lookup_timeout(self) -> None:
        app = LockerFinderApp(
            _config(
                server=ServerConfig(
                    host="127.0.0.1", port=0, lookup_timeout_seconds=0.05
                )
            ),
            client=SlowChainClient(head=150),
        )
        client = test_utils.TestClient(test_utils.TestServer(app.build_web_app()))
        await client.start_server()
        try:
            resp = await client.get(f"/lockers/{TOKEN}", params={"block": "1000"})
            assert resp.status == 504
            assert (await resp.json())["error"] == "Lookup timed out"
        finally:
            await client.close()


# ---------------------------------------------------------------
# CLI
# ---------------------------------------------------------------


class TestCli:
    def test_parse_lookup(self) -> None:
        args = parse_args([TOKEN, "--block", "1000", "--no-cache"])
        assert args.token == TOKEN
        assert args.block == 1000
        assert args.no_cache
        assert not args.serve

    def test_serve_needs_no_token(self) -> None:
        args = parse_args(["--serve"])
        assert args.serve
        assert args.token is None

    def test_token_required(self) -> None:
        with pytest.raises(SystemExit):
            parse_args([])

    def test_rejects_bad_block(self) -> None:
        with pytest.raises(SystemExit):
            parse_args([TOKEN, "--block", "12a"])

    def test_rejects_non_ascii_digits(self) -> None:
        with pytest.raises(SystemExit):
            parse_args([TOKEN, "--block", "²"])

    @pytest.mark.asyncio
    async def test_run_lookup_prints_json(
        self, app: LockerFinderApp, capsys: pytest.CaptureFixture[str]
    ) -> None:
        args = argparse.Namespace(token=TOKEN, block=1000)
        assert await _run_lookup(app, args) == 0
        out = capsys.readouterr().out
        assert json.loads(out)["tokenId"] == "77"

    @pytest.mark.asyncio
    async def test_run_lookup_reports_failure(
        self, app: LockerFinderApp, capsys: pytest.CaptureFixture[str]
    ) -> None:
        args = argparse.Namespace(token=TOKEN, block=5000)
        assert await _run_lookup(app, args) == 1
        err = json.loads(capsys.readouterr().err)
        assert err["kind"] == "NotFoundError"


# ---------------------------------------------------------------
# Config validation
# ---------------------------------------------------------------


class TestConfig:
    def test_valid_config(self) -> None:
        _config().validate()

    def test_rejects_bad_factory(self) -> None:
        cfg = AppConfig(
            scan=ScanConfig(
                factory_address="0x123",
                genesis_block=0,
                window_size=10,
                targeted_radius=5,
            ),
            cache=CacheConfig(backend="none", path="", namespace="ns", ttl_hours=1.0),
        )
        with pytest.raises(SystemExit):
            cfg.validate()

    def test_rejects_zero_attempts(self) -> None:
        cfg = AppConfig(
            retry=RetryPolicy(max_attempts=0, delay_ms=0),
            cache=CacheConfig(backend="none", path="", namespace="ns", ttl_hours=1.0),
        )
        with pytest.raises(SystemExit):
            cfg.validate()

    def test_rejects_unknown_backend(self) -> None:
        cfg = AppConfig(
            cache=CacheConfig(backend="redis", path="", namespace="ns", ttl_hours=1.0)
        )
        with pytest.raises(SystemExit):
            cfg.validate()
