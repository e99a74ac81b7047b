"""Shared fixtures."""

from __future__ import annotations

import pytest

from locker_finder.config import RetryPolicy, ScanConfig
from locker_finder.core.retry import CallExecutor
from tests.fakes import FACTORY, FakeChainClient


async def no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def chain() -> FakeChainClient:
    return FakeChainClient(head=150)


@pytest.fixture
def scan_config() -> ScanConfig:
    return ScanConfig(
        factory_address=FACTORY,
        genesis_block=100,
        window_size=10,
        targeted_radius=5,
    )


@pytest.fixture
def executor() -> CallExecutor:
    return CallExecutor(RetryPolicy(max_attempts=3, delay_ms=0), sleep=no_sleep)
