"""Environment-based configuration with validation."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv
from eth_utils import is_address

from locker_finder.core.types import CacheBackend

# Load .env from project root or cwd
_env_path = Path(__file__).resolve().parent / ".env"
if _env_path.exists():
    load_dotenv(_env_path)
else:
    load_dotenv()

# Clanker v1 on Base
CLANKER_V1_ADDRESS = "0x9b84fce5dcd9a38d2d01d5d72373f6b6b067c3e1"
CLANKER_V1_START_BLOCK = 22963092


def _env(key: str, default: str = "") -> str:
    return os.getenv(key, default)


def _env_int(key: str, default: int = 0) -> int:
    return int(os.getenv(key, str(default)))


def _env_float(key: str, default: float = 0.0) -> float:
    return float(os.getenv(key, str(default)))


def _env_bool(key: str, default: bool = False) -> bool:
    return os.getenv(key, str(default)).lower() in ("1", "true", "yes")


# ---------------------------------------------------------------------------
# Sub-configs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RpcConfig:
    """JSON-RPC endpoint of the chain to scan."""

    url: str = field(
        default_factory=lambda: _env("RPC_URL", "https://mainnet.base.org")
    )
    timeout_seconds: float = field(
        default_factory=lambda: _env_float("RPC_TIMEOUT_SECONDS", 30.0)
    )


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Fixed-delay retry applied to every chain call."""

    max_attempts: int = field(
        default_factory=lambda: _env_int("RETRY_MAX_ATTEMPTS", 3)
    )
    delay_ms: int = field(
        default_factory=lambda: _env_int("RETRY_DELAY_MS", 1000)
    )


@dataclass(frozen=True, slots=True)
class ScanConfig:
    """Where and how wide the discovery scanner searches."""

    factory_address: str = field(
        default_factory=lambda: _env("FACTORY_ADDRESS", CLANKER_V1_ADDRESS)
    )
    genesis_block: int = field(
        default_factory=lambda: _env_int("GENESIS_BLOCK", CLANKER_V1_START_BLOCK)
    )
    window_size: int = field(
        default_factory=lambda: _env_int("SCAN_WINDOW_BLOCKS", 10_000)
    )
    targeted_radius: int = field(
        default_factory=lambda: _env_int("TARGETED_RADIUS_BLOCKS", 5)
    )


@dataclass(frozen=True, slots=True)
class CacheConfig:
    """Result cache backend and freshness."""

    backend: str = field(
        default_factory=lambda: _env("CACHE_BACKEND", str(CacheBackend.JSON))
    )
    path: str = field(
        default_factory=lambda: _env(
            "CACHE_PATH",
            str(Path.home() / ".cache" / "locker_finder" / "lockers.json"),
        )
    )
    namespace: str = field(
        default_factory=lambda: _env("CACHE_NAMESPACE", "clanker_v1_lockers")
    )
    ttl_hours: float = field(
        default_factory=lambda: _env_float("CACHE_TTL_HOURS", 24.0)
    )

    @property
    def ttl_ms(self) -> int:
        return int(self.ttl_hours * 60 * 60 * 1000)


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    """PostgreSQL connection settings (postgres cache backend)."""

    host: str = field(default_factory=lambda: _env("DB_HOST", "localhost"))
    port: int = field(default_factory=lambda: _env_int("DB_PORT", 5432))
    user: str = field(default_factory=lambda: _env("DB_USER", "locker"))
    password: str = field(default_factory=lambda: _env("DB_PASSWORD"))
    database: str = field(
        default_factory=lambda: _env("DB_NAME", "locker_finder")
    )
    pool_min: int = field(default_factory=lambda: _env_int("DB_POOL_MIN", 1))
    pool_max: int = field(default_factory=lambda: _env_int("DB_POOL_MAX", 5))

    @property
    def dsn(self) -> str:
        return (
            f"postgresql://{self.user}:{self.password}"
            f"@{self.host}:{self.port}/{self.database}"
        )


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """HTTP lookup service settings."""

    host: str = field(default_factory=lambda: _env("SERVER_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: _env_int("SERVER_PORT", 8080))
    lookup_timeout_seconds: float = field(
        default_factory=lambda: _env_float("SERVER_LOOKUP_TIMEOUT_SECONDS", 900.0)
    )


@dataclass(frozen=True, slots=True)
class MetricsConfig:
    """Prometheus metrics settings."""

    enabled: bool = field(
        default_factory=lambda: _env_bool("METRICS_ENABLED", False)
    )
    port: int = field(
        default_factory=lambda: _env_int("METRICS_PORT", 9090)
    )


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Root application configuration aggregating all sub-configs."""

    rpc: RpcConfig = field(default_factory=RpcConfig)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    scan: ScanConfig = field(default_factory=ScanConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    log_level: str = field(
        default_factory=lambda: _env("LOG_LEVEL", "INFO")
    )
    log_json: bool = field(
        default_factory=lambda: _env_bool("LOG_JSON", False)
    )

    def validate(self) -> None:
        """Validate required fields; exits on failure."""
        errors: list[str] = []
        if not self.rpc.url:
            errors.append("RPC_URL is required")
        if self.retry.max_attempts < 1:
            errors.append("RETRY_MAX_ATTEMPTS must be at least 1")
        if self.retry.delay_ms < 0:
            errors.append("RETRY_DELAY_MS must not be negative")
        if not is_address(self.scan.factory_address):
            errors.append("FACTORY_ADDRESS is not a valid address")
        if self.scan.genesis_block < 0:
            errors.append("GENESIS_BLOCK must not be negative")
        if self.scan.window_size < 1:
            errors.append("SCAN_WINDOW_BLOCKS must be at least 1")
        if self.scan.targeted_radius < 0:
            errors.append("TARGETED_RADIUS_BLOCKS must not be negative")
        if self.cache.backend not in {str(b) for b in CacheBackend}:
            errors.append(
                f"CACHE_BACKEND must be one of "
                f"{', '.join(str(b) for b in CacheBackend)}"
            )
        if (
            self.cache.backend == str(CacheBackend.POSTGRES)
            and not self.database.password
        ):
            errors.append("DB_PASSWORD is required for the postgres cache")
        if errors:
            for e in errors:
                print(f"[CONFIG ERROR] {e}", file=sys.stderr)
            raise SystemExit(1)
