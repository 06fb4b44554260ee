"""
Configuration for solbatch.

Settings come from a TOML document (``config/settings.toml`` by default).
The RPC endpoint can be overridden from the CLI or the environment, the same
way as the other tools we run against Helius / public mainnet.
"""

from __future__ import annotations

import math
import os
import tomllib
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import ConfigError
from .models import sol_to_lamports

DEFAULT_CONFIG_PATH = Path("config") / "settings.toml"
PUBLIC_MAINNET_RPC = "https://api.mainnet-beta.solana.com"

DEFAULT_FEE_SOL = Decimal("0.001")
DEFAULT_CONFIRMATION_TIMEOUT = 60
DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_MAX_CONCURRENT = 10
DEFAULT_MAX_RETRIES = 5
DEFAULT_RETRY_DELAY = 0.5
DEFAULT_SIGNATURE_PAGE_LIMIT = 1000


@dataclass(frozen=True)
class Settings:
    rpc_endpoint: str
    logs_dir_path: Path
    transactions_log_file: Path
    errors_log_file: Path
    results_file_path: Path
    transaction_fee_sol: Decimal = DEFAULT_FEE_SOL
    confirmation_timeout_seconds: float = DEFAULT_CONFIRMATION_TIMEOUT
    confirmation_poll_interval_seconds: float = DEFAULT_POLL_INTERVAL
    keys_file_path: Optional[Path] = None
    wallets_file_path: Optional[Path] = None
    min_balance_sol: Optional[Decimal] = None
    transaction_count_range: Optional[Tuple[int, int]] = None
    max_concurrent_requests: int = DEFAULT_MAX_CONCURRENT
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_initial_delay_seconds: float = DEFAULT_RETRY_DELAY
    signature_page_limit: int = DEFAULT_SIGNATURE_PAGE_LIMIT

    @property
    def fee_lamports(self) -> int:
        return sol_to_lamports(self.transaction_fee_sol)

    @property
    def min_balance_lamports(self) -> int:
        return sol_to_lamports(self.min_balance_sol or 0)

    def require_sweep(self) -> "Settings":
        if self.keys_file_path is None:
            raise ConfigError("keys_file_path is required for sweep")
        return self

    def require_scan(self) -> "Settings":
        if self.wallets_file_path is None:
            raise ConfigError("wallets_file_path is required for scan")
        if self.min_balance_sol is None:
            raise ConfigError("min_balance_sol is required for scan")
        if self.transaction_count_range is None:
            raise ConfigError("transaction_count_range is required for scan")
        return self


# ---------------- RPC endpoint ----------------
def resolve_rpc_url(
    configured: str = "",
    *,
    override: str = "",
    env: Optional[Mapping[str, str]] = None,
    warn=print,
) -> str:
    env = os.environ if env is None else env
    override = (override or "").strip()
    if override:
        return override
    env_override = (env.get("RPC_URL") or env.get("SOLANA_URL") or "").strip()
    if env_override:
        return env_override
    configured = (configured or "").strip()
    if configured:
        return configured
    api_key = (env.get("HELIUS_API_KEY") or "").strip()
    if api_key:
        return f"https://mainnet.helius-rpc.com/?api-key={api_key}"
    warn("WARNING: no RPC endpoint configured; using public mainnet RPC (slower, rate-limited).")
    return PUBLIC_MAINNET_RPC


# ---------------- Value coercion ----------------
def _decimal(raw: Dict[str, Any], key: str, default: Optional[Decimal]) -> Optional[Decimal]:
    value = raw.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be a number")
    try:
        result = Decimal(str(value))
    except InvalidOperation as exc:
        raise ConfigError(f"{key} must be a number") from exc
    if not result.is_finite():
        raise ConfigError(f"{key} must be a finite number")
    if result < 0:
        raise ConfigError(f"{key} must be >= 0")
    return result


def _number(raw: Dict[str, Any], key: str, default: float, *, positive: bool = True) -> float:
    value = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{key} must be a number")
    if not math.isfinite(value):
        raise ConfigError(f"{key} must be a finite number")
    if positive and value <= 0:
        raise ConfigError(f"{key} must be > 0")
    if value < 0:
        raise ConfigError(f"{key} must be >= 0")
    return value


def _integer(raw: Dict[str, Any], key: str, default: int, *, minimum: int = 1) -> int:
    value = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{key} must be an integer")
    if value < minimum:
        raise ConfigError(f"{key} must be >= {minimum}")
    return value


def _count_range(raw: Dict[str, Any]) -> Optional[Tuple[int, int]]:
    value = raw.get("transaction_count_range")
    if value is None:
        return None
    if (
        not isinstance(value, list)
        or len(value) != 2
        or any(isinstance(v, bool) or not isinstance(v, int) for v in value)
    ):
        raise ConfigError("transaction_count_range must be [min, max] integers")
    low, high = value
    if low < 0 or low > high:
        raise ConfigError(f"transaction_count_range is invalid: [{low}, {high}]")
    return low, high


def _path(base_dir: Path, raw: Dict[str, Any], key: str, default: Optional[Path] = None) -> Optional[Path]:
    value = raw.get(key)
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        raise ConfigError(f"{key} must be a path string")
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path.resolve()


# ---------------- Loading ----------------
def parse_settings(
    raw: Dict[str, Any],
    *,
    base_dir: Path,
    rpc_override: str = "",
    env: Optional[Mapping[str, str]] = None,
    warn=print,
) -> Settings:
    logs_dir = _path(base_dir, raw, "logs_dir_path", (base_dir / "logs").resolve())
    return Settings(
        rpc_endpoint=resolve_rpc_url(raw.get("rpc_endpoint") or "", override=rpc_override, env=env, warn=warn),
        logs_dir_path=logs_dir,
        transactions_log_file=_path(base_dir, raw, "transactions_log_file", logs_dir / "transactions.log"),
        errors_log_file=_path(base_dir, raw, "errors_log_file", logs_dir / "errors.log"),
        results_file_path=_path(base_dir, raw, "results_file_path", logs_dir / "filtered_wallets.json"),
        transaction_fee_sol=_decimal(raw, "transaction_fee_sol", DEFAULT_FEE_SOL),
        confirmation_timeout_seconds=_number(raw, "confirmation_timeout_seconds", DEFAULT_CONFIRMATION_TIMEOUT),
        confirmation_poll_interval_seconds=_number(raw, "confirmation_poll_interval_seconds", DEFAULT_POLL_INTERVAL),
        keys_file_path=_path(base_dir, raw, "keys_file_path"),
        wallets_file_path=_path(base_dir, raw, "wallets_file_path"),
        min_balance_sol=_decimal(raw, "min_balance_sol", None),
        transaction_count_range=_count_range(raw),
        max_concurrent_requests=_integer(raw, "max_concurrent_requests", DEFAULT_MAX_CONCURRENT),
        max_retries=_integer(raw, "max_retries", DEFAULT_MAX_RETRIES),
        retry_initial_delay_seconds=_number(raw, "retry_initial_delay_seconds", DEFAULT_RETRY_DELAY, positive=False),
        signature_page_limit=_integer(raw, "signature_page_limit", DEFAULT_SIGNATURE_PAGE_LIMIT),
    )


def load_settings(
    path: Path = DEFAULT_CONFIG_PATH,
    *,
    rpc_override: str = "",
    env: Optional[Mapping[str, str]] = None,
    warn=print,
) -> Settings:
    path = Path(path).expanduser()
    try:
        with path.open("rb") as fh:
            raw = tomllib.load(fh)
    except OSError as exc:
        raise ConfigError(f"Cannot read settings file {path}: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc

    return parse_settings(raw, base_dir=path.resolve().parent, rpc_override=rpc_override, env=env, warn=warn)
