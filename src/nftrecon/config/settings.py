"""Central config loading from layered TOML files plus environment overrides.

Layers (low to high priority):
1. nftrecon/config/default.toml
2. ~/.nftrecon/config.toml
3. NFTRECON_CONFIG env path (optional explicit override)
4. NFTRECON_* environment variables (``.env`` is honoured via python-dotenv)

The operator credential and the HTTP API token are read from environment
variables only and never appear in ``public_dict``.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from web3 import Web3

from nftrecon.recon.errors import ConfigError

PACKAGE_DIR = Path(__file__).parent
DEFAULT_CONFIG_PATH = PACKAGE_DIR / "default.toml"
USER_CONFIG_PATH = Path.home() / ".nftrecon" / "config.toml"

# Environment variable -> (toml section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "NFTRECON_RPC_URL": ("ledger", "rpc_url"),
    "NFTRECON_CHAIN_ID": ("ledger", "chain_id"),
    "NFTRECON_MANAGER_ADDRESS": ("ledger", "manager_address"),
    "NFTRECON_ASSET_ADDRESS": ("ledger", "asset_address"),
    "NFTRECON_SCAN_START_ID": ("scan", "start_id"),
    "NFTRECON_SCAN_END_ID": ("scan", "end_id"),
    "NFTRECON_POLL_INTERVAL_SECONDS": ("worker", "poll_interval_seconds"),
    "NFTRECON_READ_TIMEOUT_SECONDS": ("worker", "read_timeout_seconds"),
    "NFTRECON_CONFIRMATION_TIMEOUT_SECONDS": ("worker", "confirmation_timeout_seconds"),
    "NFTRECON_CONFIRMATION_POLL_SECONDS": ("worker", "confirmation_poll_seconds"),
    "NFTRECON_SERVER_HOST": ("server", "host"),
    "NFTRECON_SERVER_PORT": ("server", "port"),
}

_LAST_CONFIG_SOURCES: list[dict[str, str]] = []


def load_toml_file(path: Path | None) -> dict[str, Any]:
    """Load TOML file into a dict; return empty dict on failures."""
    if not path or not path.exists():
        return {}
    try:
        with path.open("rb") as handle:
            payload = tomllib.load(handle)
    except (OSError, tomllib.TOMLDecodeError):
        return {}
    return payload if isinstance(payload, dict) else {}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge dict values with override precedence."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def _to_non_empty_string(value: Any) -> str:
    """Convert value to stripped string, defaulting to empty string."""
    if value is None:
        return ""
    return str(value).strip()


def _to_int(value: Any, default: int, minimum: int = 1) -> int:
    """Convert value to bounded integer with fallback default."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        parsed = default
    return max(minimum, parsed)


def _to_float(value: Any, default: float, minimum: float, maximum: float) -> float:
    """Convert value to bounded float with fallback default."""
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        parsed = default
    return max(minimum, min(maximum, parsed))


def _section(payload: dict[str, Any], name: str) -> dict[str, Any]:
    """Return a TOML table by name, or an empty dict for missing/non-table values."""
    value = payload.get(name, {})
    return value if isinstance(value, dict) else {}


def get_user_config_path() -> Path:
    """Return canonical user config path."""
    return USER_CONFIG_PATH


def ensure_user_config_exists() -> Path:
    """Create user config scaffold outside pytest if it does not exist."""
    path = USER_CONFIG_PATH
    if path.exists() or os.getenv("PYTEST_CURRENT_TEST"):
        return path
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            """\
# nftrecon user overrides
# Secrets (NFTRECON_OPERATOR_KEY, NFTRECON_API_TOKEN) belong in the environment.

# [ledger]
# manager_address = "0x..."
# asset_address = "0x..."

# [scan]
# start_id = 0
# end_id = 500
""",
            encoding="utf-8",
        )
    except OSError:
        pass
    return path


def _env_layer() -> dict[str, Any]:
    """Collect NFTRECON_* environment overrides into a TOML-shaped dict."""
    layer: dict[str, Any] = {}
    for env_name, (section, key) in ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if raw is None or not raw.strip():
            continue
        layer.setdefault(section, {})[key] = raw.strip()
    return layer


def _load_layers() -> tuple[dict[str, Any], list[dict[str, str]]]:
    """Load and merge all configuration layers in precedence order."""
    merged: dict[str, Any] = {}
    sources: list[dict[str, str]] = []

    layers: list[tuple[str, Path]] = [
        ("package_default", DEFAULT_CONFIG_PATH),
        ("user", USER_CONFIG_PATH),
    ]

    explicit = os.getenv("NFTRECON_CONFIG")
    if explicit:
        layers.append(("explicit", Path(explicit).expanduser()))

    for source_name, path in layers:
        payload = load_toml_file(path)
        if payload:
            merged = _deep_merge(merged, payload)
            sources.append({"source": source_name, "path": str(path)})

    env = _env_layer()
    if env:
        merged = _deep_merge(merged, env)
        sources.append({"source": "environment", "path": "NFTRECON_*"})

    return merged, sources


def get_config_sources() -> list[dict[str, str]]:
    """Return last-computed config source list."""
    return [dict(item) for item in _LAST_CONFIG_SOURCES]


@dataclass(frozen=True)
class Config:
    """Effective runtime configuration from TOML layers and environment."""

    rpc_url: str
    chain_id: int | None
    manager_address: str
    asset_address: str

    scan_start_id: int
    scan_end_id: int

    poll_interval_seconds: int
    read_timeout_seconds: float
    confirmation_timeout_seconds: float
    confirmation_poll_seconds: float

    server_host: str
    server_port: int
    worker_name: str

    operator_key: str | None
    api_token: str | None

    def validate(self) -> Config:
        """Raise ``ConfigError`` unless the ledger surface is usable."""
        if not self.rpc_url:
            raise ConfigError("NFTRECON_RPC_URL is not set")
        for label, value in (
            ("NFTRECON_MANAGER_ADDRESS", self.manager_address),
            ("NFTRECON_ASSET_ADDRESS", self.asset_address),
        ):
            if not value:
                raise ConfigError(f"{label} is not set")
            if not Web3.is_address(value):
                raise ConfigError(f"{label} is not a valid address: {value}")
        if self.scan_start_id > self.scan_end_id:
            raise ConfigError(
                f"scan window is empty: start {self.scan_start_id} > end {self.scan_end_id}"
            )
        return self

    def public_dict(self) -> dict[str, Any]:
        """Return safe serialized config for CLI/status visibility."""
        return {
            "rpc_url": self.rpc_url,
            "chain_id": self.chain_id,
            "manager_address": self.manager_address,
            "asset_address": self.asset_address,
            "scan_start_id": self.scan_start_id,
            "scan_end_id": self.scan_end_id,
            "poll_interval_seconds": self.poll_interval_seconds,
            "read_timeout_seconds": self.read_timeout_seconds,
            "confirmation_timeout_seconds": self.confirmation_timeout_seconds,
            "confirmation_poll_seconds": self.confirmation_poll_seconds,
            "server_host": self.server_host,
            "server_port": self.server_port,
            "worker_name": self.worker_name,
            "operator_key_set": bool(self.operator_key),
            "api_token_set": bool(self.api_token),
        }


@lru_cache(maxsize=1)
def load_config() -> Config:
    """Load effective config from TOML layers plus environment."""
    load_dotenv()
    ensure_user_config_exists()
    toml_data, sources = _load_layers()

    global _LAST_CONFIG_SOURCES
    _LAST_CONFIG_SOURCES = sources

    ledger = _section(toml_data, "ledger")
    scan = _section(toml_data, "scan")
    worker = _section(toml_data, "worker")
    server = _section(toml_data, "server")

    chain_raw = _to_non_empty_string(ledger.get("chain_id"))
    chain_id = _to_int(chain_raw, 0, minimum=0) if chain_raw else 0

    port = _to_int(server.get("port"), 8787, minimum=1)
    if port > 65535:
        port = 8787

    return Config(
        rpc_url=_to_non_empty_string(ledger.get("rpc_url")),
        chain_id=chain_id or None,
        manager_address=_to_non_empty_string(ledger.get("manager_address")),
        asset_address=_to_non_empty_string(ledger.get("asset_address")),
        scan_start_id=_to_int(scan.get("start_id"), 0, minimum=0),
        scan_end_id=_to_int(scan.get("end_id"), 500, minimum=0),
        poll_interval_seconds=_to_int(
            worker.get("poll_interval_seconds"), 60, minimum=10
        ),
        read_timeout_seconds=_to_float(
            worker.get("read_timeout_seconds"), 10.0, minimum=1.0, maximum=120.0
        ),
        confirmation_timeout_seconds=_to_float(
            worker.get("confirmation_timeout_seconds"),
            60.0,
            minimum=5.0,
            maximum=900.0,
        ),
        confirmation_poll_seconds=_to_float(
            worker.get("confirmation_poll_seconds"), 2.0, minimum=0.1, maximum=30.0
        ),
        server_host=_to_non_empty_string(server.get("host")) or "127.0.0.1",
        server_port=port,
        worker_name=_to_non_empty_string(worker.get("name")) or "nft-recovery-worker",
        operator_key=_to_non_empty_string(os.environ.get("NFTRECON_OPERATOR_KEY"))
        or None,
        api_token=_to_non_empty_string(os.environ.get("NFTRECON_API_TOKEN")) or None,
    )


def get_config() -> Config:
    """Return cached effective configuration."""
    return load_config()


def reload_config() -> Config:
    """Clear config cache and return reloaded configuration."""
    load_config.cache_clear()
    return load_config()


if __name__ == "__main__":
    """Run a real-path config smoke test."""
    cfg = load_config()
    assert cfg.rpc_url
    assert cfg.scan_start_id >= 0
    assert cfg.poll_interval_seconds >= 10
    payload = cfg.public_dict()
    assert "operator_key" not in payload
    assert "api_token" not in payload
    print(
        f"""\
Config loaded: \
rpc={cfg.rpc_url}, \
manager={cfg.manager_address or '<unset>'}, \
scan={cfg.scan_start_id}-{cfg.scan_end_id}"""
    )
