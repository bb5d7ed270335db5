"""Shared test fixtures for the nftrecon test suite.

Every test runs with NFTRECON_* variables cleared and the user config
layer pointed at an empty temp path, so a developer machine's settings
never leak into assertions.
"""

import os

import pytest

from nftrecon.config import settings
from nftrecon.recon import coordinator as coordinator_mod
from tests.helpers import (
    API_TOKEN,
    ASSET_ADDRESS,
    MANAGER_ADDRESS,
    OPERATOR_KEY,
    FakeLedgerClient,
    make_config,
)


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch, tmp_path):
    """Clear NFTRECON_* env and the cached config around each test."""
    for name in list(os.environ):
        if name.startswith("NFTRECON_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(settings, "USER_CONFIG_PATH", tmp_path / "user-config.toml")
    settings.load_config.cache_clear()
    yield
    settings.load_config.cache_clear()


@pytest.fixture
def worker_env(monkeypatch):
    """Populate the environment with a complete, valid worker configuration."""
    values = {
        "NFTRECON_RPC_URL": "http://127.0.0.1:8545",
        "NFTRECON_MANAGER_ADDRESS": MANAGER_ADDRESS,
        "NFTRECON_ASSET_ADDRESS": ASSET_ADDRESS,
        "NFTRECON_OPERATOR_KEY": OPERATOR_KEY,
        "NFTRECON_API_TOKEN": API_TOKEN,
        "NFTRECON_SCAN_START_ID": "100",
        "NFTRECON_SCAN_END_ID": "150",
        "NFTRECON_CONFIRMATION_POLL_SECONDS": "0.1",
    }
    for name, value in values.items():
        monkeypatch.setenv(name, value)
    settings.load_config.cache_clear()
    return values


@pytest.fixture
def fake_ledger(monkeypatch):
    """Route config-built coordinators to an in-memory ledger.

    Defaults to scenario B: 12 tracked, 121 and 137 held but untracked.
    Tests may mutate the returned client before triggering a run.
    """
    ledger = FakeLedgerClient.with_drift(tracked=12, untracked=[121, 137])
    monkeypatch.setattr(coordinator_mod, "build_client", lambda _config: ledger)
    return ledger


@pytest.fixture
def config():
    """Return a deterministic validated Config."""
    return make_config()
