"""Shared API logic for CLI and HTTP endpoints.

Both the argparse CLI and the HTTP handler call these functions, so a run
triggered either way goes through the same coordinator and yields the same
payload shape.
"""

from __future__ import annotations

import threading
from typing import Any

from nftrecon import __version__
from nftrecon.app.daemon import EXIT_OK, EXIT_PARTIAL, build_coordinator, run_once
from nftrecon.config.settings import get_config_sources, reload_config
from nftrecon.ledger.client import LedgerClient
from nftrecon.recon.errors import ConfigError, ReadFailure
from nftrecon.recon.models import now_iso


def api_health() -> dict[str, Any]:
    """Return health check payload."""
    return {"status": "ok", "version": __version__}


def api_status(client: LedgerClient | None = None) -> dict[str, Any]:
    """Return a read-only custody summary; never writes."""
    try:
        payload = build_coordinator(client).status()
    except (ConfigError, ReadFailure) as exc:
        return {
            "status": "error",
            "reason": exc.reason,
            "error": str(exc),
            "timestamp": now_iso(),
        }
    return {"status": "ok", "timestamp": now_iso(), **payload}


def api_recover(
    *,
    trigger: str = "manual",
    cancel_event: threading.Event | None = None,
    client: LedgerClient | None = None,
) -> dict[str, Any]:
    """Run one reconciliation pass on demand and return its result."""
    code, result = run_once(trigger=trigger, cancel_event=cancel_event, client=client)
    if code == EXIT_OK:
        status = "ok"
    elif code == EXIT_PARTIAL:
        status = "partial"
    else:
        status = "error"
    payload: dict[str, Any] = {
        "status": status,
        "code": code,
        "result": result.public_dict(),
    }
    if result.error:
        payload["error"] = result.error
    return payload


def api_config() -> dict[str, Any]:
    """Return effective config with secrets reduced to set/unset flags."""
    config = reload_config()
    return {"config": config.public_dict(), "sources": get_config_sources()}
