"""Reconciliation run scheduling, exit codes, and run reporting."""

from __future__ import annotations

import json
import threading
import time
import uuid

from nftrecon.config.logging import logger
from nftrecon.config.settings import get_config, reload_config
from nftrecon.ledger.client import LedgerClient
from nftrecon.recon.coordinator import RunCoordinator
from nftrecon.recon.errors import ConfigError
from nftrecon.recon.models import Outcome, RunResult, RunState, RunStep, now_iso


EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PARTIAL = 3

_EXIT_LEVELS = {EXIT_OK: "INFO", EXIT_PARTIAL: "WARNING", EXIT_FATAL: "ERROR"}


def exit_code_for(result: RunResult) -> int:
    """Map a run outcome to the process exit code."""
    if result.outcome in (Outcome.no_action, Outcome.recovered):
        return EXIT_OK
    if result.outcome == Outcome.partial_failure:
        return EXIT_PARTIAL
    return EXIT_FATAL


def build_coordinator(client: LedgerClient | None = None) -> RunCoordinator:
    """Build a coordinator from freshly reloaded config (raises ``ConfigError``)."""
    return RunCoordinator.from_config(reload_config(), client=client)


def _config_failure(trigger: str, exc: ConfigError) -> RunResult:
    """Return a failed RunResult for a run that could not be configured."""
    result = RunResult(
        run_id=uuid.uuid4().hex[:12],
        trigger=trigger,
        state=RunState.failed,
        outcome=Outcome.error,
        reason=exc.reason,
        error=str(exc),
        completed_at=now_iso(),
    )
    result.steps.append(
        RunStep(
            state=RunState.failed,
            level="error",
            message=f"ERROR: {exc}",
            data={"reason": exc.reason},
        )
    )
    logger.error("[{}] ERROR: {}", result.run_id, exc)
    return result


def run_once(
    *,
    trigger: str,
    cancel_event: threading.Event | None = None,
    client: LedgerClient | None = None,
) -> tuple[int, RunResult]:
    """Run one reconciliation pass and return ``(exit_code, result)``."""
    try:
        coordinator = build_coordinator(client)
    except ConfigError as exc:
        result = _config_failure(trigger, exc)
    else:
        result = coordinator.run(trigger=trigger, cancel_event=cancel_event)
    return exit_code_for(result), result


def run_scheduled(
    cancel_event: threading.Event | None = None,
    client: LedgerClient | None = None,
) -> RunResult:
    """Run one scheduled pass and log its summary and full result."""
    code, result = run_once(trigger="scheduled", cancel_event=cancel_event, client=client)
    logger.log(
        _EXIT_LEVELS[code],
        "scheduled run {} finished: outcome={} reason={} writes={}",
        result.run_id,
        result.outcome.value if result.outcome else None,
        result.reason,
        len(result.writes),
    )
    logger.debug("run result: {}", json.dumps(result.public_dict(), ensure_ascii=True))
    return result


def run_daemon_forever(
    poll_seconds: int | None = None,
    stop_event: threading.Event | None = None,
    client: LedgerClient | None = None,
) -> None:
    """Run scheduled passes back to back until ``stop_event`` is set.

    Runs never overlap: the next one starts ``poll_seconds`` after the
    previous one started, or immediately if it ran longer than that.
    Setting ``stop_event`` also cancels the run in flight at its next
    checkpoint.
    """
    stop = stop_event or threading.Event()
    if poll_seconds and poll_seconds > 0:
        interval = poll_seconds
    else:
        interval = get_config().poll_interval_seconds

    logger.info("daemon started: polling every {}s", interval)
    while not stop.is_set():
        started = time.monotonic()
        try:
            run_scheduled(cancel_event=stop, client=client)
        except Exception as exc:
            logger.warning("daemon cycle error: {}", exc)
        sleep_for = max(1.0, interval - (time.monotonic() - started))
        stop.wait(sleep_for)
    logger.info("daemon stopped")


if __name__ == "__main__":
    demo = RunResult(run_id="demo", trigger="manual", outcome=Outcome.partial_failure)
    assert exit_code_for(demo) == EXIT_PARTIAL
    demo.outcome = Outcome.error
    assert exit_code_for(demo) == EXIT_FATAL
