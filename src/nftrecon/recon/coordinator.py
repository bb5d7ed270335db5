"""One reconciliation pass as an explicit state machine.

    idle -> reading -> detecting -> done                      (no action)
                                 -> authorizing -> executing -> verifying -> done
    any non-done state -> failed

Reader and gate failures end the run in ``failed``; the next scheduled run
is the retry. Write failures are recorded and the run still verifies, so the
reported ``after`` state is always what the ledger actually says.
"""

from __future__ import annotations

import threading
import uuid
from typing import Any

from nftrecon.config.logging import logger
from nftrecon.config.settings import Config
from nftrecon.ledger.client import LedgerClient, build_client
from nftrecon.ledger.reader import LedgerReader
from nftrecon.recon.auth import AuthorizationGate, Unauthorized, load_operator
from nftrecon.recon.detector import detect
from nftrecon.recon.errors import (
    ReadFailure,
    ReconError,
    RunCancelled,
    ScanWindowTooNarrow,
    UnauthorizedError,
    WriteExecutionFailure,
    WriteSubmissionFailure,
)
from nftrecon.recon.executor import RESET_OPERATION, ReconciliationExecutor
from nftrecon.recon.models import (
    CustodyState,
    NoActionNeeded,
    Outcome,
    ReconciliationPlan,
    RunResult,
    RunState,
    RunStep,
    ScanRange,
    WriteResult,
    WriteStatus,
    now_iso,
)

_WRITE_FAILURE_REASONS: dict[WriteStatus, str] = {
    WriteStatus.reverted: WriteExecutionFailure.reason,
    WriteStatus.submission_failed: WriteSubmissionFailure.reason,
    WriteStatus.timeout: "ConfirmationTimeout",
    WriteStatus.cancelled: RunCancelled.reason,
}


def _ids(values: Any) -> str:
    return ", ".join(str(value) for value in values)


class _RunLog:
    """Appends steps to a RunResult and mirrors them to the process log."""

    def __init__(self, result: RunResult) -> None:
        self.result = result

    def enter(self, state: RunState) -> None:
        self.result.state = state

    def record(self, message: str, *, level: str = "info", **data: Any) -> None:
        self.result.steps.append(
            RunStep(state=self.result.state, level=level, message=message, data=data)
        )
        logger.log(level.upper(), "[{}] {}", self.result.run_id, message)

    def finish(
        self,
        state: RunState,
        outcome: Outcome,
        *,
        reason: str | None = None,
        error: str | None = None,
    ) -> RunResult:
        self.result.state = state
        self.result.outcome = outcome
        self.result.reason = reason
        self.result.error = error
        self.result.completed_at = now_iso()
        return self.result


class RunCoordinator:
    """Orchestrates read, detect, authorize, execute, and verify for one pass."""

    def __init__(
        self,
        client: LedgerClient,
        *,
        scan_range: ScanRange,
        credential: str | None,
        read_timeout_seconds: float = 10.0,
        confirmation_timeout_seconds: float = 60.0,
        poll_interval_seconds: float = 2.0,
        worker_name: str = "nft-recovery-worker",
    ) -> None:
        self.client = client
        self.scan_range = scan_range
        self._credential = credential
        self.read_timeout_seconds = read_timeout_seconds
        self.confirmation_timeout_seconds = confirmation_timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.worker_name = worker_name

    @classmethod
    def from_config(
        cls, config: Config, client: LedgerClient | None = None
    ) -> RunCoordinator:
        """Build a coordinator from validated config (raises ``ConfigError``)."""
        config.validate()
        return cls(
            client or build_client(config),
            scan_range=ScanRange(config.scan_start_id, config.scan_end_id),
            credential=config.operator_key,
            read_timeout_seconds=config.read_timeout_seconds,
            confirmation_timeout_seconds=config.confirmation_timeout_seconds,
            poll_interval_seconds=config.confirmation_poll_seconds,
            worker_name=config.worker_name,
        )

    def _reader(self) -> LedgerReader:
        return LedgerReader(self.client, timeout_seconds=self.read_timeout_seconds)

    def status(self) -> dict[str, Any]:
        """Read-only custody summary; never authorizes or writes."""
        state = self._reader().custody_state()
        return {
            "worker": self.worker_name,
            "contract": self.client.manager_address,
            **state.as_dict(),
            "untracked": state.drift,
            "needs_recovery": state.needs_recovery,
        }

    def run(
        self, trigger: str = "manual", cancel_event: threading.Event | None = None
    ) -> RunResult:
        """Run one reconciliation pass and return its structured log."""
        cancel = cancel_event or threading.Event()
        log = _RunLog(RunResult(run_id=uuid.uuid4().hex[:12], trigger=trigger))
        reader = self._reader()
        try:
            return self._run(log, reader, cancel)
        except ReconError as exc:
            data: dict[str, Any] = {"reason": exc.reason}
            if isinstance(exc, ReadFailure):
                data["query"] = exc.query
            if isinstance(exc, UnauthorizedError):
                data["operating_identity"] = exc.operating_identity
                data["actual_owner"] = exc.actual_owner
            log.record(f"ERROR: {exc}", level="error", **data)
            return log.finish(
                RunState.failed, Outcome.error, reason=exc.reason, error=str(exc)
            )

    @staticmethod
    def _checkpoint(cancel: threading.Event, next_state: RunState) -> None:
        if cancel.is_set():
            raise RunCancelled(f"run cancelled before {next_state.value}")

    def _run(
        self, log: _RunLog, reader: LedgerReader, cancel: threading.Event
    ) -> RunResult:
        result = log.result

        self._checkpoint(cancel, RunState.reading)
        log.enter(RunState.reading)
        before = reader.custody_state()
        result.before = before.as_dict()

        self._checkpoint(cancel, RunState.detecting)
        log.enter(RunState.detecting)
        verdict = detect(before, self.scan_range, reader.scan_untracked)
        if isinstance(verdict, NoActionNeeded):
            log.record(
                f"Status: balance={before.actual_balance}, tracked={before.tracked_count}, "
                f"pending={before.pending_counter}. All assets tracked; no recovery needed.",
                **before.as_dict(),
            )
            return log.finish(RunState.done, Outcome.no_action)
        plan = verdict
        self._record_plan(log, before, plan)
        if not plan.has_writes:
            return log.finish(
                RunState.done, Outcome.partial_failure, reason=ScanWindowTooNarrow.reason
            )

        self._checkpoint(cancel, RunState.authorizing)
        log.enter(RunState.authorizing)
        account = load_operator(self._credential)
        log.record(f"Recovery wallet: {account.address}", operating_identity=account.address)
        authorization = AuthorizationGate(reader).authorize(account.address)
        if isinstance(authorization, Unauthorized):
            raise authorization.as_error()

        self._checkpoint(cancel, RunState.executing)
        log.enter(RunState.executing)
        executor = ReconciliationExecutor(
            self.client,
            account,
            reader,
            confirmation_timeout_seconds=self.confirmation_timeout_seconds,
            poll_interval_seconds=self.poll_interval_seconds,
            cancel_event=cancel,
        )
        if plan.untracked:
            log.record(
                f"Recovering {len(plan.untracked)} untracked asset(s): [{_ids(plan.untracked)}]",
                token_ids=list(plan.untracked),
            )
            self._record_write(log, executor.recover_untracked(plan.untracked))
        if plan.pending_stuck:
            self._checkpoint(cancel, RunState.executing)
            current = reader.pending_counter()
            if current > 0:
                log.record(
                    f"Resetting stuck pending counter (currently {current})",
                    pending_counter=current,
                )
                self._record_write(log, executor.reset_pending_counter())
            else:
                log.record("Pending counter resolved since detection; reset skipped")
                self._record_write(
                    log, WriteResult(operation=RESET_OPERATION, status=WriteStatus.skipped)
                )

        self._checkpoint(cancel, RunState.verifying)
        log.enter(RunState.verifying)
        after = reader.custody_state()
        inventory = reader.tracked_list()
        result.after = after.as_dict()
        result.final_inventory = inventory
        log.record(
            f"Final state: balance={after.actual_balance}, inventory={after.tracked_count}, "
            f"pending={after.pending_counter}, assets=[{_ids(inventory)}]",
            **after.as_dict(),
        )

        failed = [write for write in result.writes if not write.succeeded]
        if failed:
            return log.finish(
                RunState.done,
                Outcome.partial_failure,
                reason=_WRITE_FAILURE_REASONS.get(failed[0].status),
                error=failed[0].error,
            )
        if result.warnings:
            return log.finish(
                RunState.done, Outcome.partial_failure, reason=ScanWindowTooNarrow.reason
            )
        return log.finish(RunState.done, Outcome.recovered)

    def _record_plan(
        self, log: _RunLog, before: CustodyState, plan: ReconciliationPlan
    ) -> None:
        log.record(
            f"Status: balance={before.actual_balance}, tracked={before.tracked_count}, "
            f"pending={before.pending_counter}. Found {plan.drift} untracked asset(s) "
            f"and {before.pending_counter} stuck pending request(s)",
            drift=plan.drift,
            pending_stuck=plan.pending_stuck,
        )
        if plan.drift > 0:
            log.record(
                f"scanUntracked({self.scan_range.start_id}-{self.scan_range.end_id}) found: [{_ids(plan.untracked)}]",
                token_ids=list(plan.untracked),
            )
        for warning in plan.warnings:
            log.result.warnings.append(warning)
            log.record(warning, level="warning", reason=ScanWindowTooNarrow.reason)

    @staticmethod
    def _record_write(log: _RunLog, write: WriteResult) -> None:
        log.result.writes.append(write)
        data = write.model_dump(mode="json", exclude_none=True)
        if write.status == WriteStatus.confirmed:
            log.record(
                f"{write.operation} SUCCESS (tx {write.tx_hash}). Gas used: {write.gas_used}",
                **data,
            )
        elif write.status == WriteStatus.already_applied:
            log.record(
                f"{write.operation} already applied by a concurrent run (tx {write.tx_hash})",
                **data,
            )
        elif write.status == WriteStatus.skipped:
            return
        else:
            log.record(
                f"{write.operation} {write.status.value.upper()}: {write.error}",
                level="error",
                **data,
            )
