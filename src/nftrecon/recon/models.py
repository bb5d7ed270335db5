"""Run-scoped data model: custody snapshots, plans, write outcomes, run results.

Nothing here outlives one reconciliation pass. ``RunResult`` is the only
value handed back to the trigger surface.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


def now_iso() -> str:
    """Return current UTC timestamp in ISO-8601 format."""
    return datetime.now(timezone.utc).isoformat()


class RunState(str, Enum):
    """Coordinator states for one reconciliation pass."""

    idle = "idle"
    reading = "reading"
    detecting = "detecting"
    authorizing = "authorizing"
    executing = "executing"
    verifying = "verifying"
    done = "done"
    failed = "failed"


class Outcome(str, Enum):
    """Terminal outcome reported to operators."""

    no_action = "no_action"
    recovered = "recovered"
    partial_failure = "partial_failure"
    error = "error"


class WriteStatus(str, Enum):
    """Result of one corrective write after waiting for confirmation."""

    confirmed = "confirmed"
    already_applied = "already_applied"
    reverted = "reverted"
    submission_failed = "submission_failed"
    timeout = "timeout"
    cancelled = "cancelled"
    skipped = "skipped"


SUCCESS_STATUSES = frozenset(
    {WriteStatus.confirmed, WriteStatus.already_applied, WriteStatus.skipped}
)


@dataclass(frozen=True)
class ScanRange:
    """Inclusive token id window passed to the untracked scan."""

    start_id: int
    end_id: int

    def __post_init__(self) -> None:
        if self.start_id < 0 or self.end_id < self.start_id:
            raise ValueError(f"invalid scan range {self.start_id}-{self.end_id}")


@dataclass(frozen=True)
class CustodyState:
    """Ledger custody versus internal bookkeeping at one instant."""

    actual_balance: int
    tracked_count: int
    pending_counter: int

    @property
    def drift(self) -> int:
        """Untracked asset count implied by the two counts (may be negative)."""
        return self.actual_balance - self.tracked_count

    @property
    def is_consistent(self) -> bool:
        return self.drift == 0 and self.pending_counter == 0

    @property
    def needs_recovery(self) -> bool:
        return self.drift > 0 or self.pending_counter > 0

    def as_dict(self) -> dict[str, int]:
        return {
            "actual_balance": self.actual_balance,
            "tracked_count": self.tracked_count,
            "pending_counter": self.pending_counter,
        }


@dataclass(frozen=True)
class NoActionNeeded:
    """Detector verdict when custody and bookkeeping agree."""

    state: CustodyState


@dataclass(frozen=True)
class ReconciliationPlan:
    """Detector output consumed by the executor within the same run."""

    untracked: tuple[int, ...]
    pending_stuck: bool
    drift: int
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def has_writes(self) -> bool:
        """Return whether the plan asks for at least one corrective write."""
        return bool(self.untracked) or self.pending_stuck

    @property
    def scan_window_too_narrow(self) -> bool:
        return self.drift > 0 and not self.untracked


class WriteResult(BaseModel):
    """Outcome of one corrective write."""

    operation: str
    status: WriteStatus
    tx_hash: str | None = None
    gas_used: int | None = None
    error: str | None = None
    token_ids: list[int] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status in SUCCESS_STATUSES


class RunStep(BaseModel):
    """One timestamped entry of the run log."""

    at: str = Field(default_factory=now_iso)
    state: RunState
    level: str = "info"
    message: str
    data: dict[str, Any] = Field(default_factory=dict)


class RunResult(BaseModel):
    """Append-only structured log and verdict of one reconciliation pass."""

    run_id: str
    trigger: str
    started_at: str = Field(default_factory=now_iso)
    completed_at: str | None = None
    state: RunState = RunState.idle
    outcome: Outcome | None = None
    reason: str | None = None
    error: str | None = None
    steps: list[RunStep] = Field(default_factory=list)
    before: dict[str, int] | None = None
    after: dict[str, int] | None = None
    writes: list[WriteResult] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    final_inventory: list[int] | None = None

    @property
    def ok(self) -> bool:
        """Return whether the run ended without a fatal error."""
        return self.outcome is not None and self.outcome != Outcome.error

    def steps_in(self, state: RunState) -> list[RunStep]:
        """Return log entries recorded while in ``state``."""
        return [step for step in self.steps if step.state == state]

    def public_dict(self) -> dict[str, Any]:
        """Return JSON-safe payload for CLI/HTTP responses."""
        return self.model_dump(mode="json")


if __name__ == "__main__":
    state = CustodyState(actual_balance=14, tracked_count=12, pending_counter=0)
    assert state.drift == 2 and state.needs_recovery
    plan = ReconciliationPlan(untracked=(), pending_stuck=False, drift=2)
    assert plan.scan_window_too_narrow and not plan.has_writes
    result = RunResult(run_id="demo", trigger="manual", outcome=Outcome.no_action)
    assert result.public_dict()["outcome"] == "no_action"
    print("recon models: self-test passed")
