"""Pure drift detection: compare custody to bookkeeping and produce a plan."""

from __future__ import annotations

from typing import Callable, Sequence

from nftrecon.recon.errors import InvariantViolation, ScanWindowTooNarrow
from nftrecon.recon.models import (
    CustodyState,
    NoActionNeeded,
    ReconciliationPlan,
    ScanRange,
)


def detect(
    state: CustodyState,
    scan_range: ScanRange,
    scan: Callable[[ScanRange], Sequence[int]],
) -> ReconciliationPlan | NoActionNeeded:
    """Return the corrective plan for ``state``, or ``NoActionNeeded``.

    ``scan`` is only called when the ledger reports more assets than the
    manager tracks, and its result is carried into the plan as-is. A scan
    that finds fewer ids than the drift (or none) is not an error: the
    window may simply be too narrow, which becomes a warning on the plan.

    Raises ``InvariantViolation`` when the manager tracks more than it holds.
    """
    if state.is_consistent:
        return NoActionNeeded(state=state)
    if state.drift < 0:
        raise InvariantViolation(state.actual_balance, state.tracked_count)

    untracked: tuple[int, ...] = ()
    warnings: tuple[str, ...] = ()
    if state.drift > 0:
        untracked = tuple(scan(scan_range))
        if not untracked:
            warnings = (
                ScanWindowTooNarrow.message(
                    scan_range.start_id, scan_range.end_id, state.drift
                ),
            )

    return ReconciliationPlan(
        untracked=untracked,
        pending_stuck=state.pending_counter > 0,
        drift=state.drift,
        warnings=warnings,
    )


if __name__ == "__main__":
    rng = ScanRange(100, 150)
    assert isinstance(detect(CustodyState(12, 12, 0), rng, lambda _r: []), NoActionNeeded)
    plan = detect(CustodyState(14, 12, 0), rng, lambda _r: [121, 137])
    assert isinstance(plan, ReconciliationPlan) and plan.untracked == (121, 137)
    print("detector: self-test passed")
