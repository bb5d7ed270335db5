"""Error taxonomy for reconciliation runs.

Every class carries a ``reason`` string, which is what a RunResult reports
in its ``reason`` field when the class terminates or degrades a run.
"""

from __future__ import annotations


class ReconError(Exception):
    """Base class for reconciliation failures."""

    reason = "ReconError"


class ConfigError(ReconError):
    """Raised when required worker configuration is missing or invalid."""

    reason = "ConfigError"


class ReadFailure(ReconError):
    """A query against the asset ledger or the manager contract failed."""

    reason = "ReadFailure"

    def __init__(self, query: str, detail: str) -> None:
        self.query = query
        self.detail = detail
        super().__init__(f"read failed: {query}: {detail}")


class ScanWindowTooNarrow:
    """Warning record: drift exists but the bounded scan found nothing."""

    reason = "ScanWindowTooNarrow"

    @staticmethod
    def message(start_id: int, end_id: int, drift: int) -> str:
        """Render the operator-facing warning text."""
        return (
            f"{ScanWindowTooNarrow.reason}: drift of {drift} asset(s) but "
            f"scan {start_id}-{end_id} found none; widen NFTRECON_SCAN_END_ID"
        )


class CredentialMissing(ReconError):
    """No usable operator credential was provided."""

    reason = "CredentialMissing"


class UnauthorizedError(ReconError):
    """The operator identity is not the manager's privileged address."""

    reason = "Unauthorized"

    def __init__(self, operating_identity: str, actual_owner: str) -> None:
        self.operating_identity = operating_identity
        self.actual_owner = actual_owner
        super().__init__(
            f"wallet {operating_identity} is not the contract owner ({actual_owner})"
        )


class WriteSubmissionFailure(ReconError):
    """A corrective transaction could not be submitted to the network."""

    reason = "WriteSubmissionFailure"

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation} submission failed: {detail}")


class WriteExecutionFailure(ReconError):
    """A corrective transaction was accepted but reverted on execution."""

    reason = "WriteExecutionFailure"

    def __init__(self, operation: str, tx_hash: str | None, detail: str) -> None:
        self.operation = operation
        self.tx_hash = tx_hash
        self.detail = detail
        where = f" (tx {tx_hash})" if tx_hash else ""
        super().__init__(f"{operation} reverted{where}: {detail}")


class InvariantViolation(ReconError):
    """The manager tracks more assets than the ledger says it holds."""

    reason = "InvariantViolation"

    def __init__(self, actual_balance: int, tracked_count: int) -> None:
        self.actual_balance = actual_balance
        self.tracked_count = tracked_count
        super().__init__(
            f"tracked count {tracked_count} exceeds ledger balance "
            f"{actual_balance}; not auto-corrected"
        )


class RunCancelled(ReconError):
    """The caller cancelled the run at a suspension point."""

    reason = "RunCancelled"
