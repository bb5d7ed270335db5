"""Corrective writes against the manager contract and confirmation waiting.

A write is first submitted, then its receipt is polled until it confirms,
reverts, the confirmation timeout elapses, or the caller cancels. Cancelling
or timing out abandons only the wait: a submitted transaction may still land,
and the next run observes whatever it did.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Sequence

from eth_account.signers.local import LocalAccount

from nftrecon.config.logging import logger
from nftrecon.ledger.client import LedgerClient, TransactionRejected
from nftrecon.ledger.reader import LedgerReader
from nftrecon.recon.errors import (
    ReadFailure,
    WriteExecutionFailure,
    WriteSubmissionFailure,
)
from nftrecon.recon.models import WriteResult, WriteStatus

RECOVER_OPERATION = "recoverBatch"
RESET_OPERATION = "resetPendingCounter"


class ReconciliationExecutor:
    """Issues ``recoverBatch`` and ``resetPendingCounter`` writes."""

    def __init__(
        self,
        client: LedgerClient,
        account: LocalAccount,
        reader: LedgerReader,
        *,
        confirmation_timeout_seconds: float = 60.0,
        poll_interval_seconds: float = 2.0,
        cancel_event: threading.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.account = account
        self.reader = reader
        self.confirmation_timeout_seconds = confirmation_timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.cancel_event = cancel_event or threading.Event()
        self._clock = clock

    def recover_untracked(self, asset_ids: Sequence[int]) -> WriteResult:
        """Register all ``asset_ids`` in the manager's inventory in one transaction."""
        ids = [int(asset_id) for asset_id in asset_ids]
        if not ids:
            raise ValueError("recover_untracked requires at least one asset id")
        result = self._submit_and_wait(
            RECOVER_OPERATION,
            lambda: self.client.send_recover_batch(ids, self.account),
            token_ids=ids,
        )
        if result.status == WriteStatus.reverted and self._already_tracked(ids):
            return result.model_copy(update={"status": WriteStatus.already_applied})
        return result

    def reset_pending_counter(self) -> WriteResult:
        """Clear the manager's stuck pending-request counter."""
        result = self._submit_and_wait(
            RESET_OPERATION,
            lambda: self.client.send_reset_pending_counter(self.account),
        )
        if result.status == WriteStatus.reverted and self._pending_cleared():
            return result.model_copy(update={"status": WriteStatus.already_applied})
        return result

    def _already_tracked(self, ids: list[int]) -> bool:
        """Return whether a concurrent run already registered every id."""
        try:
            tracked = set(self.reader.tracked_list())
        except ReadFailure as exc:
            logger.warning("could not re-check inventory after revert: {}", exc)
            return False
        return set(ids) <= tracked

    def _pending_cleared(self) -> bool:
        """Return whether the pending counter is already zero."""
        try:
            return self.reader.pending_counter() == 0
        except ReadFailure as exc:
            logger.warning("could not re-check pending counter after revert: {}", exc)
            return False

    def _submit_and_wait(
        self,
        operation: str,
        send: Callable[[], str],
        *,
        token_ids: list[int] | None = None,
    ) -> WriteResult:
        """Submit one write and block until it resolves or the wait is abandoned."""
        base = {"operation": operation, "token_ids": token_ids or []}
        try:
            tx_hash = send()
        except TransactionRejected as exc:
            failure = WriteExecutionFailure(operation, None, str(exc))
            return WriteResult(status=WriteStatus.reverted, error=str(failure), **base)
        except Exception as exc:
            failure = WriteSubmissionFailure(operation, f"{type(exc).__name__}: {exc}")
            return WriteResult(
                status=WriteStatus.submission_failed, error=str(failure), **base
            )

        logger.debug("{} tx sent: {}", operation, tx_hash)
        deadline = self._clock() + self.confirmation_timeout_seconds
        while True:
            if self.cancel_event.is_set():
                return WriteResult(
                    status=WriteStatus.cancelled,
                    tx_hash=tx_hash,
                    error="confirmation wait cancelled; outcome deferred to next run",
                    **base,
                )
            try:
                receipt = self.client.transaction_receipt(tx_hash)
            except Exception as exc:
                logger.warning("receipt lookup for {} failed: {}", tx_hash, exc)
                receipt = None
            if receipt is not None:
                if receipt.succeeded:
                    return WriteResult(
                        status=WriteStatus.confirmed,
                        tx_hash=tx_hash,
                        gas_used=receipt.gas_used,
                        **base,
                    )
                failure = WriteExecutionFailure(operation, tx_hash, "receipt status 0")
                return WriteResult(
                    status=WriteStatus.reverted,
                    tx_hash=tx_hash,
                    gas_used=receipt.gas_used,
                    error=str(failure),
                    **base,
                )
            remaining = deadline - self._clock()
            if remaining <= 0:
                return WriteResult(
                    status=WriteStatus.timeout,
                    tx_hash=tx_hash,
                    error=(
                        f"no receipt within {self.confirmation_timeout_seconds:g}s; "
                        "outcome deferred to next run"
                    ),
                    **base,
                )
            self.cancel_event.wait(min(self.poll_interval_seconds, remaining))
