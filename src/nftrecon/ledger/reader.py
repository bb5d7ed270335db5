"""Read-only queries against the asset ledger and the manager contract.

Every query is independent and idempotent. Any transport or decoding
problem surfaces as ``ReadFailure`` naming the query; nothing is retried
here because the next scheduled run is the retry.
"""

from __future__ import annotations

from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Any, Callable

from web3 import Web3

from nftrecon.ledger.client import LedgerClient
from nftrecon.recon.errors import ReadFailure
from nftrecon.recon.models import CustodyState, ScanRange


def _as_count(query: str, value: Any) -> int:
    """Validate a uint256 count response."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ReadFailure(query, f"malformed response: {value!r}")
    return value


def _as_id_list(query: str, value: Any) -> list[int]:
    """Validate a uint256[] response."""
    if not isinstance(value, (list, tuple)):
        raise ReadFailure(query, f"malformed response: {value!r}")
    return [_as_count(query, item) for item in value]


class LedgerReader:
    """Typed, failure-wrapping read access through an injected client."""

    def __init__(self, client: LedgerClient, *, timeout_seconds: float = 10.0) -> None:
        self.client = client
        self.timeout_seconds = timeout_seconds

    def _read(self, query: str, fn: Callable[..., Any], *args: Any) -> Any:
        """Run one client call, converting any failure to ``ReadFailure``."""
        try:
            return fn(*args)
        except ReadFailure:
            raise
        except Exception as exc:
            raise ReadFailure(query, f"{type(exc).__name__}: {exc}") from exc

    def owned_count(self) -> int:
        """Ledger balance of the manager contract."""
        holder = self.client.manager_address
        return _as_count(
            "ownedCount", self._read("ownedCount", self.client.owned_count, holder)
        )

    def tracked_count(self) -> int:
        return _as_count(
            "trackedCount", self._read("trackedCount", self.client.tracked_count)
        )

    def pending_counter(self) -> int:
        return _as_count(
            "pendingCounter", self._read("pendingCounter", self.client.pending_counter)
        )

    def tracked_list(self) -> list[int]:
        return _as_id_list(
            "trackedList", self._read("trackedList", self.client.tracked_list)
        )

    def scan_untracked(self, scan_range: ScanRange) -> list[int]:
        raw = self._read(
            "scanUntracked",
            self.client.scan_untracked,
            scan_range.start_id,
            scan_range.end_id,
        )
        return _as_id_list("scanUntracked", raw)

    def privileged_address(self) -> str:
        raw = self._read("privilegedAddress", self.client.privileged_address)
        if not isinstance(raw, str) or not Web3.is_address(raw):
            raise ReadFailure("privilegedAddress", f"malformed response: {raw!r}")
        return raw

    def custody_state(self) -> CustodyState:
        """Issue the three independent reads concurrently and wait for all of them."""
        queries: dict[str, Callable[[], int]] = {
            "ownedCount": self.owned_count,
            "trackedCount": self.tracked_count,
            "pendingCounter": self.pending_counter,
        }
        pool = ThreadPoolExecutor(max_workers=len(queries), thread_name_prefix="nftrecon-read")
        try:
            futures = {name: pool.submit(fn) for name, fn in queries.items()}
            done, not_done = wait(
                futures.values(), timeout=self.timeout_seconds, return_when=FIRST_EXCEPTION
            )
            for name, future in futures.items():
                if future in done and future.exception() is not None:
                    raise future.exception()  # type: ignore[misc]
            if not_done:
                pending = [name for name, future in futures.items() if future in not_done]
                raise ReadFailure(
                    ",".join(pending), f"timed out after {self.timeout_seconds:g}s"
                )
            values = {name: future.result() for name, future in futures.items()}
        finally:
            # hung reads are abandoned, never joined
            pool.shutdown(wait=False, cancel_futures=True)
        return CustodyState(
            actual_balance=values["ownedCount"],
            tracked_count=values["trackedCount"],
            pending_counter=values["pendingCounter"],
        )
