"""Shared test utilities: deterministic config and an in-memory ledger."""

from __future__ import annotations

import io
import json
import time
from contextlib import redirect_stdout
from dataclasses import replace
from typing import Any, Callable, Sequence

from eth_account import Account
from eth_account.signers.local import LocalAccount

from nftrecon.config.settings import Config
from nftrecon.ledger.client import TransactionRejected, TxReceipt


# Well-known throwaway key from the eth-account docs; never funded.
OPERATOR_KEY = "4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
OPERATOR_ADDRESS = Account.from_key("0x" + OPERATOR_KEY).address
STRANGER_ADDRESS = "0x" + "ab" * 20
MANAGER_ADDRESS = "0x" + "11" * 20
ASSET_ADDRESS = "0x" + "22" * 20
API_TOKEN = "test-token"

WRITE_OPERATIONS = ("recoverBatch", "resetPendingCounter")


def make_config(**overrides: Any) -> Config:
    """Build a deterministic, valid Config object for tests."""
    config = Config(
        rpc_url="http://127.0.0.1:8545",
        chain_id=33139,
        manager_address=MANAGER_ADDRESS,
        asset_address=ASSET_ADDRESS,
        scan_start_id=100,
        scan_end_id=150,
        poll_interval_seconds=60,
        read_timeout_seconds=2.0,
        confirmation_timeout_seconds=5.0,
        confirmation_poll_seconds=0.01,
        server_host="127.0.0.1",
        server_port=8787,
        worker_name="nft-recovery-worker",
        operator_key=OPERATOR_KEY,
        api_token=API_TOKEN,
    )
    return replace(config, **overrides)


class FakeLedgerClient:
    """In-memory asset ledger plus manager contract.

    ``held`` is what the ledger says the manager owns, ``inventory`` is what
    the manager tracks. Writes are applied immediately and receipts are
    available on the first lookup unless a failure knob says otherwise.
    """

    def __init__(
        self,
        *,
        held: Sequence[int] = (),
        tracked: Sequence[int] = (),
        pending: int = 0,
        owner: str = OPERATOR_ADDRESS,
        manager_address: str = MANAGER_ADDRESS,
    ) -> None:
        self._manager_address = manager_address
        self.held = set(held) | set(tracked)
        self.inventory = list(tracked)
        self.pending = pending
        self.owner = owner
        self.calls: list[tuple[str, Any]] = []
        self.receipts: dict[str, TxReceipt] = {}

        self.fail_reads: dict[str, Exception] = {}
        self.read_overrides: dict[str, Any] = {}
        self.read_delays: dict[str, float] = {}
        self.submit_error: Exception | None = None
        self.revert_on_chain = False
        self.withhold_receipts = False
        self.before_write: Callable[[str], None] | None = None
        self._nonce = 0

    @classmethod
    def with_drift(
        cls,
        *,
        tracked: int,
        untracked: Sequence[int] = (),
        pending: int = 0,
        **kwargs: Any,
    ) -> FakeLedgerClient:
        """Manager tracking ids ``1..tracked`` and also holding ``untracked``."""
        return cls(
            held=list(untracked),
            tracked=list(range(1, tracked + 1)),
            pending=pending,
            **kwargs,
        )

    # ── reads ────────────────────────────────────────────────────────

    @property
    def manager_address(self) -> str:
        return self._manager_address

    def _read(self, name: str, value: Any, *args: Any) -> Any:
        self.calls.append((name, args))
        if name in self.read_delays:
            time.sleep(self.read_delays[name])
        if name in self.fail_reads:
            raise self.fail_reads[name]
        if name in self.read_overrides:
            return self.read_overrides[name]
        return value

    def owned_count(self, holder: str) -> int:
        count = len(self.held) if holder.lower() == self._manager_address.lower() else 0
        return self._read("owned_count", count, holder)

    def tracked_count(self) -> int:
        return self._read("tracked_count", len(self.inventory))

    def pending_counter(self) -> int:
        return self._read("pending_counter", self.pending)

    def tracked_list(self) -> list[int]:
        return self._read("tracked_list", list(self.inventory))

    def scan_untracked(self, start_id: int, end_id: int) -> list[int]:
        found = sorted(
            token_id
            for token_id in self.held
            if start_id <= token_id <= end_id and token_id not in self.inventory
        )
        return self._read("scan_untracked", found, start_id, end_id)

    def privileged_address(self) -> str:
        return self._read("privileged_address", self.owner)

    # ── writes ───────────────────────────────────────────────────────

    @property
    def writes(self) -> list[tuple[str, Any]]:
        """Return submitted write calls in order."""
        return [call for call in self.calls if call[0] in WRITE_OPERATIONS]

    def _submit(
        self,
        operation: str,
        args: Any,
        account: LocalAccount,
        guard: Callable[[], str | None],
        apply: Callable[[], None],
    ) -> str:
        self.calls.append((operation, args))
        if self.before_write is not None:
            self.before_write(operation)
        if self.submit_error is not None:
            raise self.submit_error
        if account.address.lower() != self.owner.lower():
            raise TransactionRejected("execution reverted: Ownable: caller is not the owner")
        problem = guard()
        if problem:
            raise TransactionRejected(f"execution reverted: {problem}")
        self._nonce += 1
        tx_hash = f"0x{self._nonce:064x}"
        status = 0 if self.revert_on_chain else 1
        if status:
            apply()
        self.receipts[tx_hash] = TxReceipt(
            tx_hash=tx_hash, status=status, gas_used=50_000 + self._nonce, block_number=self._nonce
        )
        return tx_hash

    def send_recover_batch(self, token_ids: Sequence[int], account: LocalAccount) -> str:
        ids = [int(token_id) for token_id in token_ids]

        def guard() -> str | None:
            if any(token_id in self.inventory for token_id in ids):
                return "token already tracked"
            if any(token_id not in self.held for token_id in ids):
                return "token not held"
            return None

        return self._submit(
            "recoverBatch", ids, account, guard, lambda: self.inventory.extend(ids)
        )

    def send_reset_pending_counter(self, account: LocalAccount) -> str:
        def apply() -> None:
            self.pending = 0

        return self._submit(
            "resetPendingCounter",
            None,
            account,
            lambda: None if self.pending > 0 else "no pending requests",
            apply,
        )

    def transaction_receipt(self, tx_hash: str) -> TxReceipt | None:
        self.calls.append(("receipt", tx_hash))
        if self.withhold_receipts:
            return None
        return self.receipts.get(tx_hash)


def operator_account() -> LocalAccount:
    """Return the signing account matching ``OPERATOR_KEY``."""
    return Account.from_key("0x" + OPERATOR_KEY)


def run_cli(args: list[str]) -> tuple[int, str]:
    """Run CLI command and return ``(exit_code, stdout_text)``."""
    from nftrecon.app import cli

    out = io.StringIO()
    with redirect_stdout(out):
        code = cli.main(args)
    return code, out.getvalue()


def run_cli_json(args: list[str]) -> tuple[int, dict]:
    """Run CLI command and parse stdout JSON payload."""
    code, output = run_cli(args)
    return code, json.loads(output)
