"""Network client for the asset ledger and the manager contract.

The client is constructed explicitly and handed to the reader and executor,
so tests can substitute an in-memory ledger. ``Web3LedgerClient`` is the
production implementation on top of web3.py and eth-account.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, Sequence

from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import ContractLogicError, TransactionNotFound

from nftrecon.ledger.abi import ERC721_ABI, MANAGER_ABI

if TYPE_CHECKING:
    from nftrecon.config.settings import Config


class TransactionRejected(Exception):
    """The contract refused a write before it reached a block (would revert)."""


@dataclass(frozen=True)
class TxReceipt:
    """Normalized transaction receipt."""

    tx_hash: str
    status: int
    gas_used: int
    block_number: int | None = None

    @property
    def succeeded(self) -> bool:
        """Return whether the transaction executed without reverting."""
        return self.status == 1


class LedgerClient(Protocol):
    """Read/write surface of the asset ledger and the manager contract."""

    @property
    def manager_address(self) -> str:
        """Return the manager contract address (the custody holder)."""

    def owned_count(self, holder: str) -> int:
        """Return the ledger balance of ``holder``."""

    def tracked_count(self) -> int:
        """Return the manager's internal inventory count."""

    def pending_counter(self) -> int:
        """Return the manager's in-flight request counter."""

    def tracked_list(self) -> list[int]:
        """Return the manager's internal inventory."""

    def scan_untracked(self, start_id: int, end_id: int) -> list[int]:
        """Return ids in ``start_id..end_id`` held but not tracked by the manager."""

    def privileged_address(self) -> str:
        """Return the address allowed to perform corrective writes."""

    def send_recover_batch(self, token_ids: Sequence[int], account: LocalAccount) -> str:
        """Sign and submit a batch recovery write; return the tx hash."""

    def send_reset_pending_counter(self, account: LocalAccount) -> str:
        """Sign and submit a pending-counter reset; return the tx hash."""

    def transaction_receipt(self, tx_hash: str) -> TxReceipt | None:
        """Return the receipt for ``tx_hash`` or ``None`` while still pending."""


class Web3LedgerClient:
    """web3.py-backed ``LedgerClient`` talking to one JSON-RPC endpoint."""

    def __init__(
        self,
        rpc_url: str,
        asset_address: str,
        manager_address: str,
        *,
        chain_id: int | None = None,
        read_timeout_seconds: float = 10.0,
        w3: Web3 | None = None,
    ) -> None:
        self.w3 = w3 or Web3(
            Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": read_timeout_seconds})
        )
        self._chain_id = chain_id
        self._asset_address = Web3.to_checksum_address(asset_address)
        self._manager_address = Web3.to_checksum_address(manager_address)
        self._asset = self.w3.eth.contract(address=self._asset_address, abi=ERC721_ABI)
        self._manager = self.w3.eth.contract(
            address=self._manager_address, abi=MANAGER_ABI
        )

    @property
    def manager_address(self) -> str:
        return self._manager_address

    @property
    def chain_id(self) -> int:
        """Return configured chain id, asking the node once when unset."""
        if self._chain_id is None:
            self._chain_id = int(self.w3.eth.chain_id)
        return self._chain_id

    def owned_count(self, holder: str) -> int:
        return self._asset.functions.balanceOf(Web3.to_checksum_address(holder)).call()

    def tracked_count(self) -> int:
        return self._manager.functions.getInventoryCount().call()

    def pending_counter(self) -> int:
        return self._manager.functions.pendingRequestCount().call()

    def tracked_list(self) -> list[int]:
        return list(self._manager.functions.getInventory().call())

    def scan_untracked(self, start_id: int, end_id: int) -> list[int]:
        return list(self._manager.functions.getUntrackedNFTs(start_id, end_id).call())

    def privileged_address(self) -> str:
        return self._manager.functions.owner().call()

    def _send(self, call: Any, account: LocalAccount) -> str:
        """Build, sign, and broadcast one contract call from ``account``."""
        try:
            tx = call.build_transaction(
                {
                    "from": account.address,
                    "nonce": self.w3.eth.get_transaction_count(account.address, "pending"),
                    "chainId": self.chain_id,
                }
            )
        except ContractLogicError as exc:
            raise TransactionRejected(str(exc)) from exc
        signed = account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)

    def send_recover_batch(self, token_ids: Sequence[int], account: LocalAccount) -> str:
        call = self._manager.functions.batchRecoverUntrackedNFTs(
            [int(token_id) for token_id in token_ids]
        )
        return self._send(call, account)

    def send_reset_pending_counter(self, account: LocalAccount) -> str:
        return self._send(self._manager.functions.resetPendingRequestCount(), account)

    def transaction_receipt(self, tx_hash: str) -> TxReceipt | None:
        try:
            receipt = self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        return TxReceipt(
            tx_hash=tx_hash,
            status=int(receipt["status"]),
            gas_used=int(receipt["gasUsed"]),
            block_number=receipt.get("blockNumber"),
        )


def build_client(config: Config) -> Web3LedgerClient:
    """Construct the production client from validated configuration."""
    return Web3LedgerClient(
        config.rpc_url,
        config.asset_address,
        config.manager_address,
        chain_id=config.chain_id,
        read_timeout_seconds=config.read_timeout_seconds,
    )
