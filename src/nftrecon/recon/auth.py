"""Operator credential loading and the privileged-address check."""

from __future__ import annotations

from dataclasses import dataclass

from eth_account import Account
from eth_account.signers.local import LocalAccount

from nftrecon.ledger.reader import LedgerReader
from nftrecon.recon.errors import CredentialMissing, UnauthorizedError


def load_operator(credential: str | None) -> LocalAccount:
    """Build the signing account from a hex private key.

    The key may be given with or without its ``0x`` prefix. The key text is
    never echoed in error messages.
    """
    raw = (credential or "").strip()
    if not raw:
        raise CredentialMissing("operator credential not set (NFTRECON_OPERATOR_KEY)")
    key = raw if raw.startswith(("0x", "0X")) else f"0x{raw}"
    try:
        return Account.from_key(key)
    except Exception as exc:  # eth-keys raises its own ValidationError
        raise CredentialMissing("operator credential is malformed") from exc


@dataclass(frozen=True)
class Authorized:
    """The operator identity matches the privileged address."""

    operating_identity: str


@dataclass(frozen=True)
class Unauthorized:
    """The operator identity differs from the privileged address."""

    operating_identity: str
    actual_owner: str

    def as_error(self) -> UnauthorizedError:
        return UnauthorizedError(self.operating_identity, self.actual_owner)


class AuthorizationGate:
    """Confirms write privilege before any mutation is attempted."""

    def __init__(self, reader: LedgerReader) -> None:
        self.reader = reader

    def authorize(self, operating_identity: str) -> Authorized | Unauthorized:
        """Compare ``operating_identity`` to the manager's owner (case-insensitive)."""
        owner = self.reader.privileged_address()
        if owner.lower() != operating_identity.lower():
            return Unauthorized(operating_identity=operating_identity, actual_owner=owner)
        return Authorized(operating_identity=operating_identity)
