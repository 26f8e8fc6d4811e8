"""Error taxonomy for the commission withdrawal pipeline.

Every failure raised by the pipeline derives from :class:`WithdrawalError`
and names the stage it belongs to, so the command line front end can report a
single line such as ``account query failed: connection refused``.
"""
from __future__ import annotations

from typing import Any, Optional


class WithdrawalError(RuntimeError):
    """Base class for all pipeline failures."""

    stage = "withdrawal"


class KeyLoadError(WithdrawalError):
    """Raised when the signing key file cannot be read."""

    stage = "key material"


class KeyDecodeError(WithdrawalError):
    """Raised when the signing key file does not contain valid hex."""

    stage = "key material"


class InvalidKeyError(WithdrawalError):
    """Raised when the decoded key is not a valid secp256k1 scalar."""

    stage = "key material"


class AddressDerivationError(WithdrawalError):
    stage = "key material"


class MessageEncodingError(WithdrawalError):
    stage = "message"


class AccountQueryError(WithdrawalError):
    """Raised when account metadata cannot be fetched or decoded."""

    stage = "account query"


class ChainIdParseError(WithdrawalError):
    stage = "signing"


class SignDocError(WithdrawalError):
    stage = "signing"


class SigningError(WithdrawalError):
    stage = "signing"


class BroadcastTransportError(WithdrawalError):
    """Raised when the broadcast request itself fails."""

    stage = "broadcast"


class TransactionRejectedError(WithdrawalError):
    """Raised when the node accepted the request but the chain rejected the transaction.

    The ``phase`` is ``"check_tx"`` or ``"deliver_tx"``; ``log`` is the node's
    log text, unmodified.
    """

    stage = "broadcast"

    def __init__(
        self,
        phase: str,
        code: int,
        log: str,
        *,
        codespace: str = "",
        tx_hash: str = "",
        report: Optional[Any] = None,
    ) -> None:
        self.phase = phase
        self.code = code
        self.log = log
        self.codespace = codespace
        self.tx_hash = tx_hash
        self.report = report
        location = f"{codespace}/{code}" if codespace else str(code)
        super().__init__(f"transaction rejected during {phase} (code {location}): {log}")


__all__ = [
    "AccountQueryError",
    "AddressDerivationError",
    "BroadcastTransportError",
    "ChainIdParseError",
    "InvalidKeyError",
    "KeyDecodeError",
    "KeyLoadError",
    "MessageEncodingError",
    "SignDocError",
    "SigningError",
    "TransactionRejectedError",
    "WithdrawalError",
]
