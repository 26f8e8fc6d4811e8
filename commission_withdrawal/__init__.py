"""Sign and broadcast validator commission withdrawals for Cosmos SDK chains."""
from __future__ import annotations

from .accounts import AccountMetadata, GrpcAccountResolver, RestAccountResolver, build_account_resolver
from .broadcast import BroadcastResult, ExecutionResult, TendermintRpcBroadcaster
from .config import WithdrawalSettings
from .errors import (
    AccountQueryError,
    AddressDerivationError,
    BroadcastTransportError,
    ChainIdParseError,
    InvalidKeyError,
    KeyDecodeError,
    KeyLoadError,
    MessageEncodingError,
    SignDocError,
    SigningError,
    TransactionRejectedError,
    WithdrawalError,
)
from .keys import DerivedAddresses, SigningIdentity, derive_addresses, load_signing_identity
from .messages import build_withdraw_commission_message
from .pipeline import WithdrawalReport, run_withdrawal
from .transactions import FeePolicy, SignedTransaction, assemble_and_sign

__all__ = [
    "AccountMetadata",
    "AccountQueryError",
    "AddressDerivationError",
    "BroadcastResult",
    "BroadcastTransportError",
    "ChainIdParseError",
    "DerivedAddresses",
    "ExecutionResult",
    "FeePolicy",
    "GrpcAccountResolver",
    "InvalidKeyError",
    "KeyDecodeError",
    "KeyLoadError",
    "MessageEncodingError",
    "RestAccountResolver",
    "SignDocError",
    "SignedTransaction",
    "SigningError",
    "SigningIdentity",
    "TendermintRpcBroadcaster",
    "TransactionRejectedError",
    "WithdrawalError",
    "WithdrawalReport",
    "WithdrawalSettings",
    "assemble_and_sign",
    "build_account_resolver",
    "build_withdraw_commission_message",
    "derive_addresses",
    "load_signing_identity",
    "run_withdrawal",
]
