"""Transaction assembly and SIGN_MODE_DIRECT signing.

The signature covers the protobuf encoding of a ``SignDoc`` (body bytes,
auth info bytes, chain id and account number). Nodes re-derive the same
document from the broadcast ``TxRaw``, so the body and auth info bytes that
are signed are exactly the bytes that are broadcast.
"""
from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from cosmpy.protos.cosmos.base.v1beta1.coin_pb2 import Coin
from cosmpy.protos.cosmos.crypto.secp256k1.keys_pb2 import PubKey
from cosmpy.protos.cosmos.tx.signing.v1beta1.signing_pb2 import SignMode
from cosmpy.protos.cosmos.tx.v1beta1.tx_pb2 import (
    AuthInfo,
    Fee,
    ModeInfo,
    SignDoc,
    SignerInfo,
    TxBody,
    TxRaw,
)
from google.protobuf.any_pb2 import Any as ProtoAny
from google.protobuf.message import DecodeError, EncodeError

from .accounts import AccountMetadata
from .errors import ChainIdParseError, SignDocError, SigningError
from .keys import SigningIdentity, verify_signature

SECP256K1_PUBKEY_TYPE_URL = "/cosmos.crypto.secp256k1.PubKey"
DEFAULT_MEMO = "Withdraw validator commission"
DEFAULT_FEE_AMOUNT = 1000
DEFAULT_GAS_LIMIT = 200000

_CHAIN_ID_PATTERN = re.compile(r"[A-Za-z0-9._-]{1,50}")
_DENOM_PATTERN = re.compile(r"[a-zA-Z][a-zA-Z0-9/:._-]{2,127}")
_UINT64_MAX = 2**64 - 1
_MAX_HEIGHT = 2**63 - 1


@dataclass(frozen=True)
class FeePolicy:
    """Flat fee attached to the withdrawal; not estimated from the chain."""

    denom: str = "usomm"
    amount: int = DEFAULT_FEE_AMOUNT
    gas_limit: int = DEFAULT_GAS_LIMIT


@dataclass(frozen=True)
class SignedTransaction:
    """A signed transaction in its ``TxRaw`` form."""

    body_bytes: bytes
    auth_info_bytes: bytes
    signatures: Tuple[bytes, ...] = field(default_factory=tuple)

    def to_bytes(self) -> bytes:
        raw = TxRaw(
            body_bytes=self.body_bytes,
            auth_info_bytes=self.auth_info_bytes,
            signatures=list(self.signatures),
        )
        return raw.SerializeToString(deterministic=True)

    @classmethod
    def from_bytes(cls, data: bytes) -> "SignedTransaction":
        try:
            raw = TxRaw.FromString(data)
        except DecodeError as exc:
            raise SignDocError(f"malformed transaction bytes: {exc}") from exc
        return cls(
            body_bytes=raw.body_bytes,
            auth_info_bytes=raw.auth_info_bytes,
            signatures=tuple(raw.signatures),
        )

    def body(self) -> TxBody:
        return TxBody.FromString(self.body_bytes)

    def auth_info(self) -> AuthInfo:
        return AuthInfo.FromString(self.auth_info_bytes)

    @property
    def tx_hash(self) -> str:
        """Uppercase hex SHA-256 of the wire bytes, as reported by CometBFT."""

        return hashlib.sha256(self.to_bytes()).hexdigest().upper()


def _serialize(message, what: str) -> bytes:
    try:
        return message.SerializeToString(deterministic=True)
    except EncodeError as exc:
        raise SignDocError(f"unable to encode {what}: {exc}") from exc


def parse_chain_id(text: str) -> str:
    """Validate a Tendermint chain identifier and return it unchanged."""

    if not isinstance(text, str) or not _CHAIN_ID_PATTERN.fullmatch(text):
        raise ChainIdParseError(
            f"invalid chain id {text!r}: expected 1-50 characters from [A-Za-z0-9._-]"
        )
    return text


def build_tx_body(messages: Sequence[ProtoAny], memo: str = DEFAULT_MEMO, timeout_height: int = 0) -> TxBody:
    if not 0 <= timeout_height <= _MAX_HEIGHT:
        raise SignDocError(f"timeout height {timeout_height} is out of range")
    body = TxBody(memo=memo, timeout_height=timeout_height)
    # message order is part of the signed bytes
    body.messages.extend(messages)
    return body


def build_fee(policy: FeePolicy) -> Fee:
    if not _DENOM_PATTERN.fullmatch(policy.denom):
        raise SignDocError(f"invalid fee denomination {policy.denom!r}")
    if not 0 <= policy.amount <= _UINT64_MAX:
        raise SignDocError(f"fee amount {policy.amount} is out of range")
    if not 0 < policy.gas_limit <= _UINT64_MAX:
        raise SignDocError(f"gas limit {policy.gas_limit} is out of range")
    return Fee(
        amount=[Coin(denom=policy.denom, amount=str(policy.amount))],
        gas_limit=policy.gas_limit,
    )


def build_signer_info(public_key_bytes: bytes, sequence: int) -> SignerInfo:
    """Describe a single secp256k1 signer using SIGN_MODE_DIRECT."""

    public_key = ProtoAny(
        type_url=SECP256K1_PUBKEY_TYPE_URL,
        value=_serialize(PubKey(key=public_key_bytes), "public key"),
    )
    return SignerInfo(
        public_key=public_key,
        mode_info=ModeInfo(single=ModeInfo.Single(mode=SignMode.SIGN_MODE_DIRECT)),
        sequence=sequence,
    )


def build_auth_info(fee: Fee, signer_infos: Sequence[SignerInfo]) -> AuthInfo:
    return AuthInfo(signer_infos=list(signer_infos), fee=fee)


def build_sign_doc(body: TxBody, auth_info: AuthInfo, chain_id: str, account_number: int) -> SignDoc:
    if not 0 <= account_number <= _UINT64_MAX:
        raise SignDocError(f"account number {account_number} is out of range")
    return SignDoc(
        body_bytes=_serialize(body, "transaction body"),
        auth_info_bytes=_serialize(auth_info, "auth info"),
        chain_id=chain_id,
        account_number=account_number,
    )


def sign_transaction(sign_doc: SignDoc, identity: SigningIdentity) -> SignedTransaction:
    signature = identity.sign(_serialize(sign_doc, "sign doc"))
    signed = SignedTransaction(
        body_bytes=sign_doc.body_bytes,
        auth_info_bytes=sign_doc.auth_info_bytes,
        signatures=(signature,),
    )
    if not verify_signed_transaction(signed, sign_doc.chain_id, sign_doc.account_number):
        raise SigningError("produced signature does not verify against the signing key")
    return signed


def assemble_and_sign(
    identity: SigningIdentity,
    messages: Sequence[ProtoAny],
    fee_policy: FeePolicy,
    account: AccountMetadata,
    chain_id: str,
    memo: str = DEFAULT_MEMO,
    timeout_height: int = 0,
) -> SignedTransaction:
    """Build body, fee and signer info, bind them to the chain and account, and sign."""

    chain_id = parse_chain_id(chain_id)
    body = build_tx_body(messages, memo=memo, timeout_height=timeout_height)
    auth_info = build_auth_info(
        build_fee(fee_policy),
        [build_signer_info(identity.public_key_bytes, account.sequence)],
    )
    sign_doc = build_sign_doc(body, auth_info, chain_id, account.account_number)
    return sign_transaction(sign_doc, identity)


def signer_public_keys(signed: SignedTransaction) -> List[bytes]:
    keys: List[bytes] = []
    for signer_info in signed.auth_info().signer_infos:
        if signer_info.public_key.type_url != SECP256K1_PUBKEY_TYPE_URL:
            raise SignDocError(f"unsupported public key type {signer_info.public_key.type_url!r}")
        keys.append(PubKey.FromString(signer_info.public_key.value).key)
    return keys


def verify_signed_transaction(signed: SignedTransaction, chain_id: str, account_number: int) -> bool:
    """Re-derive the sign doc from ``signed`` and check its signature."""

    public_keys = signer_public_keys(signed)
    if len(public_keys) != 1 or len(signed.signatures) != 1:
        return False
    sign_doc = SignDoc(
        body_bytes=signed.body_bytes,
        auth_info_bytes=signed.auth_info_bytes,
        chain_id=chain_id,
        account_number=account_number,
    )
    return verify_signature(public_keys[0], _serialize(sign_doc, "sign doc"), signed.signatures[0])


__all__ = [
    "DEFAULT_FEE_AMOUNT",
    "DEFAULT_GAS_LIMIT",
    "DEFAULT_MEMO",
    "FeePolicy",
    "SignedTransaction",
    "assemble_and_sign",
    "build_auth_info",
    "build_fee",
    "build_sign_doc",
    "build_signer_info",
    "build_tx_body",
    "parse_chain_id",
    "sign_transaction",
    "verify_signed_transaction",
]
