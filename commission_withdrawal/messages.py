"""Construction of the ``MsgWithdrawValidatorCommission`` payload."""
from __future__ import annotations

import bech32
from cosmpy.protos.cosmos.distribution.v1beta1.tx_pb2 import MsgWithdrawValidatorCommission
from google.protobuf.any_pb2 import Any as ProtoAny
from google.protobuf.message import DecodeError, EncodeError

from .errors import MessageEncodingError

WITHDRAW_COMMISSION_TYPE_URL = "/cosmos.distribution.v1beta1.MsgWithdrawValidatorCommission"


def build_withdraw_commission_message(validator_operator_address: str) -> ProtoAny:
    """Return the commission withdrawal message wrapped in a ``google.protobuf.Any``.

    The message has no amount: the chain pays out everything accrued.
    """

    hrp, data = bech32.bech32_decode(validator_operator_address)
    if hrp is None or not data:
        raise MessageEncodingError(
            f"validator operator address {validator_operator_address!r} is not valid bech32"
        )

    msg = MsgWithdrawValidatorCommission(validator_address=validator_operator_address)
    try:
        value = msg.SerializeToString(deterministic=True)
    except EncodeError as exc:
        raise MessageEncodingError(f"unable to encode commission withdrawal: {exc}") from exc
    return ProtoAny(type_url=WITHDRAW_COMMISSION_TYPE_URL, value=value)


def unpack_withdraw_commission_message(envelope: ProtoAny) -> MsgWithdrawValidatorCommission:
    if envelope.type_url != WITHDRAW_COMMISSION_TYPE_URL:
        raise MessageEncodingError(f"unexpected message type {envelope.type_url!r}")
    try:
        return MsgWithdrawValidatorCommission.FromString(envelope.value)
    except DecodeError as exc:
        raise MessageEncodingError(f"malformed commission withdrawal payload: {exc}") from exc


__all__ = [
    "WITHDRAW_COMMISSION_TYPE_URL",
    "build_withdraw_commission_message",
]
