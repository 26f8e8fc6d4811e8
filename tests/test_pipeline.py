from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path

import grpc
import pytest

from commission_withdrawal.accounts import AccountMetadata, GrpcAccountResolver
from commission_withdrawal.broadcast import BroadcastResult, ExecutionResult, TendermintRpcBroadcaster
from commission_withdrawal.config import WithdrawalSettings
from commission_withdrawal.errors import (
    AccountQueryError,
    BroadcastTransportError,
    ChainIdParseError,
    InvalidKeyError,
    TransactionRejectedError,
)
from commission_withdrawal.keys import SigningIdentity, derive_addresses
from commission_withdrawal.messages import unpack_withdraw_commission_message
from commission_withdrawal.pipeline import run_withdrawal
from commission_withdrawal.transactions import SignedTransaction, verify_signed_transaction

from .conftest import PRIVATE_KEY_HEX, FakeBroadcaster, FakeResolver, FakeResponse, FakeSession


class _ExplodingResolver:
    def resolve(self, address: str) -> AccountMetadata:
        raise AssertionError("account query must not run")


class _UnreachableStub:
    def __init__(self, channel) -> None:
        self.channel = channel

    def Account(self, request, timeout=None):  # noqa: N802 - mirrors the gRPC method name
        raise _UnavailableError()


class _UnavailableError(grpc.RpcError):
    def code(self):
        return grpc.StatusCode.UNAVAILABLE

    def details(self):
        return "failed to connect to all addresses"


class _NullChannel:
    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        return None


def test_happy_path_signs_and_broadcasts(
    settings: WithdrawalSettings, identity: SigningIdentity, caplog: pytest.LogCaptureFixture
) -> None:
    logger = logging.getLogger("tests.withdrawal")
    caplog.set_level(logging.INFO, logger="tests.withdrawal")
    resolver = FakeResolver(AccountMetadata(account_number=42, sequence=7))
    broadcaster = FakeBroadcaster()

    report = run_withdrawal(settings, account_resolver=resolver, broadcaster=broadcaster, logger=logger)

    addresses = derive_addresses(identity)
    assert resolver.addresses == [addresses.account]
    assert report.tx_hash == "A1B2C3"
    assert report.result is broadcaster.result
    assert report.account == AccountMetadata(42, 7)
    assert broadcaster.submitted == [report.tx_bytes]

    signed = SignedTransaction.from_bytes(report.tx_bytes)
    assert verify_signed_transaction(signed, "sommelier-3", 42)
    assert signed.auth_info().signer_infos[0].sequence == 7
    message = unpack_withdraw_commission_message(signed.body().messages[0])
    assert message.validator_address == addresses.validator_operator

    assert f"Validator address: {addresses.account}" in caplog.text
    assert f"Validator operator address: {addresses.validator_operator}" in caplog.text
    assert PRIVATE_KEY_HEX not in caplog.text


def test_invalid_key_fails_before_any_network_call(tmp_path: Path, settings: WithdrawalSettings) -> None:
    key_path = tmp_path / "short.key"
    key_path.write_text("deadbeef\n", encoding="utf-8")
    broadcaster = FakeBroadcaster()

    with pytest.raises(InvalidKeyError):
        run_withdrawal(
            replace(settings, signing_key_path=key_path),
            account_resolver=_ExplodingResolver(),
            broadcaster=broadcaster,
        )
    assert broadcaster.submitted == []


def test_unreachable_account_endpoint_stops_before_signing(settings: WithdrawalSettings) -> None:
    resolver = GrpcAccountResolver(
        settings.grpc_url,
        channel_factory=lambda url: _NullChannel(),
        stub_factory=_UnreachableStub,
    )
    broadcaster = FakeBroadcaster()

    with pytest.raises(AccountQueryError):
        run_withdrawal(settings, account_resolver=resolver, broadcaster=broadcaster)
    assert broadcaster.submitted == []


def test_chain_rejection_is_distinct_from_transport_failure(settings: WithdrawalSettings) -> None:
    rejected = BroadcastResult(
        tx_hash="DEADBEEF",
        height=0,
        check_tx=ExecutionResult(),
        deliver_tx=ExecutionResult(code=13, log="insufficient fee", codespace="sdk"),
    )

    with pytest.raises(TransactionRejectedError) as excinfo:
        run_withdrawal(settings, account_resolver=FakeResolver(), broadcaster=FakeBroadcaster(rejected))

    error = excinfo.value
    assert not isinstance(error, BroadcastTransportError)
    assert error.phase == "deliver_tx"
    assert error.code == 13
    assert error.log == "insufficient fee"
    assert "insufficient fee" in str(error)
    assert error.report is not None
    assert error.report.tx_hash == "DEADBEEF"


def test_transport_failure_propagates(settings: WithdrawalSettings) -> None:
    class _FailingBroadcaster:
        def broadcast_tx_commit(self, tx_bytes: bytes) -> BroadcastResult:
            raise BroadcastTransportError("connection refused")

    with pytest.raises(BroadcastTransportError):
        run_withdrawal(settings, account_resolver=FakeResolver(), broadcaster=_FailingBroadcaster())


def test_empty_commit_result_is_not_reported_as_committed(settings: WithdrawalSettings) -> None:
    session = FakeSession(FakeResponse({"jsonrpc": "2.0", "id": 1, "result": {}}))
    broadcaster = TendermintRpcBroadcaster(settings.rpc_url, session=session)  # type: ignore[arg-type]

    with pytest.raises(BroadcastTransportError):
        run_withdrawal(settings, account_resolver=FakeResolver(), broadcaster=broadcaster)
    assert len(session.calls) == 1


def test_bad_chain_id_fails_after_account_query(settings: WithdrawalSettings) -> None:
    resolver = FakeResolver()
    broadcaster = FakeBroadcaster()
    with pytest.raises(ChainIdParseError):
        run_withdrawal(replace(settings, chain_id="bad chain"), account_resolver=resolver, broadcaster=broadcaster)
    assert len(resolver.addresses) == 1
    assert broadcaster.submitted == []


def test_dry_run_skips_broadcast(settings: WithdrawalSettings) -> None:
    broadcaster = FakeBroadcaster()
    report = run_withdrawal(settings, account_resolver=FakeResolver(), broadcaster=broadcaster, dry_run=True)

    assert report.result is None
    assert broadcaster.submitted == []
    assert report.tx_hash == SignedTransaction.from_bytes(report.tx_bytes).tx_hash


def test_settings_feed_fee_memo_and_timeout(settings: WithdrawalSettings) -> None:
    custom = replace(settings, denom="uatom", fee_amount=2500, gas_limit=300000, memo="payday", timeout_height=99)
    report = run_withdrawal(custom, account_resolver=FakeResolver(), broadcaster=FakeBroadcaster())

    signed = SignedTransaction.from_bytes(report.tx_bytes)
    fee = signed.auth_info().fee
    assert [(coin.denom, coin.amount) for coin in fee.amount] == [("uatom", "2500")]
    assert fee.gas_limit == 300000
    assert signed.body().memo == "payday"
    assert signed.body().timeout_height == 99


def test_settings_reject_unknown_account_api(key_file: Path) -> None:
    with pytest.raises(ValueError):
        WithdrawalSettings(signing_key_path=key_file, account_api="lcd")
