"""Shared fixtures and offline test doubles for the withdrawal pipeline."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
import requests

from commission_withdrawal.accounts import AccountMetadata
from commission_withdrawal.broadcast import BroadcastResult, ExecutionResult
from commission_withdrawal.config import WithdrawalSettings
from commission_withdrawal.keys import SigningIdentity

PRIVATE_KEY_HEX = "1f" * 32
OTHER_PRIVATE_KEY_HEX = "2a" * 32


class FakeResponse:
    def __init__(self, payload: Any, status_code: int = 200, text: Optional[str] = None) -> None:
        self._payload = payload
        self.status_code = status_code
        self.text = text

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self) -> Any:
        if self.text is not None:
            raise ValueError(f"not JSON: {self.text}")
        return self._payload


class FakeSession:
    """Records requests and replays a single canned response."""

    def __init__(self, response: Optional[FakeResponse] = None, error: Optional[Exception] = None) -> None:
        self.response = response
        self.error = error
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def _respond(self, **call: Any) -> FakeResponse:
        self.calls.append(call)
        if self.error is not None:
            raise self.error
        assert self.response is not None
        return self.response

    def get(self, url, headers=None, timeout=None):
        return self._respond(method="GET", url=url, headers=headers, timeout=timeout)

    def post(self, url, json=None, timeout=None):
        return self._respond(method="POST", url=url, json=json, timeout=timeout)

    def close(self) -> None:
        self.closed = True


class FakeResolver:
    def __init__(self, metadata: AccountMetadata = AccountMetadata(account_number=42, sequence=7)) -> None:
        self.metadata = metadata
        self.addresses: List[str] = []

    def resolve(self, address: str) -> AccountMetadata:
        self.addresses.append(address)
        return self.metadata


class FakeBroadcaster:
    def __init__(self, result: Optional[BroadcastResult] = None) -> None:
        self.result = result or BroadcastResult(
            tx_hash="A1B2C3",
            height=123,
            check_tx=ExecutionResult(),
            deliver_tx=ExecutionResult(gas_wanted=200000, gas_used=91234),
        )
        self.submitted: List[bytes] = []

    def broadcast_tx_commit(self, tx_bytes: bytes) -> BroadcastResult:
        self.submitted.append(tx_bytes)
        return self.result


@pytest.fixture()
def identity() -> SigningIdentity:
    return SigningIdentity.from_bytes(bytes.fromhex(PRIVATE_KEY_HEX))


@pytest.fixture()
def other_identity() -> SigningIdentity:
    return SigningIdentity.from_bytes(bytes.fromhex(OTHER_PRIVATE_KEY_HEX))


@pytest.fixture()
def key_file(tmp_path: Path) -> Path:
    path = tmp_path / "signing.key"
    path.write_text(f"  {PRIVATE_KEY_HEX}\n", encoding="utf-8")
    return path


@pytest.fixture()
def settings(key_file: Path) -> WithdrawalSettings:
    return WithdrawalSettings(signing_key_path=key_file)
