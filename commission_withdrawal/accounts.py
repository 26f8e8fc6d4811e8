"""Account number and sequence lookups.

Two query shapes are supported:

* the gRPC ``cosmos.auth.v1beta1.Query/Account`` call, which returns the
  account as a ``google.protobuf.Any`` that has to be decoded into a concrete
  account record, and
* the REST ``/cosmos/auth/v1beta1/account_info/{address}`` endpoint, which
  returns the account number and sequence directly.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Protocol
from urllib.parse import urlsplit

import grpc
import requests
from cosmpy.protos.cosmos.auth.v1beta1.auth_pb2 import BaseAccount, ModuleAccount
from cosmpy.protos.cosmos.auth.v1beta1.query_pb2 import QueryAccountRequest
from cosmpy.protos.cosmos.auth.v1beta1.query_pb2_grpc import QueryStub
from cosmpy.protos.cosmos.vesting.v1beta1.vesting_pb2 import (
    ContinuousVestingAccount,
    DelayedVestingAccount,
    PeriodicVestingAccount,
    PermanentLockedAccount,
)
from google.protobuf.any_pb2 import Any as ProtoAny
from google.protobuf.message import DecodeError

from .errors import AccountQueryError

_LOGGER = logging.getLogger(__name__)

_UINT64_MAX = 2**64 - 1

_VESTING_ACCOUNT_TYPES = {
    "/cosmos.vesting.v1beta1.ContinuousVestingAccount": ContinuousVestingAccount,
    "/cosmos.vesting.v1beta1.DelayedVestingAccount": DelayedVestingAccount,
    "/cosmos.vesting.v1beta1.PeriodicVestingAccount": PeriodicVestingAccount,
    "/cosmos.vesting.v1beta1.PermanentLockedAccount": PermanentLockedAccount,
}


@dataclass(frozen=True)
class AccountMetadata:
    account_number: int
    sequence: int


class AccountResolver(Protocol):
    def resolve(self, address: str) -> AccountMetadata:
        ...


def _decode_base_account(envelope: ProtoAny) -> BaseAccount:
    if envelope.type_url == "/cosmos.auth.v1beta1.BaseAccount":
        return BaseAccount.FromString(envelope.value)
    if envelope.type_url == "/cosmos.auth.v1beta1.ModuleAccount":
        return ModuleAccount.FromString(envelope.value).base_account
    vesting_cls = _VESTING_ACCOUNT_TYPES.get(envelope.type_url)
    if vesting_cls is not None:
        return vesting_cls.FromString(envelope.value).base_vesting_account.base_account
    raise AccountQueryError(f"unsupported account type {envelope.type_url!r}")


def parse_account_any(envelope: ProtoAny) -> AccountMetadata:
    """Decode an ``Any``-wrapped account into :class:`AccountMetadata`."""

    if not envelope.type_url:
        raise AccountQueryError("account query response does not contain an account")
    try:
        base_account = _decode_base_account(envelope)
    except DecodeError as exc:
        raise AccountQueryError(f"malformed {envelope.type_url} payload: {exc}") from exc
    return AccountMetadata(
        account_number=base_account.account_number,
        sequence=base_account.sequence,
    )


def _parse_uint64(info: Mapping[str, Any], key: str) -> int:
    value = info.get(key)
    if value in (None, ""):
        # proto3 JSON omits zero values
        _LOGGER.debug("Account info omits %s; using 0", key)
        return 0
    if isinstance(value, bool):
        raise AccountQueryError(f"account info field {key} is not an integer: {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise AccountQueryError(f"account info field {key} is not an integer: {value!r}") from exc
    if not 0 <= number <= _UINT64_MAX:
        raise AccountQueryError(f"account info field {key} is out of range: {number}")
    return number


def parse_account_info(payload: Any) -> AccountMetadata:
    """Decode the JSON body of the ``account_info`` REST endpoint."""

    if not isinstance(payload, Mapping):
        raise AccountQueryError(f"unexpected account info payload: {payload!r}")
    info = payload.get("info")
    if not isinstance(info, Mapping):
        raise AccountQueryError("account info response does not contain an account")
    return AccountMetadata(
        account_number=_parse_uint64(info, "account_number"),
        sequence=_parse_uint64(info, "sequence"),
    )


def _open_channel(url: str) -> grpc.Channel:
    if "://" not in url:
        return grpc.insecure_channel(url)
    parts = urlsplit(url)
    if not parts.hostname:
        raise AccountQueryError(f"invalid gRPC endpoint {url!r}")
    if parts.scheme == "https":
        target = f"{parts.hostname}:{parts.port or 443}"
        return grpc.secure_channel(target, grpc.ssl_channel_credentials())
    if parts.scheme in ("http", "grpc", "tcp"):
        return grpc.insecure_channel(f"{parts.hostname}:{parts.port or 80}")
    raise AccountQueryError(f"unsupported gRPC endpoint scheme {parts.scheme!r}")


class GrpcAccountResolver:
    """Resolve account metadata through the auth module's gRPC query service."""

    def __init__(
        self,
        grpc_url: str,
        timeout: Optional[float] = None,
        channel_factory: Callable[[str], Any] = _open_channel,
        stub_factory: Callable[[Any], Any] = QueryStub,
    ) -> None:
        self.grpc_url = grpc_url
        self.timeout = timeout
        self._channel_factory = channel_factory
        self._stub_factory = stub_factory

    def resolve(self, address: str) -> AccountMetadata:
        _LOGGER.debug("Querying %s for account %s", self.grpc_url, address)
        try:
            with self._channel_factory(self.grpc_url) as channel:
                stub = self._stub_factory(channel)
                response = stub.Account(QueryAccountRequest(address=address), timeout=self.timeout)
        except grpc.RpcError as exc:
            code = exc.code() if hasattr(exc, "code") else None
            details = exc.details() if hasattr(exc, "details") else str(exc)
            status = getattr(code, "name", "UNKNOWN")
            raise AccountQueryError(f"gRPC account query to {self.grpc_url} failed ({status}): {details}") from exc

        if not response.HasField("account"):
            raise AccountQueryError(f"no account found for {address}")
        return parse_account_any(response.account)


class RestAccountResolver:
    """Resolve account metadata through the ``account_info`` REST endpoint."""

    def __init__(
        self,
        rest_url: str,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.rest_url = rest_url.rstrip("/")
        self.timeout = timeout
        self.session = session

    def resolve(self, address: str) -> AccountMetadata:
        url = f"{self.rest_url}/cosmos/auth/v1beta1/account_info/{address}"
        _LOGGER.debug("Querying %s", url)
        session = self.session or requests.Session()
        try:
            response = session.get(url, headers={"Accept": "application/json"}, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise AccountQueryError(f"REST account query to {self.rest_url} failed: {exc}") from exc
        except ValueError as exc:
            raise AccountQueryError(f"account info response from {self.rest_url} is not JSON: {exc}") from exc
        finally:
            if self.session is None:
                session.close()
        return parse_account_info(payload)


def build_account_resolver(settings: Any) -> AccountResolver:
    """Return the resolver selected by ``settings.account_api``."""

    if settings.account_api == "grpc":
        return GrpcAccountResolver(settings.grpc_url, timeout=settings.request_timeout)
    if settings.account_api == "rest":
        return RestAccountResolver(settings.rest_url, timeout=settings.request_timeout)
    raise ValueError(f"Unsupported account API: {settings.account_api!r}")


__all__ = [
    "AccountMetadata",
    "AccountResolver",
    "GrpcAccountResolver",
    "RestAccountResolver",
    "build_account_resolver",
    "parse_account_any",
    "parse_account_info",
]
