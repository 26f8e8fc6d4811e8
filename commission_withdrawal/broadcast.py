"""Broadcast signed transactions through the Tendermint/CometBFT JSON-RPC API."""
from __future__ import annotations

import base64
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

import requests

from .errors import BroadcastTransportError

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one execution phase (CheckTx or DeliverTx)."""

    code: int = 0
    log: str = ""
    codespace: str = ""
    gas_wanted: int = 0
    gas_used: int = 0

    @property
    def ok(self) -> bool:
        return self.code == 0

    @classmethod
    def from_payload(cls, payload: Any, phase: str = "execution") -> "ExecutionResult":
        """Parse one phase of a commit response.

        Absent numeric fields take the proto3 default of 0; present but
        unparsable ones are a malformed response.
        """

        if not isinstance(payload, Mapping):
            raise BroadcastTransportError(f"malformed {phase} result: {payload!r}")
        return cls(
            code=_as_int(payload, "code", phase),
            log=str(payload.get("log") or ""),
            codespace=str(payload.get("codespace") or ""),
            gas_wanted=_as_int(payload, "gas_wanted", phase),
            gas_used=_as_int(payload, "gas_used", phase),
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "log": self.log,
            "codespace": self.codespace,
            "gas_wanted": self.gas_wanted,
            "gas_used": self.gas_used,
        }


@dataclass(frozen=True)
class BroadcastResult:
    """Response to ``broadcast_tx_commit``."""

    tx_hash: str
    height: int
    check_tx: ExecutionResult
    deliver_tx: ExecutionResult

    @property
    def succeeded(self) -> bool:
        return self.check_tx.ok and self.deliver_tx.ok

    def failure(self) -> Optional[Tuple[str, ExecutionResult]]:
        """Return the first failing phase and its result, or ``None``."""

        if not self.check_tx.ok:
            return "check_tx", self.check_tx
        if not self.deliver_tx.ok:
            return "deliver_tx", self.deliver_tx
        return None

    @classmethod
    def from_payload(cls, result: Mapping[str, Any]) -> "BroadcastResult":
        # CometBFT 0.37+ renamed deliver_tx to tx_result.
        if "check_tx" not in result:
            raise BroadcastTransportError(f"commit response has no check_tx result: {dict(result)!r}")
        check_tx = ExecutionResult.from_payload(result["check_tx"], "check_tx")

        deliver = result.get("deliver_tx")
        if deliver is None:
            deliver = result.get("tx_result")
        if deliver is None:
            if check_tx.ok:
                raise BroadcastTransportError("commit response has no deliver_tx result")
            # rejected in CheckTx, never executed
            deliver_tx = ExecutionResult()
        else:
            deliver_tx = ExecutionResult.from_payload(deliver, "deliver_tx")

        return cls(
            tx_hash=str(result.get("hash") or ""),
            height=_as_int(result, "height", "commit"),
            check_tx=check_tx,
            deliver_tx=deliver_tx,
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "height": self.height,
            "check_tx": self.check_tx.as_dict(),
            "deliver_tx": self.deliver_tx.as_dict(),
        }


def _as_int(payload: Mapping[str, Any], key: str, phase: str) -> int:
    value = payload.get(key)
    if value is None:
        return 0
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    raise BroadcastTransportError(f"malformed {phase} {key}: {value!r}")


class TendermintRpcBroadcaster:
    """Submit transactions with ``broadcast_tx_commit`` and wait for the block."""

    def __init__(
        self,
        rpc_url: str,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.session = session
        self.timeout = timeout
        self._request_ids = itertools.count(1)

    def _post(self, method: str, params: Dict[str, Any]) -> Mapping[str, Any]:
        payload = {"jsonrpc": "2.0", "id": next(self._request_ids), "method": method, "params": params}
        session = self.session or requests.Session()
        try:
            response = session.post(self.rpc_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as exc:
            raise BroadcastTransportError(f"{method} request to {self.rpc_url} failed: {exc}") from exc
        except ValueError as exc:
            raise BroadcastTransportError(f"{method} response from {self.rpc_url} is not JSON: {exc}") from exc
        finally:
            if self.session is None:
                session.close()

        if not isinstance(body, Mapping):
            raise BroadcastTransportError(f"unexpected {method} response: {body!r}")
        error = body.get("error")
        if error:
            if isinstance(error, Mapping):
                message = error.get("message", "")
                data = error.get("data")
                detail = f"{message}: {data}" if data else str(message)
            else:
                detail = str(error)
            raise BroadcastTransportError(f"{method} returned an RPC error: {detail}")
        result = body.get("result")
        if not isinstance(result, Mapping):
            raise BroadcastTransportError(f"{method} response has no result: {body!r}")
        return result

    def broadcast_tx_commit(self, tx_bytes: bytes) -> BroadcastResult:
        encoded = base64.b64encode(tx_bytes).decode("ascii")
        _LOGGER.debug("Broadcasting %d byte transaction to %s", len(tx_bytes), self.rpc_url)
        result = self._post("broadcast_tx_commit", {"tx": encoded})
        return BroadcastResult.from_payload(result)


__all__ = [
    "BroadcastResult",
    "ExecutionResult",
    "TendermintRpcBroadcaster",
]
