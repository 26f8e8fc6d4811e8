"""Runtime settings for a commission withdrawal run."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, MutableMapping, Optional

from dotenv import load_dotenv

from .keys import DEFAULT_ACCOUNT_PREFIX, DEFAULT_VALIDATOR_PREFIX
from .transactions import DEFAULT_FEE_AMOUNT, DEFAULT_GAS_LIMIT, DEFAULT_MEMO, FeePolicy

DEFAULT_CHAIN_ID = "sommelier-3"
DEFAULT_RPC_URL = "https://sommelier-rpc.polkachu.com:443"
DEFAULT_GRPC_URL = "https://sommelier-grpc.polkachu.com:14190"
DEFAULT_REST_URL = "https://sommelier-api.polkachu.com"
DEFAULT_DENOM = "usomm"
DEFAULT_ACCOUNT_API = "grpc"
DEFAULT_REQUEST_TIMEOUT = 60.0
DEFAULT_LOG_LEVEL = "INFO"

ACCOUNT_APIS = ("grpc", "rest")


@dataclass(frozen=True)
class WithdrawalSettings:
    """Everything the pipeline needs besides its network collaborators."""

    signing_key_path: Path
    chain_id: str = DEFAULT_CHAIN_ID
    rpc_url: str = DEFAULT_RPC_URL
    grpc_url: str = DEFAULT_GRPC_URL
    rest_url: str = DEFAULT_REST_URL
    account_api: str = DEFAULT_ACCOUNT_API
    denom: str = DEFAULT_DENOM
    timeout_height: int = 0
    fee_amount: int = DEFAULT_FEE_AMOUNT
    gas_limit: int = DEFAULT_GAS_LIMIT
    memo: str = DEFAULT_MEMO
    account_prefix: str = DEFAULT_ACCOUNT_PREFIX
    validator_prefix: str = DEFAULT_VALIDATOR_PREFIX
    request_timeout: Optional[float] = DEFAULT_REQUEST_TIMEOUT

    def __post_init__(self) -> None:
        if self.account_api not in ACCOUNT_APIS:
            raise ValueError(f"account_api must be one of {ACCOUNT_APIS}, got {self.account_api!r}")

    @property
    def fee_policy(self) -> FeePolicy:
        return FeePolicy(denom=self.denom, amount=self.fee_amount, gas_limit=self.gas_limit)


def load_environment(env: Optional[MutableMapping[str, str]] = None) -> Mapping[str, str]:
    """Return the process environment after merging a ``.env`` file, if any.

    Variables already set take precedence over the file.
    """

    if env is not None:
        return env
    load_dotenv(override=False)
    return os.environ


__all__ = [
    "ACCOUNT_APIS",
    "DEFAULT_ACCOUNT_API",
    "DEFAULT_CHAIN_ID",
    "DEFAULT_DENOM",
    "DEFAULT_GRPC_URL",
    "DEFAULT_LOG_LEVEL",
    "DEFAULT_REQUEST_TIMEOUT",
    "DEFAULT_REST_URL",
    "DEFAULT_RPC_URL",
    "WithdrawalSettings",
    "load_environment",
]
