"""Withdraw a Sommelier validator's accrued commission from the command line."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import IO, Mapping, Optional, Sequence

from .config import (
    ACCOUNT_APIS,
    DEFAULT_ACCOUNT_API,
    DEFAULT_CHAIN_ID,
    DEFAULT_DENOM,
    DEFAULT_GRPC_URL,
    DEFAULT_LOG_LEVEL,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_REST_URL,
    DEFAULT_RPC_URL,
    WithdrawalSettings,
    load_environment,
)
from .errors import TransactionRejectedError, WithdrawalError
from .keys import DEFAULT_ACCOUNT_PREFIX, DEFAULT_VALIDATOR_PREFIX
from .pipeline import WithdrawalReport, run_withdrawal
from .transactions import DEFAULT_FEE_AMOUNT, DEFAULT_GAS_LIMIT, DEFAULT_MEMO

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_REJECTED = 3

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
LOGGER_NAME = "commission_withdrawal"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _build_parser(env: Mapping[str, str]) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Sign and broadcast a MsgWithdrawValidatorCommission transaction.",
    )
    key_default = env.get("SOMM_SIGNING_KEY_PATH")
    parser.add_argument(
        "--signing-key-path",
        type=Path,
        default=Path(key_default) if key_default else None,
        required=not key_default,
        help="File containing the hex-encoded secp256k1 private key.",
    )
    parser.add_argument("--chain-id", default=env.get("SOMM_CHAIN_ID", DEFAULT_CHAIN_ID))
    parser.add_argument(
        "--rpc-url",
        default=env.get("SOMM_RPC_URL", DEFAULT_RPC_URL),
        help="Tendermint RPC endpoint used for broadcast_tx_commit.",
    )
    parser.add_argument(
        "--grpc-url",
        default=env.get("SOMM_GRPC_URL", DEFAULT_GRPC_URL),
        help="gRPC endpoint for the account query (https:// selects TLS).",
    )
    parser.add_argument(
        "--rest-url",
        default=env.get("SOMM_REST_URL", DEFAULT_REST_URL),
        help="REST (LCD) endpoint for the account query when --account-api=rest.",
    )
    parser.add_argument(
        "--account-api",
        choices=ACCOUNT_APIS,
        default=env.get("SOMM_ACCOUNT_API", DEFAULT_ACCOUNT_API),
        help="Which query API to use for the account number and sequence.",
    )
    parser.add_argument("--denom", default=env.get("SOMM_DENOM", DEFAULT_DENOM), help="Fee denomination.")
    parser.add_argument(
        "--timeout-height",
        type=int,
        default=0,
        help="Block height after which the transaction is invalid (0 disables).",
    )
    parser.add_argument("--fee-amount", type=int, default=DEFAULT_FEE_AMOUNT)
    parser.add_argument("--gas-limit", type=int, default=DEFAULT_GAS_LIMIT)
    parser.add_argument("--memo", default=DEFAULT_MEMO)
    parser.add_argument("--account-prefix", default=DEFAULT_ACCOUNT_PREFIX)
    parser.add_argument("--validator-prefix", default=DEFAULT_VALIDATOR_PREFIX)
    parser.add_argument(
        "--request-timeout",
        type=float,
        default=DEFAULT_REQUEST_TIMEOUT,
        help="Seconds to wait for each remote call (0 waits indefinitely).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Build and sign the transaction but do not broadcast it.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit the result as JSON for downstream scripting.",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default=env.get("SOMM_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
        help="Logging verbosity (%(choices)s)",
    )
    return parser


def configure_logging(
    level: str = DEFAULT_LOG_LEVEL,
    fmt: str = LOG_FORMAT,
    stream: Optional[IO[str]] = None,
) -> logging.Logger:
    """Return the package logger writing ``fmt`` lines to ``stream`` (stderr)."""

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_withdraw_commission", False):
            logger.removeHandler(handler)
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter(fmt))
    handler._withdraw_commission = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False
    return logger


def _settings_from_args(args: argparse.Namespace) -> WithdrawalSettings:
    return WithdrawalSettings(
        signing_key_path=args.signing_key_path,
        chain_id=args.chain_id,
        rpc_url=args.rpc_url,
        grpc_url=args.grpc_url,
        rest_url=args.rest_url,
        account_api=args.account_api,
        denom=args.denom,
        timeout_height=args.timeout_height,
        fee_amount=args.fee_amount,
        gas_limit=args.gas_limit,
        memo=args.memo,
        account_prefix=args.account_prefix,
        validator_prefix=args.validator_prefix,
        request_timeout=args.request_timeout or None,
    )


def _print_report(report: WithdrawalReport, as_json: bool, error: Optional[TransactionRejectedError] = None) -> None:
    if as_json:
        payload = report.as_dict()
        if error is not None:
            payload["error"] = {"phase": error.phase, "code": error.code, "codespace": error.codespace, "log": error.log}
        json.dump(payload, sys.stdout, indent=2)
        sys.stdout.write("\n")
        return

    if report.result is None:
        print(f"Signed transaction {report.tx_hash} (not broadcast)")
        print(report.tx_bytes.hex())
    elif error is not None:
        print(f"Transaction {report.tx_hash} rejected during {error.phase} with code {error.code}: {error.log}")
    else:
        print(f"Transaction {report.tx_hash} committed at height {report.result.height}")


def main(argv: Sequence[str] | None = None) -> int:
    env = load_environment()
    parser = _build_parser(env)
    args = parser.parse_args(argv)
    if args.log_level not in LOG_LEVELS:
        parser.error(f"SOMM_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {args.log_level!r}")
    logger = configure_logging(args.log_level)

    logger.info("Starting withdraw-commission")
    try:
        settings = _settings_from_args(args)
    except ValueError as exc:
        parser.error(str(exc))

    try:
        report = run_withdrawal(settings, logger=logger, dry_run=args.dry_run)
    except TransactionRejectedError as exc:
        logger.error("%s failed: %s", exc.stage, exc)
        if exc.report is not None:
            _print_report(exc.report, args.json, exc)
        return EXIT_REJECTED
    except WithdrawalError as exc:
        logger.error("%s failed: %s", exc.stage, exc)
        return EXIT_FAILURE

    _print_report(report, args.json)
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
