"""End-to-end commission withdrawal: load key, query account, sign, broadcast."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .accounts import AccountMetadata, AccountResolver, build_account_resolver
from .broadcast import BroadcastResult, TendermintRpcBroadcaster
from .config import WithdrawalSettings
from .errors import TransactionRejectedError
from .keys import DerivedAddresses, derive_addresses, load_signing_identity
from .messages import build_withdraw_commission_message
from .transactions import assemble_and_sign


@dataclass(frozen=True)
class WithdrawalReport:
    addresses: DerivedAddresses
    account: AccountMetadata
    tx_hash: str
    tx_bytes: bytes
    result: Optional[BroadcastResult] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "account_address": self.addresses.account,
            "validator_operator_address": self.addresses.validator_operator,
            "account_number": self.account.account_number,
            "sequence": self.account.sequence,
            "tx_hash": self.tx_hash,
            "broadcast": self.result.as_dict() if self.result is not None else None,
        }


def run_withdrawal(
    settings: WithdrawalSettings,
    *,
    account_resolver: Optional[AccountResolver] = None,
    broadcaster: Optional[TendermintRpcBroadcaster] = None,
    logger: Optional[logging.Logger] = None,
    dry_run: bool = False,
) -> WithdrawalReport:
    """Withdraw the validator's accrued commission.

    Args:
        settings: Chain, endpoint and fee configuration for the run.
        account_resolver: Overrides the resolver selected by
            ``settings.account_api``.
        broadcaster: Overrides the JSON-RPC broadcaster for ``settings.rpc_url``.
        logger: Destination for progress messages. Defaults to this module's
            logger.
        dry_run: Build and sign the transaction but do not broadcast it.

    Returns:
        A :class:`WithdrawalReport`. ``result`` is ``None`` for dry runs.

    Raises:
        WithdrawalError: A stage-specific subclass for any failure.
            :class:`~commission_withdrawal.errors.TransactionRejectedError`
            when the node reports a non-zero result code; the report is
            attached as ``exc.report``.
    """

    log = logger or logging.getLogger(__name__)

    identity = load_signing_identity(settings.signing_key_path)
    log.info("Loaded signing key from %s", settings.signing_key_path)

    addresses = derive_addresses(identity, settings.account_prefix, settings.validator_prefix)
    log.info("Validator address: %s", addresses.account)
    log.info("Validator operator address: %s", addresses.validator_operator)

    message = build_withdraw_commission_message(addresses.validator_operator)

    resolver = account_resolver or build_account_resolver(settings)
    account = resolver.resolve(addresses.account)
    log.info("Account number %d, sequence %d", account.account_number, account.sequence)

    signed = assemble_and_sign(
        identity,
        [message],
        settings.fee_policy,
        account,
        settings.chain_id,
        memo=settings.memo,
        timeout_height=settings.timeout_height,
    )
    tx_bytes = signed.to_bytes()
    log.info("Signed transaction %s (%d bytes)", signed.tx_hash, len(tx_bytes))

    if dry_run:
        log.info("Dry run: not broadcasting")
        return WithdrawalReport(addresses, account, signed.tx_hash, tx_bytes)

    client = broadcaster or TendermintRpcBroadcaster(settings.rpc_url, timeout=settings.request_timeout)
    result = client.broadcast_tx_commit(tx_bytes)
    report = WithdrawalReport(addresses, account, result.tx_hash or signed.tx_hash, tx_bytes, result)

    failure = result.failure()
    if failure is not None:
        phase, outcome = failure
        raise TransactionRejectedError(
            phase,
            outcome.code,
            outcome.log,
            codespace=outcome.codespace,
            tx_hash=report.tx_hash,
            report=report,
        )

    log.info("Transaction %s committed at height %d", report.tx_hash, result.height)
    return report


__all__ = ["WithdrawalReport", "run_withdrawal"]
