"""End-to-end sync: Moneytree accounts and transactions → PocketSmith.

Flow
----
1. Resolve the PocketSmith user and log in to Moneytree (fatal on failure).
2. Read guest metadata (credential → institution name), trigger a Moneytree
   refresh and wait for it to settle (bounded, see :mod:`..polling`).
3. For each open, supported Moneytree account, strictly one after another:
   resolve or create its ledger account, fetch all of its transactions,
   reconcile them newest first, then repair the ledger balance when it
   diverges from Moneytree's.

Per-account problems (missing credential, ambiguous match) skip that account.
Session-level failures, account provisioning failures and transaction fetch
failures propagate and end the run.
"""

from __future__ import annotations

import datetime as dt
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

from ..config import SyncConfig
from ..errors import ApiError
from ..logging_setup import get_logger
from ..matching import Ambiguous
from ..models import UNSUPPORTED_ACCOUNT_TYPES, LedgerAccount, MoneytreeAccount, MoneytreeGuest
from ..moneytree_client import MoneytreeClient
from ..normalizers import account_base_name, build_display_account_name
from ..pocketsmith_client import PocketsmithClient
from ..polling import PollResult, refresh_and_wait
from ..provisioning import find_or_create_account
from ..reconcile import ReconcileReport, TransactionReconciler

_logger = get_logger("pocketsmith_sync.workflows.sync_flow")


class AccountStatus(StrEnum):
    SYNCED = "synced"
    SKIPPED = "skipped"
    AMBIGUOUS = "ambiguous"


@dataclass(slots=True)
class AccountResult:
    source_account_id: int
    name: str
    status: AccountStatus
    reason: str = ""
    report: ReconcileReport | None = None
    balance_updated: bool = False


@dataclass(slots=True)
class SyncSummary:
    refresh: PollResult | None = None
    accounts: list[AccountResult] = field(default_factory=list)

    def count(self, status: AccountStatus) -> int:
        return sum(1 for a in self.accounts if a.status is status)


def _skip(account: MoneytreeAccount, name: str, reason: str) -> AccountResult:
    _logger.info("Skipping Moneytree account %d (%s): %s", account.id, name, reason)
    return AccountResult(account.id, name, AccountStatus.SKIPPED, reason)


def _repair_balance(
    ledger: PocketsmithClient,
    user_id: int,
    account: MoneytreeAccount,
    ledger_account: LedgerAccount,
    *,
    today: dt.date,
) -> bool:
    """Overwrite the ledger balance with Moneytree's when they differ."""

    try:
        current = ledger.find_account_by_name(user_id, ledger_account.title)
    except ApiError as e:
        _logger.error("Error re-reading account %r: %s", ledger_account.title, e)
        return False

    if current.current_balance == account.current_balance:
        return False

    pta = current.primary_transaction_account
    if pta is None or pta.institution is None:
        _logger.error("Account %r has no transaction account to update", current.title)
        return False

    try:
        updated = ledger.update_transaction_account_balance(
            pta.id, pta.institution.id, account.current_balance, today
        )
    except ApiError as e:
        _logger.error("Error updating account balance for %r: %s", current.title, e)
        return False

    _logger.info(
        "Balance diverged (%s in PocketSmith, %s in Moneytree); updated to %s",
        current.current_balance,
        account.current_balance,
        updated.current_balance,
    )
    return True


def sync_account(
    account: MoneytreeAccount,
    guest: MoneytreeGuest,
    *,
    aggregator: MoneytreeClient,
    ledger: PocketsmithClient,
    user_id: int,
    config: SyncConfig,
    today: dt.date,
) -> AccountResult:
    """Sync one Moneytree account. See the module docstring for the flow."""

    name = account.institution_account_name or account.nickname or str(account.id)
    if account.is_closed:
        return _skip(account, name, "account is closed")
    if account.account_type in UNSUPPORTED_ACCOUNT_TYPES:
        return _skip(account, name, f"{account.account_type} accounts are not supported")

    credential = guest.find_credential(account.credential_id)
    if credential is None:
        _logger.error("Credential not found for account: %s", name)
        return _skip(account, name, "credential not found")

    _logger.info(
        "Processing moneytree account: %s %s %s",
        credential.institution_name,
        account.institution_account_name,
        account.institution_account_number,
    )

    base_name = account_base_name(account)
    display_name = build_display_account_name(credential.institution_name, base_name)
    resolved = find_or_create_account(
        ledger,
        user_id,
        credential.institution_name,
        display_name,
        account.account_type,
        account.currency,
        base_name=base_name,
        stored_value_type=config.stored_value_type,
    )
    if isinstance(resolved, Ambiguous):
        _logger.error("Skipping %r: %s", display_name, resolved.reason)
        return AccountResult(account.id, display_name, AccountStatus.AMBIGUOUS, resolved.reason)

    pta = resolved.primary_transaction_account
    if pta is None:
        _logger.error("PocketSmith account %r has no transaction account", resolved.title)
        return _skip(account, display_name, "ledger account has no transaction account")

    transactions = list(
        aggregator.iter_transactions(account.id, since=config.since, per_page=config.per_page)
    )
    _logger.info("num merged txs: %d", len(transactions))

    reconciler = TransactionReconciler(
        ledger,
        pta.id,
        insert_failure=config.insert_failure,
        duplicate_threshold=config.duplicate_threshold,
    )
    report = reconciler.reconcile(transactions)
    _logger.info("%s: %s", resolved.title, report.summary())

    balance_updated = _repair_balance(ledger, user_id, account, resolved, today=today)
    return AccountResult(
        account.id,
        resolved.title,
        AccountStatus.SYNCED,
        report=report,
        balance_updated=balance_updated,
    )


def run_sync(
    config: SyncConfig,
    *,
    aggregator: MoneytreeClient | None = None,
    ledger: PocketsmithClient | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], object] | None = None,
    cancel: threading.Event | None = None,
    today: dt.date | None = None,
) -> SyncSummary:
    """Run a full sync and return a per-account summary.

    Parameters
    ----------
    config:
        Validated run configuration.
    aggregator / ledger:
        Clients to use; built from ``config`` when omitted.
    clock / sleep / cancel:
        Passed to the refresh poller.
    today:
        As-of date for balance repairs (defaults to today).
    """

    if aggregator is None:
        aggregator = MoneytreeClient(config.moneytree_api_key)
    if ledger is None:
        ledger = PocketsmithClient(config.pocketsmith_token)
    if today is None:
        today = dt.date.today()

    user = ledger.get_current_user()
    aggregator.authenticate(config.moneytree_username, config.moneytree_password)
    guest = aggregator.get_guest()

    summary = SyncSummary()
    if config.refresh:
        summary.refresh = refresh_and_wait(
            aggregator,
            baseline=guest,
            timeout=config.refresh_timeout,
            interval=config.poll_interval,
            clock=clock,
            sleep=sleep,
            cancel=cancel,
        )
        if summary.refresh is PollResult.CANCELLED:
            _logger.warning("Sync cancelled before any account was processed")
            return summary

    accounts = aggregator.get_accounts()
    _logger.info("Fetched %d Moneytree accounts", len(accounts))

    for account in accounts:
        summary.accounts.append(
            sync_account(
                account,
                guest,
                aggregator=aggregator,
                ledger=ledger,
                user_id=user.id,
                config=config,
                today=today,
            )
        )

    _logger.info(
        "Sync finished: %d synced, %d skipped, %d ambiguous",
        summary.count(AccountStatus.SYNCED),
        summary.count(AccountStatus.SKIPPED),
        summary.count(AccountStatus.AMBIGUOUS),
    )
    return summary


__all__ = ["AccountStatus", "AccountResult", "SyncSummary", "sync_account", "run_sync"]
