"""Reconcile Moneytree transactions into one PocketSmith transaction account.

Each source transaction ends in exactly one :class:`ReconcileOutcome`:

- ``DUPLICATE``: a ledger transaction already carries ``mtid=<vendor id>`` in
  its memo, or an older record matches by date and reference but has a memo
  already (nothing to migrate).
- ``MIGRATED``: a legacy record (empty memo) matched by date and reference
  and was rewritten in place with the memo/payee this tool writes today.
- ``INSERTED``: nothing matched; the transaction was created.
- ``FAILED``: a search/update/insert call failed; the transaction was skipped.

Transactions are scanned newest first. Once more than ``duplicate_threshold``
consecutive duplicates are seen, everything older is assumed to be synced and
the scan stops without touching the remainder.
"""

from __future__ import annotations

import datetime as dt
import re
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

from .errors import ApiError, InsertAbortedError
from .logging_setup import get_logger
from .models import LedgerTransaction, MoneytreeTransaction, TransactionDraft
from .normalizers import sanitize_payee

_logger = get_logger("pocketsmith_sync.reconcile")

DUPLICATE_THRESHOLD: int = 15

# 振込 = bank wire transfer
TRANSFER_MARKER = "振込"


class ReconcileOutcome(StrEnum):
    DUPLICATE = "duplicate"
    MIGRATED = "migrated"
    INSERTED = "inserted"
    FAILED = "failed"


class InsertFailurePolicy(StrEnum):
    """What a failed insert does to the run: log and go on, or abort."""

    SKIP = "skip"
    ABORT = "abort"


class TransactionLedger(Protocol):
    """The slice of the ledger client used for reconciliation."""

    def search_transactions_by_memo(
        self, transaction_account_id: int, on_date: dt.date, memo_fragment: str
    ) -> list[LedgerTransaction]: ...

    def search_transactions(
        self,
        transaction_account_id: int,
        start_date: dt.date,
        end_date: dt.date,
        search: str,
    ) -> list[LedgerTransaction]: ...

    def add_transaction(
        self, transaction_account_id: int, draft: TransactionDraft
    ) -> LedgerTransaction: ...

    def update_transaction(
        self, transaction_id: int, draft: TransactionDraft
    ) -> LedgerTransaction: ...


# ---------------------------------------------------------------------------
# Memo convention
# ---------------------------------------------------------------------------


def vendor_memo_token(raw_transaction_id: int | str) -> str:
    return f"mtid={raw_transaction_id}"


def memo_has_vendor_id(memo: str, raw_transaction_id: int | str) -> bool:
    """True when ``memo`` carries exactly ``mtid=<raw_transaction_id>``.

    ``mtid=12`` must not match a memo holding ``mtid=123``.
    """

    token = re.escape(vendor_memo_token(raw_transaction_id))
    return re.search(rf"(?:^|\s){token}(?!\w)", memo) is not None


def build_draft(tx: MoneytreeTransaction) -> TransactionDraft:
    """Build the ledger record written for ``tx`` (insert and migration)."""

    description = tx.effective_description
    payee = sanitize_payee(description)
    return TransactionDraft(
        payee=payee,
        amount=tx.amount,
        date=tx.posted_on,
        memo=f"{description} {vendor_memo_token(tx.raw_transaction_id)}",
        is_transfer=TRANSFER_MARKER in payee,
        needs_review=False,
        cheque_number=str(tx.raw_transaction_id),
    )


# ---------------------------------------------------------------------------
# Scan state
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class DuplicateCounter:
    """Consecutive-duplicate counter for one account's scan."""

    threshold: int = DUPLICATE_THRESHOLD
    count: int = 0

    def record(self, outcome: ReconcileOutcome) -> None:
        if outcome is ReconcileOutcome.DUPLICATE:
            self.count += 1
        else:
            self.count = 0

    @property
    def exhausted(self) -> bool:
        return self.count > self.threshold


@dataclass(slots=True)
class ReconcileReport:
    total: int = 0
    visited: int = 0
    stopped_early: bool = False
    counts: Counter[ReconcileOutcome] = field(default_factory=Counter)

    @property
    def not_visited(self) -> int:
        return self.total - self.visited

    @property
    def inserted(self) -> int:
        return self.counts[ReconcileOutcome.INSERTED]

    @property
    def migrated(self) -> int:
        return self.counts[ReconcileOutcome.MIGRATED]

    @property
    def duplicates(self) -> int:
        return self.counts[ReconcileOutcome.DUPLICATE]

    @property
    def failed(self) -> int:
        return self.counts[ReconcileOutcome.FAILED]

    def summary(self) -> str:
        return (
            f"{self.inserted} inserted, {self.migrated} migrated, "
            f"{self.duplicates} already synced, {self.failed} failed, "
            f"{self.not_visited} not visited"
        )


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------


class TransactionReconciler:
    """Reconcile source transactions into a single ledger transaction account.

    Parameters
    ----------
    ledger:
        Ledger client (see :class:`TransactionLedger`).
    transaction_account_id:
        Id of the ledger account's primary transaction account.
    insert_failure:
        :class:`InsertFailurePolicy` applied when creating a transaction fails.
    duplicate_threshold:
        Scan stops once the consecutive-duplicate count exceeds this value.
    """

    def __init__(
        self,
        ledger: TransactionLedger,
        transaction_account_id: int,
        *,
        insert_failure: InsertFailurePolicy = InsertFailurePolicy.SKIP,
        duplicate_threshold: int = DUPLICATE_THRESHOLD,
    ) -> None:
        self._ledger = ledger
        self._account_id = transaction_account_id
        self._insert_failure = InsertFailurePolicy(insert_failure)
        self._threshold = duplicate_threshold

    def reconcile(self, transactions: Iterable[MoneytreeTransaction]) -> ReconcileReport:
        """Scan ``transactions`` newest first and reconcile each one.

        Raises :class:`~pocketsmith_sync.errors.InsertAbortedError` only under
        the ``abort`` insert policy; every other remote failure is logged and
        the transaction skipped.
        """

        ordered = sorted(transactions, key=lambda t: t.date, reverse=True)
        report = ReconcileReport(total=len(ordered))
        counter = DuplicateCounter(threshold=self._threshold)

        for i, tx in enumerate(ordered):
            if counter.exhausted:
                _logger.info(
                    "Too many repeated transactions found, likely everything processed "
                    "already. Skipping the remaining %d.",
                    len(ordered) - i,
                )
                report.stopped_early = True
                break

            draft = build_draft(tx)
            _logger.info(
                "[%d/%d] Processing moneytree transaction: %d %s %s",
                i + 1,
                len(ordered),
                tx.id,
                draft.payee,
                draft.date.isoformat(),
            )

            outcome = self.reconcile_one(tx, draft)
            counter.record(outcome)
            report.visited += 1
            report.counts[outcome] += 1

        return report

    def reconcile_one(
        self, tx: MoneytreeTransaction, draft: TransactionDraft | None = None
    ) -> ReconcileOutcome:
        """Reconcile a single transaction and return its outcome."""

        if draft is None:
            draft = build_draft(tx)
        token = vendor_memo_token(tx.raw_transaction_id)

        try:
            by_memo = self._ledger.search_transactions_by_memo(
                self._account_id, draft.date, token
            )
        except ApiError as e:
            _logger.error("Error searching transactions by memo %s: %s", token, e)
            return ReconcileOutcome.FAILED

        if any(memo_has_vendor_id(t.memo, tx.raw_transaction_id) for t in by_memo):
            _logger.info("Found transaction by memo: %s", draft.payee)
            return ReconcileOutcome.DUPLICATE

        try:
            by_reference = self._ledger.search_transactions(
                self._account_id, draft.date, draft.date, str(tx.id)
            )
        except ApiError as e:
            _logger.error("Error searching transactions for reference %d: %s", tx.id, e)
            return ReconcileOutcome.FAILED

        if by_reference:
            return self._migrate_legacy(by_reference, draft)

        return self._insert(draft)

    def _migrate_legacy(
        self, matches: list[LedgerTransaction], draft: TransactionDraft
    ) -> ReconcileOutcome:
        legacy = [t for t in matches if t.is_legacy]
        if not legacy:
            _logger.info("Found transaction already, won't add it again: %s", draft.payee)
            return ReconcileOutcome.DUPLICATE

        updated = 0
        for existing in legacy:
            _logger.info("Memo not set, updating transaction %d to new format", existing.id)
            try:
                self._ledger.update_transaction(existing.id, draft)
            except ApiError as e:
                _logger.error("Error updating transaction %d: %s", existing.id, e)
                continue
            updated += 1

        return ReconcileOutcome.MIGRATED if updated else ReconcileOutcome.FAILED

    def _insert(self, draft: TransactionDraft) -> ReconcileOutcome:
        try:
            self._ledger.add_transaction(self._account_id, draft)
        except ApiError as e:
            if self._insert_failure is InsertFailurePolicy.ABORT:
                raise InsertAbortedError(
                    f"failed to add transaction {draft.memo!r}: {e}"
                ) from e
            _logger.error("Error adding transaction %r: %s", draft.memo, e)
            return ReconcileOutcome.FAILED
        return ReconcileOutcome.INSERTED


__all__ = [
    "DUPLICATE_THRESHOLD",
    "TRANSFER_MARKER",
    "ReconcileOutcome",
    "InsertFailurePolicy",
    "TransactionLedger",
    "vendor_memo_token",
    "memo_has_vendor_id",
    "build_draft",
    "DuplicateCounter",
    "ReconcileReport",
    "TransactionReconciler",
]
