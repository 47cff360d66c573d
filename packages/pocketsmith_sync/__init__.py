"""Public interface for the ``pocketsmith_sync`` package.

This module exposes the sync entry points, the pure matching and sanitizing
helpers and the public models as the stable import surface. There is no
runtime logic here, only symbol re-exports.
"""

from .config import SyncConfig, load_config
from .errors import (
    ApiError,
    AuthenticationError,
    ConfigError,
    InsertAbortedError,
    NotFoundError,
    SyncError,
)
from .matching import NOT_FOUND, Ambiguous, MatchCriterion, NotFound, match_account
from .models import (
    LedgerAccount,
    LedgerAccountType,
    LedgerTransaction,
    MoneytreeAccount,
    MoneytreeAccountType,
    MoneytreeTransaction,
    TransactionDraft,
)
from .normalizers import build_display_account_name, normalize_account_title, sanitize_payee
from .provisioning import find_or_create_account, map_account_type
from .reconcile import (
    InsertFailurePolicy,
    ReconcileOutcome,
    ReconcileReport,
    TransactionReconciler,
)
from .workflows import AccountStatus, SyncSummary, run_sync

__all__ = [
    # Entry points
    "run_sync",
    "load_config",
    "SyncConfig",
    "SyncSummary",
    "AccountStatus",
    # Matching / normalization
    "match_account",
    "MatchCriterion",
    "Ambiguous",
    "NotFound",
    "NOT_FOUND",
    "normalize_account_title",
    "build_display_account_name",
    "sanitize_payee",
    # Provisioning / reconciliation
    "find_or_create_account",
    "map_account_type",
    "TransactionReconciler",
    "ReconcileOutcome",
    "ReconcileReport",
    "InsertFailurePolicy",
    # Models
    "MoneytreeAccount",
    "MoneytreeAccountType",
    "MoneytreeTransaction",
    "LedgerAccount",
    "LedgerAccountType",
    "LedgerTransaction",
    "TransactionDraft",
    # Errors
    "SyncError",
    "ConfigError",
    "ApiError",
    "NotFoundError",
    "AuthenticationError",
    "InsertAbortedError",
]
