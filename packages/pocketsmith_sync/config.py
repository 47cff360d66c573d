"""Run configuration for a sync.

Values come from CLI options first, then environment variables (a local
``.env`` is loaded by the CLI before this module is consulted), then defaults.
Validation happens once, in :class:`SyncConfig.__post_init__`.
"""

from __future__ import annotations

import datetime as dt
import os
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from .errors import ConfigError
from .models import LedgerAccountType
from .moneytree_client import DEFAULT_PER_PAGE, DEFAULT_SINCE
from .polling import DEFAULT_POLL_INTERVAL, DEFAULT_REFRESH_TIMEOUT
from .provisioning import STORED_VALUE_CHOICES
from .reconcile import DUPLICATE_THRESHOLD, InsertFailurePolicy

# config field -> environment variable
ENV_VARS: Mapping[str, str] = {
    "moneytree_username": "MONEYTREE_USERNAME",
    "moneytree_password": "MONEYTREE_PASSWORD",
    "moneytree_api_key": "MONEYTREE_API_KEY",
    "pocketsmith_token": "POCKETSMITH_TOKEN",
    "since": "POCKETSMITH_SYNC_SINCE",
    "refresh_timeout": "POCKETSMITH_SYNC_REFRESH_TIMEOUT",
    "poll_interval": "POCKETSMITH_SYNC_POLL_INTERVAL",
    "stored_value_type": "POCKETSMITH_SYNC_STORED_VALUE_TYPE",
    "insert_failure": "POCKETSMITH_SYNC_INSERT_FAILURE",
}

_REQUIRED: Mapping[str, tuple[str, str]] = {
    "moneytree_username": ("Moneytree username", "--username"),
    "moneytree_password": ("Moneytree password", "--password"),
    "moneytree_api_key": ("Moneytree API key", "--apikey"),
    "pocketsmith_token": ("PocketSmith token", "--pocketsmith-token"),
}


@dataclass(frozen=True, slots=True)
class SyncConfig:
    """Settings for one sync run.

    Attributes
    ----------
    moneytree_username / moneytree_password / moneytree_api_key:
        Moneytree guest login and the mobile client API key.
    pocketsmith_token:
        PocketSmith developer key.
    since:
        ``YYYY-MM-DD``; oldest Moneytree transaction date fetched.
    refresh:
        Trigger a Moneytree refresh (and wait for it) before syncing.
    refresh_timeout / poll_interval:
        Bound and cadence (seconds) of the refresh wait.
    stored_value_type:
        Ledger type for Moneytree ``stored_value`` (e-money) accounts.
    insert_failure:
        Whether a failed transaction insert is skipped or aborts the run.
    duplicate_threshold:
        Consecutive already-synced transactions tolerated before an account's
        scan stops.
    per_page:
        Moneytree transactions page size.
    """

    moneytree_username: str
    moneytree_password: str
    moneytree_api_key: str
    pocketsmith_token: str
    since: str = DEFAULT_SINCE
    refresh: bool = True
    refresh_timeout: float = DEFAULT_REFRESH_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    stored_value_type: LedgerAccountType = LedgerAccountType.BANK
    insert_failure: InsertFailurePolicy = InsertFailurePolicy.SKIP
    duplicate_threshold: int = DUPLICATE_THRESHOLD
    per_page: int = DEFAULT_PER_PAGE

    def __post_init__(self) -> None:
        for name, (label, flag) in _REQUIRED.items():
            if not str(getattr(self, name) or "").strip():
                raise ConfigError(
                    f"{label} is required. Set via {flag} flag or "
                    f"{ENV_VARS[name]} environment variable"
                )

        try:
            dt.date.fromisoformat(self.since)
        except ValueError as exc:
            raise ConfigError(f"since must be a YYYY-MM-DD date, got {self.since!r}") from exc

        if self.refresh_timeout < 0:
            raise ConfigError("refresh_timeout must be >= 0 seconds")
        if self.poll_interval <= 0:
            raise ConfigError("poll_interval must be > 0 seconds")
        if self.stored_value_type not in STORED_VALUE_CHOICES:
            raise ConfigError(
                f"stored_value_type must be one of {[str(c) for c in STORED_VALUE_CHOICES]}"
            )
        if not isinstance(self.insert_failure, InsertFailurePolicy):
            raise ConfigError("insert_failure must be an InsertFailurePolicy")
        if self.duplicate_threshold < 0:
            raise ConfigError("duplicate_threshold must be >= 0")
        if self.per_page <= 0:
            raise ConfigError("per_page must be a positive integer")


def _coerce_float(name: str, raw: Any) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def _coerce_choice(name: str, raw: Any, enum_type: type[StrEnum]) -> Any:
    try:
        return enum_type(str(raw).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(m.value for m in enum_type)
        raise ConfigError(f"{name} must be one of: {allowed}; got {raw!r}") from exc


def load_config(env: Mapping[str, str] | None = None, **overrides: Any) -> SyncConfig:
    """Build a :class:`SyncConfig` from explicit overrides and the environment.

    ``None`` overrides are ignored so CLI options left unset fall through to
    the environment (``env`` defaults to ``os.environ``).
    """

    environ = os.environ if env is None else env
    values: dict[str, Any] = {k: v for k, v in overrides.items() if v is not None}

    for name, var in ENV_VARS.items():
        if name not in values:
            raw = environ.get(var)
            if raw is not None and raw.strip():
                values[name] = raw.strip()

    for name in _REQUIRED:
        values.setdefault(name, "")
    for name in ("refresh_timeout", "poll_interval"):
        if name in values:
            values[name] = _coerce_float(name, values[name])
    if "stored_value_type" in values:
        values["stored_value_type"] = _coerce_choice(
            "stored_value_type", values["stored_value_type"], LedgerAccountType
        )
    if "insert_failure" in values:
        values["insert_failure"] = _coerce_choice(
            "insert_failure", values["insert_failure"], InsertFailurePolicy
        )

    return SyncConfig(**values)


__all__ = ["ENV_VARS", "SyncConfig", "load_config"]
