"""Data models for the Moneytree → PocketSmith sync.

Remote payloads are parsed into immutable pydantic models. Parsing is lenient
about extra keys (both APIs return far more than the sync needs) but strict
about the fields the matching and reconciliation logic depends on.

Two families live here:

- Source side (Moneytree): ``MoneytreeAccount``, ``MoneytreeTransaction``,
  ``MoneytreeCredential``, ``MoneytreeGuest``, ``AccessToken``.
- Ledger side (PocketSmith): ``LedgerAccount``, ``TransactionAccount``,
  ``Institution``, ``LedgerTransaction``, ``LedgerUser`` and the write payload
  ``TransactionDraft``.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class MoneytreeAccountType(StrEnum):
    """Account categories reported by Moneytree."""

    BANK = "bank"
    CREDIT_CARD = "credit_card"
    STORED_VALUE = "stored_value"
    POINT = "point"
    CASH = "cash"
    STOCK = "stock"


# Not representable in PocketSmith; the driver skips these accounts.
UNSUPPORTED_ACCOUNT_TYPES: frozenset[str] = frozenset(
    {MoneytreeAccountType.CASH, MoneytreeAccountType.POINT}
)


class LedgerAccountType(StrEnum):
    """PocketSmith account types."""

    BANK = "bank"
    CREDITS = "credits"
    STOCKS = "stocks"
    OTHER_ASSET = "other_asset"
    MORTGAGE = "mortgage"
    LOANS = "loans"
    VEHICLE = "vehicle"
    PROPERTY = "property"
    OTHER_LIABILITY = "other_liability"


_API_MODEL_CONFIG = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


def _none_to_empty(v: Any) -> Any:
    return "" if v is None else v


# ---------------------------------------------------------------------------
# Moneytree (source)
# ---------------------------------------------------------------------------


class AccessToken(BaseModel):
    model_config = _API_MODEL_CONFIG

    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None
    refresh_token: str | None = None
    scope: str | None = None
    created_at: int | None = None
    resource_server: str | None = None


class MoneytreeAccount(BaseModel):
    """An account snapshot as returned by ``/v8/api/accounts.json``."""

    model_config = _API_MODEL_CONFIG

    id: int
    credential_id: int
    currency: str
    # Unknown types are kept as plain strings and fall through to the default
    # ledger type when provisioning.
    account_type: MoneytreeAccountType | str
    status: str = "open"
    nickname: str = ""
    institution_account_name: str = ""
    institution_account_number: str = ""
    current_balance: Decimal = Decimal(0)

    @field_validator(
        "nickname", "institution_account_name", "institution_account_number", mode="before"
    )
    @classmethod
    def _strings_not_null(cls, v: Any) -> Any:
        return _none_to_empty(v)

    @field_validator("current_balance", mode="before")
    @classmethod
    def _balance_not_null(cls, v: Any) -> Any:
        return Decimal(0) if v is None else v

    @property
    def is_closed(self) -> bool:
        return self.status.strip().lower() == "closed"


class MoneytreeTransaction(BaseModel):
    """A transaction as returned by ``/v8/api/accounts/<id>/transactions.json``.

    ``raw_transaction_id`` is the vendor-assigned identifier embedded in the
    ledger memo; ``id`` is Moneytree's own identifier and served as the
    reference key before the memo convention existed.
    """

    model_config = _API_MODEL_CONFIG

    id: int
    raw_transaction_id: int
    account_id: int | None = None
    amount: Decimal
    date: dt.datetime
    description_pretty: str = ""
    description_guest: str = ""
    description_raw: str = ""

    @field_validator(
        "description_pretty", "description_guest", "description_raw", mode="before"
    )
    @classmethod
    def _strings_not_null(cls, v: Any) -> Any:
        return _none_to_empty(v)

    @property
    def effective_description(self) -> str:
        """The guest-edited description when present, else the pretty one."""
        guest = self.description_guest.strip()
        if guest:
            return guest
        return self.description_pretty.strip()

    @property
    def posted_on(self) -> dt.date:
        # Moneytree dates carry a +09:00 offset; keep that calendar day.
        return self.date.date()


class MoneytreeCredential(BaseModel):
    model_config = _API_MODEL_CONFIG

    id: int
    institution_name: str = ""
    status: str = ""
    last_success: str | None = None
    auto_run: bool | None = None

    @field_validator("institution_name", "status", mode="before")
    @classmethod
    def _strings_not_null(cls, v: Any) -> Any:
        return _none_to_empty(v)


class MoneytreeGuest(BaseModel):
    """Guest metadata (``/v8/api/presenter/guests.json``), mainly credentials."""

    model_config = _API_MODEL_CONFIG

    id: int
    email: str | None = None
    country: str | None = None
    base_currency: str | None = None
    credentials: tuple[MoneytreeCredential, ...] = ()

    def find_credential(self, credential_id: int) -> MoneytreeCredential | None:
        for credential in self.credentials:
            if credential.id == credential_id:
                return credential
        return None


# ---------------------------------------------------------------------------
# PocketSmith (ledger)
# ---------------------------------------------------------------------------


class LedgerUser(BaseModel):
    model_config = _API_MODEL_CONFIG

    id: int
    login: str | None = None
    name: str | None = None
    base_currency_code: str | None = None


class Institution(BaseModel):
    model_config = _API_MODEL_CONFIG

    id: int
    title: str = ""
    currency_code: str | None = None

    @field_validator("title", mode="before")
    @classmethod
    def _title_not_null(cls, v: Any) -> Any:
        return _none_to_empty(v)


class TransactionAccount(BaseModel):
    """The sub-resource of a ledger account that holds transactions/balance."""

    model_config = _API_MODEL_CONFIG

    id: int
    name: str = ""
    currency_code: str | None = None
    current_balance: Decimal = Decimal(0)
    institution: Institution | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _name_not_null(cls, v: Any) -> Any:
        return _none_to_empty(v)

    @field_validator("current_balance", mode="before")
    @classmethod
    def _balance_not_null(cls, v: Any) -> Any:
        return Decimal(0) if v is None else v


class LedgerAccount(BaseModel):
    model_config = _API_MODEL_CONFIG

    id: int
    title: str = ""
    currency_code: str | None = None
    type: LedgerAccountType | str | None = None
    current_balance: Decimal = Decimal(0)
    primary_transaction_account: TransactionAccount | None = None

    @field_validator("title", mode="before")
    @classmethod
    def _title_not_null(cls, v: Any) -> Any:
        return _none_to_empty(v)

    @field_validator("current_balance", mode="before")
    @classmethod
    def _balance_not_null(cls, v: Any) -> Any:
        return Decimal(0) if v is None else v

    @property
    def institution_title(self) -> str:
        pta = self.primary_transaction_account
        if pta is None or pta.institution is None:
            return ""
        return pta.institution.title


class LedgerTransaction(BaseModel):
    """An existing ledger transaction.

    ``memo`` carries ``mtid=<vendor id>`` for records written by this tool; an
    empty memo marks a legacy record written before that convention existed.
    """

    model_config = _API_MODEL_CONFIG

    id: int
    payee: str = ""
    amount: Decimal = Decimal(0)
    date: dt.date
    memo: str = ""
    note: str = ""
    cheque_number: str = ""
    is_transfer: bool = False
    needs_review: bool = False

    @field_validator("payee", "memo", "note", "cheque_number", mode="before")
    @classmethod
    def _strings_not_null(cls, v: Any) -> Any:
        return _none_to_empty(v)

    @field_validator("is_transfer", "needs_review", mode="before")
    @classmethod
    def _flags_not_null(cls, v: Any) -> Any:
        return False if v is None else v

    @property
    def is_legacy(self) -> bool:
        return not self.memo.strip()


@dataclass(frozen=True, slots=True)
class TransactionDraft:
    """Write payload used for both creating and rewriting ledger transactions."""

    payee: str
    amount: Decimal
    date: dt.date
    memo: str
    is_transfer: bool = False
    needs_review: bool = False
    cheque_number: str = ""
    note: str = ""

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "payee": self.payee,
            "amount": float(self.amount),
            "date": self.date.isoformat(),
            "is_transfer": self.is_transfer,
            "needs_review": self.needs_review,
            "memo": self.memo,
        }
        if self.cheque_number:
            payload["cheque_number"] = self.cheque_number
        if self.note:
            payload["note"] = self.note
        return payload


__all__ = [
    "MoneytreeAccountType",
    "LedgerAccountType",
    "UNSUPPORTED_ACCOUNT_TYPES",
    "AccessToken",
    "MoneytreeAccount",
    "MoneytreeTransaction",
    "MoneytreeCredential",
    "MoneytreeGuest",
    "LedgerUser",
    "Institution",
    "TransactionAccount",
    "LedgerAccount",
    "LedgerTransaction",
    "TransactionDraft",
]
