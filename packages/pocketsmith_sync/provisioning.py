"""Find-or-create ledger accounts for Moneytree accounts.

:func:`find_or_create_account` first runs the account matcher over the user's
existing ledger accounts. Only a definite miss creates anything: the
institution is looked up (and created on miss), the Moneytree account type is
mapped to a PocketSmith type and the account is created under it. Once the
account exists, repeated calls resolve it through the display-name rule and
create nothing.
"""

from __future__ import annotations

from typing import Protocol

from .errors import NotFoundError
from .logging_setup import get_logger
from .matching import Ambiguous, NotFound, match_account
from .models import (
    Institution,
    LedgerAccount,
    LedgerAccountType,
    MoneytreeAccountType,
)

_logger = get_logger("pocketsmith_sync.provisioning")


class AccountDirectory(Protocol):
    """The slice of the ledger client used for provisioning."""

    def list_accounts(self, user_id: int) -> list[LedgerAccount]: ...

    def find_institution_by_name(self, user_id: int, name: str) -> Institution: ...

    def create_institution(self, user_id: int, title: str, currency_code: str) -> Institution: ...

    def create_account(
        self,
        user_id: int,
        institution_id: int,
        title: str,
        currency_code: str,
        account_type: LedgerAccountType,
    ) -> LedgerAccount: ...


# Stored-value (e-money) accounts are the only type without a single obvious
# mapping; the policy is chosen by configuration.
STORED_VALUE_CHOICES: tuple[LedgerAccountType, ...] = (
    LedgerAccountType.BANK,
    LedgerAccountType.OTHER_ASSET,
)

_TYPE_MAP: dict[str, LedgerAccountType] = {
    MoneytreeAccountType.BANK: LedgerAccountType.BANK,
    MoneytreeAccountType.CREDIT_CARD: LedgerAccountType.CREDITS,
    MoneytreeAccountType.STOCK: LedgerAccountType.STOCKS,
    MoneytreeAccountType.POINT: LedgerAccountType.OTHER_ASSET,
}


def map_account_type(
    account_type: MoneytreeAccountType | str,
    *,
    stored_value_type: LedgerAccountType = LedgerAccountType.BANK,
) -> LedgerAccountType:
    """Map a Moneytree account type to a PocketSmith account type.

    Unknown types (including ``cash``) map to ``other_asset``.
    """

    if account_type == MoneytreeAccountType.STORED_VALUE:
        if stored_value_type not in STORED_VALUE_CHOICES:
            raise ValueError(
                f"Unsupported stored-value mapping: {stored_value_type!r}. "
                f"Allowed: {[str(c) for c in STORED_VALUE_CHOICES]}"
            )
        return stored_value_type
    return _TYPE_MAP.get(str(account_type), LedgerAccountType.OTHER_ASSET)


def _find_or_create_institution(
    ledger: AccountDirectory, user_id: int, institution_name: str, currency: str
) -> Institution:
    try:
        return ledger.find_institution_by_name(user_id, institution_name)
    except NotFoundError:
        pass

    _logger.info("Creating PocketSmith institution %r", institution_name)
    return ledger.create_institution(user_id, institution_name, currency.lower())


def find_or_create_account(
    ledger: AccountDirectory,
    user_id: int,
    institution_name: str,
    display_name: str,
    account_type: MoneytreeAccountType | str,
    currency: str,
    *,
    base_name: str | None = None,
    stored_value_type: LedgerAccountType = LedgerAccountType.BANK,
) -> LedgerAccount | Ambiguous:
    """Return the ledger account for a Moneytree account, creating it on miss.

    Parameters
    ----------
    ledger:
        Ledger client (see :class:`AccountDirectory`).
    user_id:
        PocketSmith user owning the accounts.
    institution_name:
        Moneytree institution name; also the title of a created institution.
    display_name:
        Composed ``"<Institution> - <Account>"`` title; the title of a created
        account.
    account_type / currency:
        Moneytree account type and ISO currency code of the source account.
    base_name:
        Account title without institution. Defaults to ``display_name``.
    stored_value_type:
        Ledger type used for Moneytree ``stored_value`` accounts.

    Returns
    -------
    LedgerAccount | Ambiguous
        ``Ambiguous`` when several existing accounts match equally well; the
        caller must skip the account.

    Errors other than :class:`~pocketsmith_sync.errors.NotFoundError` from the
    ledger propagate unchanged.
    """

    candidates = ledger.list_accounts(user_id)
    result = match_account(
        candidates,
        institution_name,
        base_name if base_name is not None else display_name,
        display_name,
    )
    if isinstance(result, Ambiguous):
        return result
    if not isinstance(result, NotFound):
        return result

    institution = _find_or_create_institution(ledger, user_id, institution_name, currency)
    ledger_type = map_account_type(account_type, stored_value_type=stored_value_type)

    _logger.info(
        "Creating PocketSmith account %r (%s, %s) under institution %d",
        display_name,
        ledger_type,
        currency.lower(),
        institution.id,
    )
    return ledger.create_account(
        user_id, institution.id, display_name, currency.lower(), ledger_type
    )


__all__ = [
    "AccountDirectory",
    "STORED_VALUE_CHOICES",
    "map_account_type",
    "find_or_create_account",
]
