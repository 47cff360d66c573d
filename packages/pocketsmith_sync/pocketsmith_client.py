"""Thin client for the PocketSmith v2 REST API.

Authentication is the personal developer key (``X-Developer-Key``). Lookups
that find nothing raise :class:`~pocketsmith_sync.errors.NotFoundError`, which
callers treat as an expected outcome rather than a failure.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Any

from .errors import ApiError, NotFoundError
from .logging_setup import get_logger
from .models import (
    Institution,
    LedgerAccount,
    LedgerAccountType,
    LedgerTransaction,
    LedgerUser,
    TransactionAccount,
    TransactionDraft,
)
from .transport import DEFAULT_TIMEOUT, request_json

API_BASE_URL = "https://api.pocketsmith.com/v2"
DEFAULT_PAGE_SIZE = 100

_logger = get_logger("pocketsmith_sync.pocketsmith_client")


class PocketsmithClient:
    """PocketSmith API client.

    Parameters
    ----------
    token:
        Personal developer key.
    page_size:
        ``per_page`` used when listing transactions.
    """

    def __init__(
        self,
        token: str,
        *,
        base_url: str = API_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._page_size = page_size

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: Any = None,
    ) -> Any:
        return request_json(
            method,
            f"{self._base_url}/{path.lstrip('/')}",
            headers={"X-Developer-Key": self._token, "Accept": "application/json"},
            params=params,
            body=body,
            timeout=self._timeout,
        )

    def _list(self, path: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Collect a paginated listing until a short or empty page."""

        items: list[dict[str, Any]] = []
        page = 1
        while True:
            query = dict(params or {}, page=page, per_page=self._page_size)
            batch = self._request("GET", path, params=query) or []
            if not isinstance(batch, list):
                raise ApiError(f"GET {path} returned {type(batch).__name__}, expected a list")
            items.extend(batch)
            if len(batch) < self._page_size:
                return items
            page += 1

    # ---- users / accounts ---------------------------------------------------

    def get_current_user(self) -> LedgerUser:
        return LedgerUser.model_validate(self._request("GET", "me"))

    def list_accounts(self, user_id: int) -> list[LedgerAccount]:
        payload = self._request("GET", f"users/{user_id}/accounts") or []
        return [LedgerAccount.model_validate(a) for a in payload]

    def find_account_by_name(self, user_id: int, name: str) -> LedgerAccount:
        """Return the account titled exactly ``name``; ``NotFoundError`` otherwise."""

        for account in self.list_accounts(user_id):
            if account.title == name:
                return account
        raise NotFoundError(f"no PocketSmith account titled {name!r}")

    def create_account(
        self,
        user_id: int,
        institution_id: int,
        title: str,
        currency_code: str,
        account_type: LedgerAccountType,
    ) -> LedgerAccount:
        payload = self._request(
            "POST",
            f"users/{user_id}/accounts",
            body={
                "institution_id": institution_id,
                "title": title,
                "currency_code": currency_code,
                "type": str(account_type),
            },
        )
        return LedgerAccount.model_validate(payload)

    def update_transaction_account_balance(
        self,
        transaction_account_id: int,
        institution_id: int,
        balance: Decimal,
        as_of: dt.date,
    ) -> TransactionAccount:
        """Pin the account balance to ``balance`` as of ``as_of``.

        PocketSmith recomputes the current balance from the starting balance,
        so anchoring it on ``as_of`` makes ``balance`` the current one.
        """

        payload = self._request(
            "PUT",
            f"transaction_accounts/{transaction_account_id}",
            body={
                "institution_id": institution_id,
                "starting_balance": float(balance),
                "starting_balance_date": as_of.isoformat(),
            },
        )
        return TransactionAccount.model_validate(payload)

    # ---- institutions -------------------------------------------------------

    def list_institutions(self, user_id: int) -> list[Institution]:
        payload = self._request("GET", f"users/{user_id}/institutions") or []
        return [Institution.model_validate(i) for i in payload]

    def find_institution_by_name(self, user_id: int, name: str) -> Institution:
        for institution in self.list_institutions(user_id):
            if institution.title == name:
                return institution
        raise NotFoundError(f"no PocketSmith institution titled {name!r}")

    def create_institution(self, user_id: int, title: str, currency_code: str) -> Institution:
        payload = self._request(
            "POST",
            f"users/{user_id}/institutions",
            body={"title": title, "currency_code": currency_code},
        )
        return Institution.model_validate(payload)

    # ---- transactions -------------------------------------------------------

    def search_transactions(
        self,
        transaction_account_id: int,
        start_date: dt.date,
        end_date: dt.date,
        search: str | None = None,
    ) -> list[LedgerTransaction]:
        """List transactions within ``[start_date, end_date]`` matching ``search``."""

        rows = self._list(
            f"transaction_accounts/{transaction_account_id}/transactions",
            {
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "search": search or None,
            },
        )
        return [LedgerTransaction.model_validate(r) for r in rows]

    def search_transactions_by_memo(
        self, transaction_account_id: int, on_date: dt.date, memo_fragment: str
    ) -> list[LedgerTransaction]:
        """Transactions dated ``on_date`` whose memo contains ``memo_fragment``."""

        same_day = self.search_transactions(transaction_account_id, on_date, on_date)
        return [t for t in same_day if memo_fragment in t.memo]

    def add_transaction(
        self, transaction_account_id: int, draft: TransactionDraft
    ) -> LedgerTransaction:
        payload = self._request(
            "POST",
            f"transaction_accounts/{transaction_account_id}/transactions",
            body=draft.to_payload(),
        )
        _logger.debug("created transaction %s", (payload or {}).get("id"))
        return LedgerTransaction.model_validate(payload)

    def update_transaction(self, transaction_id: int, draft: TransactionDraft) -> LedgerTransaction:
        payload = self._request("PUT", f"transactions/{transaction_id}", body=draft.to_payload())
        return LedgerTransaction.model_validate(payload)


__all__ = ["API_BASE_URL", "DEFAULT_PAGE_SIZE", "PocketsmithClient"]
