"""Thin client for the Moneytree guest API (the one the mobile app talks to).

Authentication uses the OAuth password grant with the app's API key as
``client_id``; every other call sends the bearer token plus the mobile
client's API headers. Responses are validated into
:mod:`pocketsmith_sync.models`.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from .errors import ApiError, AuthenticationError
from .logging_setup import get_logger
from .models import AccessToken, MoneytreeAccount, MoneytreeGuest, MoneytreeTransaction
from .transport import DEFAULT_TIMEOUT, request_json

TOKEN_URL = "https://myaccount.getmoneytree.com/oauth/token"
API_BASE_URL = "https://jp-api.getmoneytree.com/v8/api"
API_VERSION = "20180814"
USER_AGENT = "Moneytree/1.16.3 (Android 12; en_AU; Pixel 3)"

DEFAULT_SINCE = "2010-01-01"
DEFAULT_PER_PAGE = 500

_logger = get_logger("pocketsmith_sync.moneytree_client")


class MoneytreeClient:
    """Moneytree API client.

    Parameters
    ----------
    api_key:
        The mobile client's API key (sent as ``client_id`` and ``X-Api-Key``).
    access_token:
        Optional pre-obtained bearer token; otherwise call :meth:`authenticate`.
    """

    def __init__(
        self,
        api_key: str,
        *,
        access_token: str | None = None,
        base_url: str = API_BASE_URL,
        token_url: str = TOKEN_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._api_key = api_key
        self._access_token = access_token
        self._refresh_token: str | None = None
        self._base_url = base_url.rstrip("/")
        self._token_url = token_url
        self._timeout = timeout

    # ---- auth ---------------------------------------------------------------

    def authenticate(self, username: str, password: str) -> AccessToken:
        """Exchange guest login/password for an access token and keep it."""

        body = {
            "client_id": self._api_key,
            "grant_type": "password",
            "guest_login": username,
            "password": password,
        }
        headers = {
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
            "Accept-Language": "en-US-POSIX",
            "locale": "en-US-POSIX",
        }
        try:
            payload = request_json(
                "POST", self._token_url, headers=headers, body=body, timeout=self._timeout
            )
        except ApiError as e:
            raise AuthenticationError(
                f"Moneytree login failed: {e}", status=e.status, body=e.body
            ) from e

        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise AuthenticationError("Moneytree login returned no access token")

        token = AccessToken.model_validate(payload)
        self._access_token = token.access_token
        self._refresh_token = token.refresh_token
        return token

    @property
    def is_authenticated(self) -> bool:
        return bool(self._access_token)

    # ---- plumbing -----------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        if not self._access_token:
            raise AuthenticationError("Moneytree client is not authenticated")
        return {
            "Accept": "application/json",
            "Accept-Language": "en_AU",
            "locale": "en_AU",
            "X-Api-Key": self._api_key,
            "X-Api-Version": API_VERSION,
            "User-Agent": USER_AGENT,
            "Authorization": f"Bearer {self._access_token}",
        }

    def _request(
        self, method: str, path: str, *, params: dict[str, Any] | None = None
    ) -> Any:
        return request_json(
            method,
            f"{self._base_url}/{path.lstrip('/')}",
            headers=self._headers(),
            params=params,
            timeout=self._timeout,
        )

    # ---- endpoints ----------------------------------------------------------

    def get_accounts(self) -> list[MoneytreeAccount]:
        payload = self._request("GET", "accounts.json") or {}
        return [MoneytreeAccount.model_validate(a) for a in payload.get("accounts") or []]

    def get_transactions(
        self,
        account_id: int,
        *,
        since: str = DEFAULT_SINCE,
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
    ) -> list[MoneytreeTransaction]:
        """Return one page of an account's transactions since ``since``."""

        payload = (
            self._request(
                "GET",
                f"accounts/{account_id}/transactions.json",
                params={"since": since, "page": page, "per_page": per_page},
            )
            or {}
        )
        return [
            MoneytreeTransaction.model_validate(t) for t in payload.get("transactions") or []
        ]

    def iter_transactions(
        self,
        account_id: int,
        *,
        since: str = DEFAULT_SINCE,
        per_page: int = DEFAULT_PER_PAGE,
    ) -> Iterator[MoneytreeTransaction]:
        """Yield all of an account's transactions, page by page, until an empty page."""

        page = 1
        while True:
            txs = self.get_transactions(account_id, since=since, page=page, per_page=per_page)
            if not txs:
                return
            _logger.debug(
                "account %d: page %d returned %d transactions", account_id, page, len(txs)
            )
            yield from txs
            page += 1

    def get_guest(self) -> MoneytreeGuest:
        """Return guest metadata including credentials (institution names, status)."""

        payload = self._request("GET", "presenter/guests.json") or {}
        guest = payload.get("guest")
        if not isinstance(guest, dict):
            raise ApiError("Moneytree guest metadata response has no 'guest' object")
        return MoneytreeGuest.model_validate(guest)

    def refresh_all_credentials(self) -> Any:
        """Ask Moneytree to re-scrape every credential. Completes asynchronously."""

        return self._request("PUT", "credentials/refresh.json")


__all__ = [
    "TOKEN_URL",
    "API_BASE_URL",
    "DEFAULT_SINCE",
    "DEFAULT_PER_PAGE",
    "MoneytreeClient",
]
