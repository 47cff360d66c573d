import datetime as dt
import urllib.error
import urllib.request
from decimal import Decimal

import pytest

from pocketsmith_sync.errors import ApiError, AuthenticationError, NotFoundError
from pocketsmith_sync.models import LedgerAccountType, TransactionDraft
from pocketsmith_sync.moneytree_client import MoneytreeClient
from pocketsmith_sync.pocketsmith_client import PocketsmithClient
from pocketsmith_sync.transport import build_url, request_json
from tests.helpers.http_stub import UrlopenStub, http_error


def _install(monkeypatch: pytest.MonkeyPatch, respond) -> UrlopenStub:
    stub = UrlopenStub(respond)
    monkeypatch.setattr(urllib.request, "urlopen", stub)
    return stub


# ---- transport ----------------------------------------------------------------


def test_build_url_drops_none_params() -> None:
    assert build_url("https://x/y", {"a": 1, "b": None}) == "https://x/y?a=1"
    assert build_url("https://x/y?z=1", {"a": "b c"}) == "https://x/y?z=1&a=b+c"
    assert build_url("https://x/y", {"b": None}) == "https://x/y"
    assert build_url("https://x/y") == "https://x/y"


def test_request_json_sends_json_body(monkeypatch: pytest.MonkeyPatch) -> None:
    stub = _install(monkeypatch, lambda req: {"ok": True})

    result = request_json("post", "https://x/y", body={"a": 1}, timeout=5)

    assert result == {"ok": True}
    (req,) = stub.requests
    assert req.method == "POST"
    assert req.body == {"a": 1}
    assert req.headers["content-type"].startswith("application/json")
    assert req.timeout == 5


def test_request_json_maps_404_to_not_found(monkeypatch: pytest.MonkeyPatch) -> None:
    _install(monkeypatch, lambda req: http_error(req.url, 404, '{"error":"missing"}'))

    with pytest.raises(NotFoundError) as excinfo:
        request_json("GET", "https://x/y")
    assert excinfo.value.status == 404
    assert "missing" in excinfo.value.body


def test_request_json_maps_error_status(monkeypatch: pytest.MonkeyPatch) -> None:
    _install(monkeypatch, lambda req: http_error(req.url, 500, "oops"))

    with pytest.raises(ApiError) as excinfo:
        request_json("GET", "https://x/y")
    assert not isinstance(excinfo.value, NotFoundError)
    assert excinfo.value.status == 500
    assert excinfo.value.body == "oops"


def test_request_json_maps_connection_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    _install(monkeypatch, lambda req: urllib.error.URLError("connection refused"))

    with pytest.raises(ApiError, match="connection refused"):
        request_json("GET", "https://x/y")


def test_request_json_empty_and_invalid_bodies(monkeypatch: pytest.MonkeyPatch) -> None:
    bodies = iter([b"", b"not json"])
    _install(monkeypatch, lambda req: next(bodies))

    assert request_json("PUT", "https://x/y") is None
    with pytest.raises(ApiError, match="invalid JSON"):
        request_json("GET", "https://x/y")


# ---- PocketSmith ------------------------------------------------------------------


def _tx_row(id: int, memo: str = "", day: str = "2024-03-01") -> dict:
    return {"id": id, "payee": "p", "amount": -1.0, "date": day, "memo": memo, "note": None}


def test_pocketsmith_current_user_sends_developer_key(monkeypatch: pytest.MonkeyPatch) -> None:
    stub = _install(monkeypatch, lambda req: {"id": 7, "login": "me"})

    user = PocketsmithClient("tok").get_current_user()

    assert user.id == 7
    (req,) = stub.requests
    assert req.url == "https://api.pocketsmith.com/v2/me"
    assert req.headers["x-developer-key"] == "tok"


def test_pocketsmith_search_transactions_paginates(monkeypatch: pytest.MonkeyPatch) -> None:
    pages = {1: [_tx_row(1), _tx_row(2)], 2: [_tx_row(3), _tx_row(4)], 3: [_tx_row(5)]}
    stub = _install(monkeypatch, lambda req: pages[int(req.query["page"])])
    client = PocketsmithClient("tok", page_size=2)

    rows = client.search_transactions(9, dt.date(2024, 3, 1), dt.date(2024, 3, 1), "123")

    assert [r.id for r in rows] == [1, 2, 3, 4, 5]
    assert [r.query["page"] for r in stub.requests] == ["1", "2", "3"]
    first = stub.requests[0]
    assert first.path == "/v2/transaction_accounts/9/transactions"
    assert first.query["start_date"] == "2024-03-01"
    assert first.query["end_date"] == "2024-03-01"
    assert first.query["search"] == "123"


def test_pocketsmith_search_without_term_omits_param(monkeypatch: pytest.MonkeyPatch) -> None:
    stub = _install(monkeypatch, lambda req: [])

    PocketsmithClient("tok").search_transactions(9, dt.date(2024, 3, 1), dt.date(2024, 3, 2))

    assert "search" not in stub.requests[0].query


def test_pocketsmith_search_by_memo_filters_rows(monkeypatch: pytest.MonkeyPatch) -> None:
    rows = [_tx_row(1, "a mtid=5"), _tx_row(2, ""), _tx_row(3, "b mtid=6")]
    _install(monkeypatch, lambda req: rows)

    found = PocketsmithClient("tok").search_transactions_by_memo(9, dt.date(2024, 3, 1), "mtid=5")

    assert [t.id for t in found] == [1]


def test_pocketsmith_find_account_by_name(monkeypatch: pytest.MonkeyPatch) -> None:
    accounts = [{"id": 1, "title": "A"}, {"id": 2, "title": "B"}]
    _install(monkeypatch, lambda req: accounts)
    client = PocketsmithClient("tok")

    assert client.find_account_by_name(1, "B").id == 2
    with pytest.raises(NotFoundError):
        client.find_account_by_name(1, "C")


def test_pocketsmith_create_account_body(monkeypatch: pytest.MonkeyPatch) -> None:
    stub = _install(
        monkeypatch, lambda req: {"id": 11, "title": req.body["title"], "type": req.body["type"]}
    )

    account = PocketsmithClient("tok").create_account(
        1, 42, "Bank - 普通 (1)", "jpy", LedgerAccountType.CREDITS
    )

    assert account.id == 11
    (req,) = stub.requests
    assert req.method == "POST"
    assert req.path == "/v2/users/1/accounts"
    assert req.body == {
        "institution_id": 42,
        "title": "Bank - 普通 (1)",
        "currency_code": "jpy",
        "type": "credits",
    }


def test_pocketsmith_balance_update_body(monkeypatch: pytest.MonkeyPatch) -> None:
    stub = _install(monkeypatch, lambda req: {"id": 5, "current_balance": 1234.5})

    pta = PocketsmithClient("tok").update_transaction_account_balance(
        5, 42, Decimal("1234.5"), dt.date(2024, 3, 2)
    )

    assert pta.current_balance == Decimal("1234.5")
    (req,) = stub.requests
    assert req.method == "PUT"
    assert req.path == "/v2/transaction_accounts/5"
    assert req.body == {
        "institution_id": 42,
        "starting_balance": 1234.5,
        "starting_balance_date": "2024-03-02",
    }


def test_pocketsmith_add_and_update_transaction(monkeypatch: pytest.MonkeyPatch) -> None:
    stub = _install(monkeypatch, lambda req: dict(req.body, id=99))
    draft = TransactionDraft(
        payee="ABC",
        amount=Decimal("-500"),
        date=dt.date(2024, 3, 1),
        memo="ＡＢＣ mtid=5",
        cheque_number="5",
    )
    client = PocketsmithClient("tok")

    added = client.add_transaction(9, draft)
    client.update_transaction(99, draft)

    assert added.memo == "ＡＢＣ mtid=5"
    add_req, update_req = stub.requests
    assert (add_req.method, add_req.path) == ("POST", "/v2/transaction_accounts/9/transactions")
    assert (update_req.method, update_req.path) == ("PUT", "/v2/transactions/99")
    assert add_req.body["amount"] == -500.0
    assert add_req.body["cheque_number"] == "5"
    assert add_req.body["is_transfer"] is False


# ---- Moneytree ---------------------------------------------------------------------


def test_moneytree_authenticate_then_bearer(monkeypatch: pytest.MonkeyPatch) -> None:
    def respond(req):
        if req.url.endswith("/oauth/token"):
            return {"access_token": "at", "refresh_token": "rt", "token_type": "Bearer"}
        account = {
            "id": 1,
            "credential_id": 2,
            "currency": "JPY",
            "account_type": "bank",
            "institution_account_name": None,
        }
        return {"accounts": [account]}

    stub = _install(monkeypatch, respond)
    client = MoneytreeClient("apikey")

    token = client.authenticate("guest@example.com", "pw")
    accounts = client.get_accounts()

    assert token.access_token == "at"
    assert client.is_authenticated
    auth_req, accounts_req = stub.requests
    assert auth_req.body == {
        "client_id": "apikey",
        "grant_type": "password",
        "guest_login": "guest@example.com",
        "password": "pw",
    }
    assert accounts_req.headers["authorization"] == "Bearer at"
    assert accounts_req.headers["x-api-key"] == "apikey"
    assert accounts[0].institution_account_name == ""


def test_moneytree_login_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    _install(monkeypatch, lambda req: http_error(req.url, 401, "bad credentials"))

    with pytest.raises(AuthenticationError) as excinfo:
        MoneytreeClient("apikey").authenticate("u", "p")
    assert excinfo.value.status == 401


def test_moneytree_login_without_token(monkeypatch: pytest.MonkeyPatch) -> None:
    _install(monkeypatch, lambda req: {"error": "nope"})

    with pytest.raises(AuthenticationError, match="no access token"):
        MoneytreeClient("apikey").authenticate("u", "p")


def test_moneytree_requires_authentication(monkeypatch: pytest.MonkeyPatch) -> None:
    stub = _install(monkeypatch, lambda req: {})

    with pytest.raises(AuthenticationError):
        MoneytreeClient("apikey").get_accounts()
    assert stub.requests == []


def test_moneytree_iter_transactions_until_empty_page(monkeypatch: pytest.MonkeyPatch) -> None:
    def tx(i: int) -> dict:
        return {
            "id": i,
            "raw_transaction_id": 1000 + i,
            "amount": -100,
            "date": "2024-03-01T00:00:00+09:00",
            "description_pretty": "x",
            "description_guest": None,
        }

    pages = {1: [tx(1), tx(2)], 2: [tx(3)], 3: []}
    stub = _install(
        monkeypatch, lambda req: {"transactions": pages[int(req.query["page"])]}
    )
    client = MoneytreeClient("apikey", access_token="at")

    txs = list(client.iter_transactions(77, per_page=2))

    assert [t.id for t in txs] == [1, 2, 3]
    assert len(stub.requests) == 3
    first = stub.requests[0]
    assert first.path == "/v8/api/accounts/77/transactions.json"
    assert first.query == {"since": "2010-01-01", "page": "1", "per_page": "2"}


def test_moneytree_guest_and_refresh(monkeypatch: pytest.MonkeyPatch) -> None:
    guest = {
        "guest": {
            "id": 3,
            "email": "guest@example.com",
            "credentials": [
                {
                    "id": 2,
                    "institution_name": "Rakuten Bank",
                    "status": "success",
                    "last_success": "2024-03-01T00:00:00+09:00",
                },
            ],
        }
    }
    stub = _install(monkeypatch, lambda req: guest if req.method == "GET" else b"")
    client = MoneytreeClient("apikey", access_token="at")

    result = client.get_guest()
    client.refresh_all_credentials()

    assert result.find_credential(2).institution_name == "Rakuten Bank"
    assert result.find_credential(9) is None
    assert stub.requests[1].method == "PUT"
    assert stub.requests[1].path == "/v8/api/credentials/refresh.json"


def test_moneytree_guest_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    _install(monkeypatch, lambda req: {"unexpected": True})

    with pytest.raises(ApiError, match="no 'guest' object"):
        MoneytreeClient("apikey", access_token="at").get_guest()
