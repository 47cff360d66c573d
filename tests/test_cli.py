from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from typer.testing import CliRunner

import pocketsmith_sync.workflows.sync_flow as sync_flow_mod
from pocketsmith_sync.cli import app
from pocketsmith_sync.errors import ApiError, InsertAbortedError
from pocketsmith_sync.models import LedgerAccountType
from pocketsmith_sync.reconcile import InsertFailurePolicy
from pocketsmith_sync.workflows import AccountResult, AccountStatus, SyncSummary

CREDENTIALS = {
    "MONEYTREE_USERNAME": "guest@example.com",
    "MONEYTREE_PASSWORD": "secret",
    "MONEYTREE_API_KEY": "key",
    "POCKETSMITH_TOKEN": "token",
}

runner = CliRunner()


def _capture_run_sync(monkeypatch: pytest.MonkeyPatch, result: Any = None) -> list:
    seen: list = []

    def fake_run_sync(config):
        seen.append(config)
        if isinstance(result, BaseException):
            raise result
        return result or SyncSummary(
            accounts=[AccountResult(1, "Bank - 普通 (1)", AccountStatus.SYNCED)]
        )

    monkeypatch.setattr(sync_flow_mod, "run_sync", fake_run_sync)
    return seen


def _set_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    for key, value in CREDENTIALS.items():
        monkeypatch.setenv(key, value)


def test_sync_uses_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    _set_credentials(monkeypatch)
    seen = _capture_run_sync(monkeypatch)

    result = runner.invoke(app, ["sync"])

    assert result.exit_code == 0, result.output
    assert "Synced 1 account(s), skipped 0, ambiguous 0." in result.output
    (config,) = seen
    assert config.moneytree_username == "guest@example.com"
    assert config.refresh is True


def test_options_override_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    _set_credentials(monkeypatch)
    seen = _capture_run_sync(monkeypatch)

    result = runner.invoke(
        app,
        [
            "sync",
            "--username",
            "cli@example.com",
            "--no-refresh",
            "--since",
            "2024-01-01",
            "--stored-value-type",
            "other_asset",
            "--insert-failure",
            "abort",
            "--refresh-timeout",
            "60",
        ],
    )

    assert result.exit_code == 0, result.output
    (config,) = seen
    assert config.moneytree_username == "cli@example.com"
    assert config.moneytree_password == "secret"
    assert config.refresh is False
    assert config.since == "2024-01-01"
    assert config.stored_value_type is LedgerAccountType.OTHER_ASSET
    assert config.insert_failure is InsertFailurePolicy.ABORT
    assert config.refresh_timeout == 60.0


def test_credentials_from_dotenv(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    # Register the names so values loaded from .env are removed after the test.
    for key in CREDENTIALS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    (tmp_path / ".env").write_text(
        "".join(f"{k}={v}\n" for k, v in CREDENTIALS.items()), encoding="utf-8"
    )
    seen = _capture_run_sync(monkeypatch)

    result = runner.invoke(app, ["sync"])

    assert result.exit_code == 0, result.output
    assert seen[0].pocketsmith_token == "token"


def test_missing_credentials_exit_with_error(monkeypatch: pytest.MonkeyPatch) -> None:
    seen = _capture_run_sync(monkeypatch)

    result = runner.invoke(app, ["sync"])

    assert result.exit_code == 1
    assert "Error: Moneytree username is required" in result.output
    assert seen == []


def test_invalid_option_value_exits_with_error(monkeypatch: pytest.MonkeyPatch) -> None:
    _set_credentials(monkeypatch)
    _capture_run_sync(monkeypatch)

    result = runner.invoke(app, ["sync", "--insert-failure", "retry"])

    assert result.exit_code == 1
    assert "insert_failure must be one of" in result.output


def test_sync_failure_exits_with_error(monkeypatch: pytest.MonkeyPatch) -> None:
    _set_credentials(monkeypatch)
    _capture_run_sync(monkeypatch, ApiError("PocketSmith unreachable"))

    result = runner.invoke(app, ["sync"])

    assert result.exit_code == 1
    assert "Error: sync failed: PocketSmith unreachable" in result.output


def test_aborted_insert_exits_with_error(monkeypatch: pytest.MonkeyPatch) -> None:
    _set_credentials(monkeypatch)
    _capture_run_sync(monkeypatch, InsertAbortedError("failed to add transaction"))

    result = runner.invoke(app, ["sync"])

    assert result.exit_code == 1
    assert "Error: sync aborted" in result.output
