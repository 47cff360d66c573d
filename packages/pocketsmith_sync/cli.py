"""CLI for the ``pocketsmith_sync`` package.

Exposes a callable command handler (``cmd_sync``) and a Typer-based console
interface. Environment variables (``MONEYTREE_USERNAME``,
``MONEYTREE_PASSWORD``, ``MONEYTREE_API_KEY``, ``POCKETSMITH_TOKEN`` and the
``POCKETSMITH_SYNC_*`` tunables) are loaded from a local ``.env`` using
``python-dotenv`` before delegating to :func:`pocketsmith_sync.workflows.run_sync`.

Intended to be run from a scheduler::

    pocketsmith-sync sync
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .config import load_config
from .errors import ConfigError, InsertAbortedError, SyncError
from .logging_setup import configure_logging


def cmd_sync(**options: Any) -> int:
    """Run one sync with ``options`` layered over the environment.

    Errors are written to stderr and the function returns a non-zero exit
    status. On success, returns ``0``.

    Parameters
    ----------
    options:
        Keyword overrides for :class:`~pocketsmith_sync.config.SyncConfig`
        fields; ``None`` values fall back to the environment.
    """

    # Local import keeps ``--help`` fast
    from .workflows.sync_flow import AccountStatus, run_sync

    try:
        config = load_config(**options)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        summary = run_sync(config)
    except InsertAbortedError as e:
        print(f"Error: sync aborted: {e}", file=sys.stderr)
        return 1
    except SyncError as e:
        print(f"Error: sync failed: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        return 130

    ambiguous = summary.count(AccountStatus.AMBIGUOUS)
    print(
        f"Synced {summary.count(AccountStatus.SYNCED)} account(s), "
        f"skipped {summary.count(AccountStatus.SKIPPED)}, ambiguous {ambiguous}."
    )
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Sync Moneytree accounts and transactions into PocketSmith. "
        "Loads credentials from a local .env before running."
    ),
)

# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults).
USERNAME_OPTION: OptionInfo = typer.Option(
    None, "--username", help="Moneytree username (falls back to MONEYTREE_USERNAME)."
)
PASSWORD_OPTION: OptionInfo = typer.Option(
    None, "--password", help="Moneytree password (falls back to MONEYTREE_PASSWORD)."
)
APIKEY_OPTION: OptionInfo = typer.Option(
    None, "--apikey", help="Moneytree API key (falls back to MONEYTREE_API_KEY)."
)
TOKEN_OPTION: OptionInfo = typer.Option(
    None,
    "--pocketsmith-token",
    help="PocketSmith developer key (falls back to POCKETSMITH_TOKEN).",
)


@app.command("sync")
def sync_cmd(
    *,
    username: str | None = USERNAME_OPTION,
    password: str | None = PASSWORD_OPTION,
    apikey: str | None = APIKEY_OPTION,
    pocketsmith_token: str | None = TOKEN_OPTION,
    since: str | None = typer.Option(
        None, help="Oldest Moneytree transaction date to fetch (YYYY-MM-DD)."
    ),
    refresh: bool = typer.Option(
        True, help="Trigger a Moneytree refresh and wait for it before syncing."
    ),
    refresh_timeout: float | None = typer.Option(
        None, help="Seconds to wait for the Moneytree refresh (default 300)."
    ),
    poll_interval: float | None = typer.Option(
        None, help="Seconds between refresh status checks (default 15)."
    ),
    stored_value_type: str | None = typer.Option(
        None, help="PocketSmith type for e-money accounts: bank or other_asset."
    ),
    insert_failure: str | None = typer.Option(
        None, help="On a failed transaction insert: skip (default) or abort."
    ),
) -> None:
    """Sync all open Moneytree accounts into PocketSmith."""

    code = cmd_sync(
        moneytree_username=username,
        moneytree_password=password,
        moneytree_api_key=apikey,
        pocketsmith_token=pocketsmith_token,
        since=since,
        refresh=refresh,
        refresh_timeout=refresh_timeout,
        poll_interval=poll_interval,
        stored_value_type=stored_value_type,
        insert_failure=insert_failure,
    )
    if code:
        raise typer.Exit(code)


@app.callback()
def _root(
    log_level: str | None = typer.Option(
        None, help="Log level (falls back to POCKETSMITH_SYNC_LOG_LEVEL, default INFO)."
    ),
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding
    already-set environment variables) and configures logging once.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)


if __name__ == "__main__":  # pragma: no cover
    # Running as a module: `python -m pocketsmith_sync.cli`
    app()
