"""Pytest configuration for test isolation.

The sync reads credentials and tunables from ``MONEYTREE_*`` and
``POCKETSMITH_*`` environment variables, and the CLI loads a ``.env`` from the
current working directory. A developer's real credentials must never leak into
a test run, so an autouse fixture strips those variables and moves the working
directory into the test's temporary directory.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

_ENV_PREFIXES = ("MONEYTREE_", "POCKETSMITH_")


@pytest.fixture(autouse=True)
def _isolate_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop sync-related env vars and run each test from an empty directory."""

    for name in list(os.environ):
        if name.startswith(_ENV_PREFIXES):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
