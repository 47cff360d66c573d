"""Exception taxonomy for ``pocketsmith_sync``.

Lookup misses are the only distinguished, non-fatal error (``NotFoundError``).
Matching and reconciliation outcomes are plain values and never appear here.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for all sync failures."""


class ConfigError(SyncError, ValueError):
    """Raised when the run configuration is missing or invalid."""


class ApiError(SyncError):
    """Raised when a remote service call fails or returns an error status."""

    def __init__(self, message: str, *, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class NotFoundError(ApiError):
    """Raised when a lookup finds nothing. Drives the find-or-create branches."""


class AuthenticationError(ApiError):
    """Raised when the aggregator rejects the login or returns no token."""


class InsertAbortedError(SyncError):
    """Raised when inserting a transaction fails under the ``abort`` policy."""


__all__ = [
    "SyncError",
    "ConfigError",
    "ApiError",
    "NotFoundError",
    "AuthenticationError",
    "InsertAbortedError",
]
