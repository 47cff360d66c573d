"""Bounded polling for Moneytree's asynchronous credential refresh.

Moneytree offers no completion signal for ``credentials/refresh``. Instead of
sleeping for a fixed five minutes, :func:`refresh_and_wait` triggers the
refresh and polls the guest metadata until every credential has settled, the
timeout elapses, or the caller cancels. Clock and sleep are injectable so the
loop can be driven deterministically in tests.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from enum import StrEnum
from typing import Protocol

from .logging_setup import get_logger
from .models import MoneytreeCredential, MoneytreeGuest

_logger = get_logger("pocketsmith_sync.polling")

DEFAULT_REFRESH_TIMEOUT: float = 300.0
DEFAULT_POLL_INTERVAL: float = 15.0

# Credential states in which Moneytree is still scraping the institution.
_REFRESHING_STATUSES: frozenset[str] = frozenset({"running", "queued", "requested"})


class PollResult(StrEnum):
    READY = "ready"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class RefreshableAggregator(Protocol):
    def get_guest(self) -> MoneytreeGuest: ...

    def refresh_all_credentials(self) -> object: ...


def poll_until(
    predicate: Callable[[], bool],
    *,
    timeout: float,
    interval: float,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], object] | None = None,
    cancel: threading.Event | None = None,
    on_progress: Callable[[float, float], None] | None = None,
) -> PollResult:
    """Call ``predicate`` every ``interval`` seconds until it returns ``True``.

    Parameters
    ----------
    predicate:
        Readiness check. Exceptions propagate to the caller.
    timeout:
        Upper bound in seconds, measured with ``clock``.
    interval:
        Delay between checks (the last delay is shortened to fit the bound).
    clock / sleep:
        Time source and delay function. ``sleep`` defaults to
        ``cancel.wait`` when ``cancel`` is given (so cancellation interrupts
        the delay), else :func:`time.sleep`.
    cancel:
        Optional event; once set, polling stops with ``CANCELLED``.
    on_progress:
        Receives ``(elapsed, timeout)`` before each delay.
    """

    if sleep is None:
        sleep = cancel.wait if cancel is not None else time.sleep

    started = clock()
    while True:
        if cancel is not None and cancel.is_set():
            return PollResult.CANCELLED
        if predicate():
            return PollResult.READY

        elapsed = clock() - started
        if elapsed >= timeout:
            return PollResult.TIMED_OUT
        if on_progress is not None:
            on_progress(elapsed, timeout)
        sleep(max(0.0, min(interval, timeout - elapsed)))


def _credential_settled(
    credential: MoneytreeCredential, baseline: MoneytreeCredential | None
) -> bool:
    status = credential.status.strip().lower()
    if status in _REFRESHING_STATUSES:
        return False
    if baseline is None or credential.last_success != baseline.last_success:
        return True
    # Unchanged "success" means the refresh has not been picked up yet; any
    # other state (errors, suspended) will not produce new data this run.
    return status != "success"


def refresh_settled(current: MoneytreeGuest, baseline: MoneytreeGuest) -> bool:
    """True when every credential in ``current`` finished refreshing since ``baseline``."""

    return all(
        _credential_settled(c, baseline.find_credential(c.id)) for c in current.credentials
    )


def _log_progress(elapsed: float, timeout: float) -> None:
    _logger.info(
        "Waiting for Moneytree refresh to finish (%.0fs elapsed, giving up after %.0fs)...",
        elapsed,
        timeout,
    )


def refresh_and_wait(
    aggregator: RefreshableAggregator,
    *,
    baseline: MoneytreeGuest | None = None,
    timeout: float = DEFAULT_REFRESH_TIMEOUT,
    interval: float = DEFAULT_POLL_INTERVAL,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], object] | None = None,
    cancel: threading.Event | None = None,
) -> PollResult:
    """Trigger a refresh of all credentials and wait for it to settle.

    ``baseline`` is the guest metadata observed before the refresh; it is
    fetched when omitted. Failures to trigger the refresh or read the guest
    metadata propagate.
    """

    if baseline is None:
        baseline = aggregator.get_guest()

    aggregator.refresh_all_credentials()
    _logger.info("Refreshing Moneytree, waiting up to %.0fs for transactions to update...", timeout)

    result = poll_until(
        lambda: refresh_settled(aggregator.get_guest(), baseline),
        timeout=timeout,
        interval=interval,
        clock=clock,
        sleep=sleep,
        cancel=cancel,
        on_progress=_log_progress,
    )
    if result is PollResult.TIMED_OUT:
        _logger.warning("Moneytree refresh did not settle within %.0fs; syncing anyway", timeout)
    elif result is PollResult.CANCELLED:
        _logger.warning("Waiting for the Moneytree refresh was cancelled")
    else:
        _logger.info("Moneytree refresh finished")
    return result


__all__ = [
    "DEFAULT_REFRESH_TIMEOUT",
    "DEFAULT_POLL_INTERVAL",
    "PollResult",
    "RefreshableAggregator",
    "poll_until",
    "refresh_settled",
    "refresh_and_wait",
]
