"""Resolve which ledger account corresponds to a Moneytree account.

Matching compares normalized titles (see
:func:`~pocketsmith_sync.normalizers.normalize_account_title`) and ranks
candidates into four buckets, strongest first:

1. ``DISPLAY_NAME``: title equals the composed ``"<Institution> - <Account>"``
   name, i.e. what this tool itself creates.
2. ``BASE_NAME``: title equals the account name without institution.
3. ``INSTITUTION_SUFFIX``: title ends with the base name *and* the account's
   institution title equals the Moneytree institution name.
4. ``SUFFIX``: title ends with the base name.

The first bucket holding exactly one account wins. A bucket holding several
accounts ends the search with :class:`Ambiguous`; nothing is ever guessed.
Outcomes are values; this module raises nothing.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TypeAlias
from enum import StrEnum

from .models import LedgerAccount
from .normalizers import normalize_account_title


class MatchCriterion(StrEnum):
    DISPLAY_NAME = "display name"
    BASE_NAME = "base name"
    INSTITUTION_SUFFIX = "base name suffix within institution"
    SUFFIX = "base name suffix"


@dataclass(frozen=True, slots=True)
class NotFound:
    """No candidate matched by any criterion."""


@dataclass(frozen=True, slots=True)
class Ambiguous:
    """Several candidates matched the strongest non-empty criterion."""

    criterion: MatchCriterion
    matches: tuple[LedgerAccount, ...]
    reason: str

    def __str__(self) -> str:
        return self.reason


NOT_FOUND = NotFound()

MatchResult: TypeAlias = LedgerAccount | NotFound | Ambiguous


def _ambiguity_reason(
    criterion: MatchCriterion, *, base_name: str, display_name: str, institution_name: str
) -> str:
    if criterion is MatchCriterion.DISPLAY_NAME:
        return f"multiple PocketSmith accounts match {display_name!r}"
    if criterion is MatchCriterion.BASE_NAME:
        return f"multiple PocketSmith accounts match {base_name!r}"
    if criterion is MatchCriterion.INSTITUTION_SUFFIX:
        return (
            f"multiple PocketSmith accounts match {base_name!r} "
            f"for institution {institution_name!r}"
        )
    return f"multiple PocketSmith accounts match {base_name!r}; rename to disambiguate"


def match_account(
    candidates: Iterable[LedgerAccount],
    institution_name: str,
    base_name: str,
    display_name: str,
) -> MatchResult:
    """Select the single ledger account matching a Moneytree account.

    Parameters
    ----------
    candidates:
        The user's ledger accounts.
    institution_name:
        Moneytree institution name (may be empty; disables the institution
        bucket).
    base_name:
        Account title without institution.
    display_name:
        Composed ``"<Institution> - <Account>"`` title.

    Returns
    -------
    LedgerAccount | NotFound | Ambiguous
    """

    norm_base = normalize_account_title(base_name)
    norm_display = normalize_account_title(display_name)
    norm_institution = normalize_account_title(institution_name)

    buckets: dict[MatchCriterion, list[LedgerAccount]] = {c: [] for c in MatchCriterion}

    for account in candidates:
        title = normalize_account_title(account.title)
        if title == norm_display:
            buckets[MatchCriterion.DISPLAY_NAME].append(account)
            continue
        if title == norm_base:
            buckets[MatchCriterion.BASE_NAME].append(account)
            continue
        # An empty base would make every title a suffix match.
        if not norm_base or not title.endswith(norm_base):
            continue

        buckets[MatchCriterion.SUFFIX].append(account)
        if norm_institution and (
            normalize_account_title(account.institution_title) == norm_institution
        ):
            buckets[MatchCriterion.INSTITUTION_SUFFIX].append(account)

    for criterion in (
        MatchCriterion.DISPLAY_NAME,
        MatchCriterion.BASE_NAME,
        MatchCriterion.INSTITUTION_SUFFIX,
        MatchCriterion.SUFFIX,
    ):
        matches = buckets[criterion]
        if len(matches) == 1:
            return matches[0]
        if len(matches) > 1:
            return Ambiguous(
                criterion=criterion,
                matches=tuple(matches),
                reason=_ambiguity_reason(
                    criterion,
                    base_name=base_name,
                    display_name=display_name,
                    institution_name=institution_name,
                ),
            )

    return NOT_FOUND


__all__ = [
    "MatchCriterion",
    "NotFound",
    "NOT_FOUND",
    "Ambiguous",
    "MatchResult",
    "match_account",
]
