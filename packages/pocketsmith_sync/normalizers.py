"""Text normalizers for account titles, payees and composed account names.

- ``normalize_account_title``: case/spacing-insensitive comparison key used by
  the account matcher.
- ``sanitize_payee``: cleans Moneytree merchant text before it becomes the
  ledger payee (full-width → half-width, token spacing, whitespace).
- ``account_base_name`` / ``build_display_account_name``: compose the ledger
  title for a Moneytree account (``"<Institution> - <Account> (<number>)"``).

All functions are pure and total.
"""

from __future__ import annotations

import re
import unicodedata

from .models import MoneytreeAccount

# ---------------------------------------------------------------------------
# Account titles
# ---------------------------------------------------------------------------


def normalize_account_title(title: str) -> str:
    """Lower-case ``title`` and collapse whitespace runs to single spaces."""

    return " ".join(title.split()).lower()


def build_display_account_name(institution_name: str, base_name: str) -> str:
    """Compose the ledger title ``"<institution> - <base>"``.

    Falls back to ``base_name`` alone when the institution name is blank.
    """

    if not institution_name.strip():
        return base_name
    return f"{institution_name} - {base_name}"


def account_base_name(account: MoneytreeAccount, *, home_currency: str = "JPY") -> str:
    """Return the account title without institution, e.g. ``"普通 (1234567)"``.

    Foreign-currency accounts get the currency spelled out unless the account
    name already mentions it, so that a JPY and a USD sub-account of the same
    bank do not collide.
    """

    name = account.institution_account_name.strip()
    number = account.institution_account_number.strip()
    base = f"{name} ({number})"

    currency = account.currency.strip().upper()
    if currency and currency != home_currency.upper():
        if currency not in base or currency[:2] not in base:
            base = f"{name} ({currency}) ({number})"
    return base


# ---------------------------------------------------------------------------
# Payees
# ---------------------------------------------------------------------------


def _build_full_width_table() -> dict[int, str]:
    # Only letters, digits and the ideographic space. Full-width punctuation
    # such as "－" is part of Japanese merchant names and stays as-is.
    table: dict[int, str] = {0x3000: " "}
    for start, end in ((0xFF10, 0xFF19), (0xFF21, 0xFF3A), (0xFF41, 0xFF5A)):
        for cp in range(start, end + 1):
            table[cp] = unicodedata.normalize("NFKC", chr(cp))
    return table


_FULL_WIDTH_TABLE = _build_full_width_table()

# Payment-network markers Moneytree appends to card merchant names.
PAYMENT_NETWORK_TOKENS: tuple[str, ...] = ("/iD",)

_TOKEN_RE = re.compile(
    r"(?<=\S)(" + "|".join(re.escape(t) for t in PAYMENT_NETWORK_TOKENS) + r")"
)


def to_half_width(text: str) -> str:
    """Convert full-width ASCII letters/digits (and U+3000) to half-width."""

    return text.translate(_FULL_WIDTH_TABLE)


def sanitize_payee(text: str) -> str:
    """Normalize merchant text for use as a ledger payee.

    >>> sanitize_payee("ＭｙＴｅｓｔ")
    'MyTest'
    >>> sanitize_payee("ABC/iD")
    'ABC /iD'
    >>> sanitize_payee("a   b")
    'a b'
    """

    converted = to_half_width(text)
    converted = _TOKEN_RE.sub(r" \1", converted)
    return " ".join(converted.split())


__all__ = [
    "normalize_account_title",
    "build_display_account_name",
    "account_base_name",
    "PAYMENT_NETWORK_TOKENS",
    "to_half_width",
    "sanitize_payee",
]
