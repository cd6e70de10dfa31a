"""Regex-based extraction of merchant and amount from bank SMS text.

This is the always-available tier: pure functions, no I/O, never raising.
:func:`extract` returns ``None`` when no positive amount can be found.

Merchant resolution order (first hit wins):

1. Phrase patterns ("paid to", "spent at", ...) followed by a name run that
   stops at a boundary keyword ("on", "via", "ref", ...) or the end of text.
2. UPI identifiers ("VPA", "UPI Ref", ...); ``name.surname@bank`` becomes
   ``name surname``.
3. A fixed, ordered brand table matched as substrings of the lower-cased text.
4. The sender id with digits/hyphens removed, or a generic label when that is
   too short or looks like a bank code.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

from .models import ExtractedCandidate

GENERIC_TITLE = "Bank Transaction"

_AMOUNT_RE = re.compile(r"(?:Rs\.?|INR|₹)\s?([\d,]+(?:\.\d{1,2})?)", re.IGNORECASE)

_PHRASE_RE = re.compile(
    r"(?:paid to|spent at|sent to|transfer to|purchase at|payment to)\s+"
    r"([A-Za-z0-9\s&*-]+?)"
    r"(?:\s+(?:on|using|via|ref|txn|from|ending)\b|$)",
    re.IGNORECASE,
)

_UPI_RE = re.compile(r"(?:VPA|UPI Ref|UPI-Ref|to VPA)\s+([A-Za-z0-9@.-]+)", re.IGNORECASE)

# Order matters: overlapping hits resolve to the earliest entry.
KEYWORD_TITLES: tuple[tuple[str, str], ...] = (
    ("swiggy", "Swiggy"),
    ("zomato", "Zomato"),
    ("uber", "Uber"),
    ("ola", "Ola"),
    ("rapido", "Rapido"),
    ("amazon", "Amazon"),
    ("flipkart", "Flipkart"),
    ("netflix", "Netflix"),
    ("spotify", "Spotify"),
    ("jio", "Jio Recharge"),
    ("airtel", "Airtel Recharge"),
    ("vi", "Vi Recharge"),
    ("bsnl", "BSNL Recharge"),
    ("metro", "Metro"),
    ("starbucks", "Starbucks"),
    ("mcdonalds", "McDonalds"),
    ("dominos", "Dominos"),
    ("pizza hut", "Pizza Hut"),
    ("burger king", "Burger King"),
    ("kfc", "KFC"),
    ("subway", "Subway"),
)

_WORD_START_RE = re.compile(r"\b\w")


def parse_amount(text: str) -> Decimal | None:
    """Return the first currency amount in ``text`` with separators removed."""

    m = _AMOUNT_RE.search(text)
    if not m:
        return None
    digits = m.group(1).replace(",", "")
    try:
        return Decimal(digits)
    except InvalidOperation:
        return None


def _from_phrase(text: str) -> str | None:
    m = _PHRASE_RE.search(text)
    if not m:
        return None
    name = " ".join(m.group(1).split())
    return name or None


def _from_upi(text: str) -> str | None:
    m = _UPI_RE.search(text)
    if not m:
        return None
    handle = m.group(1).split("@", 1)[0]
    name = " ".join(re.sub(r"[._]", " ", handle).split())
    return name or None


def _from_keywords(text: str) -> str | None:
    lowered = text.lower()
    for key, title in KEYWORD_TITLES:
        if key in lowered:
            return title
    return None


def _from_sender(sender: str) -> str:
    cleaned = re.sub(r"[0-9-]", "", sender or "").strip()
    if len(cleaned) < 3 or "BANK" in cleaned:
        return GENERIC_TITLE
    return cleaned


def extract_merchant(body: str, sender: str) -> str:
    """Resolve a display merchant name; always returns a non-empty string."""

    title = _from_phrase(body) or _from_upi(body) or _from_keywords(body) or _from_sender(sender)
    return display_case(title)


def display_case(title: str) -> str:
    """Capitalize the first letter of every word, leaving the rest untouched."""

    return _WORD_START_RE.sub(lambda m: m.group(0).upper(), title)


def extract(body: str, sender: str) -> ExtractedCandidate | None:
    """Extract ``{merchant, amount}`` from an SMS body.

    ``type`` and ``category`` are left unset for the caller to decide. Returns
    ``None`` unless a positive amount is present.
    """

    if not body:
        return None
    amount = parse_amount(body)
    if amount is None or amount <= 0:
        return None
    return ExtractedCandidate(merchant=extract_merchant(body, sender), amount=amount)


__all__ = [
    "GENERIC_TITLE",
    "KEYWORD_TITLES",
    "parse_amount",
    "extract_merchant",
    "display_case",
    "extract",
]
