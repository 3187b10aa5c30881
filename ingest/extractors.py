from __future__ import annotations

from decimal import Decimal, InvalidOperation
import re
from typing import Optional

_WS = re.compile(r"\s+")
_PUNCT = re.compile(r"[^\w\s]")
_LEADING_DIGIT = re.compile(r"^[0-9]")

_LABELS = r"(?:member(?:ship)?|ref(?:erence)?|id|account|acc|code|memo|note|transaction)"
_NOT_CURRENCY = r"(?!(?:KES|KSH|USD|EUR|GBP)\d)"

# Order matters: labelled references, then code shapes, then phone numbers.
MEMBER_ID_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        # "Member: AB123", "Ref No: 4821", "ID#5521"
        r"\b" + _LABELS + r"\b\.?\s*(?:no\.?|number|#)?\s*[:#]\s*([A-Z0-9][A-Z0-9\-]{2,})\b",
        # "member 4821", "account no. 77 12" -> first token, must contain a digit
        r"\b" + _LABELS + r"\b\.?(?:\s*(?:no\.?|number|#))?\s+(?=[A-Z0-9]*\d)([A-Z0-9]{3,})\b",
        r"\b" + _NOT_CURRENCY + r"([A-Z]{2,3}\d{6,})\b",
        r"\b" + _NOT_CURRENCY + r"([A-Z]{2}\d{3,})\b",
        r"\b" + _NOT_CURRENCY + r"([A-Z]{3}\d{2,})\b",
        r"(\+?254\d{9})\b",
        r"\b(0[17]\d{8})\b",
    )
)


def clean_sender_name(name: str | None) -> str:
    """Punctuation to spaces, collapse whitespace, title-case each word."""
    cleaned = _WS.sub(" ", _PUNCT.sub(" ", name or "")).strip()
    return " ".join(word[:1].upper() + word[1:].lower() for word in cleaned.split(" ") if word)


def parse_amount(raw: str | None) -> Optional[Decimal]:
    """
    Parse an amount string, dropping thousands separators.

    "1,500.00" -> 1500.00, "1 500" -> 1500, "1.500,50" -> 1500.50.
    Returns None for empty, malformed, negative or non-finite values.
    """
    if raw is None:
        return None
    value = re.sub(r"[\s _]", "", raw)
    if "," in value and "." in value and value.rfind(",") > value.rfind("."):
        value = value.replace(".", "").replace(",", ".")
    else:
        value = value.replace(",", "")
    if not value:
        return None
    try:
        amount = Decimal(value)
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount < 0:
        return None
    return amount


def split_amount_and_name(first: str, second: str) -> tuple[str, str]:
    """
    Order the two groups captured by a fallback pattern as (amount, name).

    Fallback patterns accept both "KES 500 from Mary" and "Mary sent 500",
    so a group that starts with a digit is taken to be the amount.
    """
    if _LEADING_DIGIT.match(first.strip()):
        return first, second
    return second, first


def extract_member_id(text: str) -> Optional[str]:
    for pattern in MEMBER_ID_PATTERNS:
        m = pattern.search(text)
        if m:
            return m.group(1)
    return None
