from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Optional

from ingest.extractors import clean_sender_name, parse_amount, split_amount_and_name
from ingest.types import PatternMatch, Platform

_FLAGS = re.IGNORECASE

# building blocks
_AMOUNT = r"(?P<amount>\d[\d,]*(?:\.\d+)?)"
_NAME = r"(?P<name>[^\W\d_](?:[^\W\d_]|['’ \-])*?)"
# where a sender name stops: a connector word, punctuation, a number or the end
_END = (
    r"(?=\s+(?:on|via|at|ref|reference|member|memo|note|id|account|acc|code|for|with|using"
    r"|tel|phone|transaction|new|balance)\b|\s*[.,;:()!\n]|\s*\d|\s*$)"
)
_KES = r"(?:KES|KSH)\.?\s?"
_CUR = r"(?:KES|KSH|USD|EUR|GBP|\$|£|€)\.?\s?"
_CUR_OPT = r"(?:" + _CUR + r")?"
_USD_OPT = r"(?:USD\s?|\$)?"

# generic M-Pesa wording must not steal messages that name another wallet
_NOT_OTHER_WALLET = r"^(?!.*\b(?:airtel|whatsapp\s*pay)\b).*?"

# fallback battery: two positional groups, either order
_F_AMOUNT = r"(\d[\d,]*(?:\.\d+)?)"
_F_NAME = r"([^\W\d_](?:[^\W\d_]|['’ \-])*?)"


def _p(*parts: str) -> re.Pattern[str]:
    return re.compile("".join(parts), _FLAGS)


def _mentions(word: str) -> str:
    return r"^(?=.*\b" + word + r"\b).*?\b"


@dataclass(frozen=True)
class PlatformPatterns:
    platform: str
    patterns: tuple[re.Pattern[str], ...]


PLATFORM_PATTERNS: tuple[PlatformPatterns, ...] = (
    PlatformPatterns(
        Platform.MPESA,
        (
            # "QGH7XK2L9P Confirmed. You have received Ksh2,500.00 from JANE WANJIRU 0722..."
            _p(_NOT_OTHER_WALLET, r"\b[A-Z0-9]{6,12}\s+confirmed\.?\s*(?:you\s+have\s+)?received\s+",
               _KES, _AMOUNT, r"\s+from\s+", _NAME, _END),
            _p(r"\bM-?PESA\b.*?", _KES, _AMOUNT, r".*?\b(?:from|by)\s+", _NAME, _END),
            _p(_NOT_OTHER_WALLET, r"\b(?:received|confirmed|got)\s+", _KES, _AMOUNT, r"\s+from\s+", _NAME, _END),
            _p(_NOT_OTHER_WALLET, _KES, _AMOUNT, r"\s+(?:received|confirmed)\s+from\s+", _NAME, _END),
        ),
    ),
    PlatformPatterns(
        Platform.AIRTEL,
        (
            _p(r"\bAirtel\s*Money\b.*?", _KES, _AMOUNT, r".*?\b(?:from|by)\s+", _NAME, _END),
            _p(r"\b(?:received|got|confirmed)\s+", _KES, _AMOUNT, r"\s+from\s+", _NAME, _END, r".*?\bAirtel\b"),
        ),
    ),
    PlatformPatterns(
        Platform.BANK,
        (
            _p(r"\bbank\s+transfer\b.*?", _AMOUNT, r".*?\b(?:from|by)\s+", _NAME, _END),
            _p(r"\b(?:transferred|deposited|credited)\s+(?:with\s+)?", _CUR, _AMOUNT,
               r".*?\b(?:from|by)\s+", _NAME, _END),
        ),
    ),
    PlatformPatterns(
        Platform.WHATSAPP_PAY,
        (
            _p(r"\bWhatsApp\s*Pay\b.*?", _AMOUNT, r".*?\b(?:from|by)\s+", _NAME, _END),
            _p(r"\bpayment\s+(?:of\s+)?", _CUR_OPT, _AMOUNT, r"\s+(?:received\s+)?from\s+", _NAME, _END),
        ),
    ),
    PlatformPatterns(
        Platform.ZELLE,
        (
            _p(r"\bZelle\b.*?\b(?:received|got)\s+", _USD_OPT, _AMOUNT, r"\s+from\s+", _NAME, _END),
            _p(r"\b", _NAME, r"\s+(?:has\s+)?(?:just\s+)?sent\s+you\s+", _USD_OPT, _AMOUNT, r".*?\bZelle\b"),
            _p(_USD_OPT, _AMOUNT, r"\s+(?:received\s+)?from\s+", _NAME, _END, r".*?\bZelle\b"),
        ),
    ),
    PlatformPatterns(
        Platform.VENMO,
        (
            _p(r"\bVenmo\b.*?\b(?:received|got)\s+", _USD_OPT, _AMOUNT, r"\s+from\s+", _NAME, _END),
            _p(_mentions("venmo"), _NAME, r"\s+(?:just\s+)?(?:paid|sent)\s+you\s+", _USD_OPT, _AMOUNT),
        ),
    ),
    PlatformPatterns(
        Platform.CASHAPP,
        (
            _p(r"\bCash\s*App\b.*?\b(?:received|got)\s+", _USD_OPT, _AMOUNT, r"\s+from\s+", _NAME, _END),
            _p(_mentions(r"cash\s*app"), _NAME, r"\s+(?:sent|paid)\s+you\s+", _USD_OPT, _AMOUNT),
        ),
    ),
    PlatformPatterns(
        Platform.PAYPAL,
        (
            _p(r"\bPayPal\b.*?\b(?:received|got)\s+", _CUR_OPT, _AMOUNT, r"\s+from\s+", _NAME, _END),
            _p(_mentions("paypal"), _NAME, r"\s+sent\s+you\s+", _CUR_OPT, _AMOUNT),
        ),
    ),
)

FALLBACK_PATTERNS: tuple[re.Pattern[str], ...] = (
    # "KES 500 ... from Mary"
    _p(_CUR, _F_AMOUNT, r".*?\b(?:from|by|sent\s+by)\s+", _F_NAME, _END),
    # "500 KES ... from Mary"
    _p(_F_AMOUNT, r"\s*(?:KES|KSH|USD|EUR|GBP|dollars|shillings)\b.*?\b(?:from|by|sent\s+by)\s+", _F_NAME, _END),
    # "Mary sent 500"
    _p(r"\b", _F_NAME, r"\s+(?:sent|paid|transferred)\s+(?:you\s+)?", _CUR_OPT, _F_AMOUNT),
    # "500 received from Mary"
    _p(_F_AMOUNT, r"\s+(?:received|got)\s+from\s+", _F_NAME, _END),
    # "payment ... 500 ... from Mary"
    _p(r"\b(?:payment|received|got|sent|transfer)\b.*?", _F_AMOUNT, r".*?\b(?:from|by)\s+", _F_NAME, _END),
)


def _match_platform(entry: PlatformPatterns, text: str) -> Optional[PatternMatch]:
    for pattern in entry.patterns:
        m = pattern.search(text)
        if not m:
            continue
        amount = parse_amount(m.group("amount"))
        if amount is None:
            continue
        return PatternMatch(
            platform=entry.platform,
            amount=amount,
            sender_name=clean_sender_name(m.group("name")),
        )
    return None


def _match_fallback(text: str) -> Optional[PatternMatch]:
    for pattern in FALLBACK_PATTERNS:
        m = pattern.search(text)
        if not m:
            continue
        amount_text, name_text = split_amount_and_name(m.group(1), m.group(2))
        amount = parse_amount(amount_text)
        if amount is None or amount <= 0:
            continue
        return PatternMatch(
            platform=Platform.GENERIC,
            amount=amount,
            sender_name=clean_sender_name(name_text),
            is_fallback=True,
        )
    return None


def match_payment(
    text: str,
    *,
    platforms: tuple[PlatformPatterns, ...] = PLATFORM_PATTERNS,
    use_fallback: bool = True,
) -> Optional[PatternMatch]:
    """
    Run the platform cascade over normalized text.

    Platform groups are tried in order and the first accepted match wins;
    later groups are never evaluated. The fallback battery runs last.
    """
    for entry in platforms:
        match = _match_platform(entry, text)
        if match is not None:
            return match
    if use_fallback:
        return _match_fallback(text)
    return None
