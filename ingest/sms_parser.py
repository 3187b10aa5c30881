from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import re
from typing import Callable, Optional

from common.logger import Logger
from ingest.extractors import clean_sender_name, parse_amount
from ingest.normalizer import normalize_text
from ingest.types import ParsedContribution, Platform

_FLAGS = re.IGNORECASE
_AMOUNT = r"(?P<amount>\d[\d,]*(?:\.\d+)?)"

# MM/DD/YYYY first, then M/D/YY or M/D/YYYY
DATE_LAYOUTS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^(\d{2})/(\d{2})/(\d{4})$"),
    re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2,4})$"),
)


@dataclass(frozen=True)
class SmsFormat:
    platform: str
    pattern: re.Pattern[str]


SMS_FORMATS: tuple[SmsFormat, ...] = (
    SmsFormat(
        Platform.ZELLE,
        re.compile(
            r"You received \$?" + _AMOUNT + r" from (?P<name>.+?) on (?P<date>\d{2}/\d{2}/\d{4})\."
            r" Memo: (?P<member>\d+)",
            _FLAGS,
        ),
    ),
    SmsFormat(
        Platform.VENMO,
        re.compile(
            r"(?P<name>.+?) paid you \$?" + _AMOUNT + r" [–—-] [\"“”](?P<member>\d+)[\"“”]"
            r" on (?P<date>\d{2}/\d{2}/\d{4})",
            _FLAGS,
        ),
    ),
    SmsFormat(
        Platform.CASHAPP,
        re.compile(
            r"You received \$?" + _AMOUNT + r" from (?P<name>.+?) on (?P<date>\d{2}/\d{2}/\d{4})\."
            r" Note: (?P<member>\d+)",
            _FLAGS,
        ),
    ),
    SmsFormat(
        Platform.MPESA,
        re.compile(
            r"(?P<code>[A-Z0-9]+) Confirmed\. ?You have received Ksh ?" + _AMOUNT
            + r" from (?P<name>.+?) (?P<member>\d+) on (?P<date>\d{1,2}/\d{1,2}/\d{2,4})",
            _FLAGS,
        ),
    ),
    SmsFormat(
        Platform.AIRTEL,
        re.compile(
            r"You have received Ksh ?" + _AMOUNT + r" from (?P<name>.+?) \((?P<member>\d+)\)"
            r" on (?P<date>\d{1,2}/\d{1,2}/\d{2,4})",
            _FLAGS,
        ),
    ),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_sms_date(value: str, *, now: Callable[[], datetime] = _utcnow) -> datetime:
    """Month-first calendar date; 2-digit years are 20xx. Falls back to now()."""
    for layout in DATE_LAYOUTS:
        m = layout.match(value.strip())
        if not m:
            continue
        month, day, year = (int(g) for g in m.groups())
        if year < 100:
            year += 2000
        try:
            return datetime(year, month, day, tzinfo=timezone.utc)
        except ValueError:
            Logger.warning("SMS date out of range: %r", value)
            break
    return now()


class SmsParser:
    def __init__(
        self,
        formats: tuple[SmsFormat, ...] = SMS_FORMATS,
        *,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._formats = formats
        self._now = now

    def parse(self, message: str) -> Optional[ParsedContribution]:
        text = normalize_text(message)
        if not text:
            return None

        for fmt in self._formats:
            m = fmt.pattern.search(text)
            if not m:
                continue
            amount = parse_amount(m.group("amount"))
            if amount is None:
                Logger.warning("SMS %s amount not parseable: %r", fmt.platform, m.group("amount"))
                return None
            return ParsedContribution(
                sender_name=clean_sender_name(m.group("name")),
                amount=amount,
                member_id=m.group("member"),
                date=parse_sms_date(m.group("date"), now=self._now),
                platform=fmt.platform,
                raw_message=message,
            )
        return None
