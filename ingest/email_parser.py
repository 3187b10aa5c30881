from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import re
from typing import Callable, Optional

from common.logger import Logger
from ingest.extractors import clean_sender_name, parse_amount
from ingest.normalizer import normalize_text
from ingest.types import ParsedContribution, Platform

_FLAGS = re.IGNORECASE | re.DOTALL
_AMOUNT = r"(?P<amount>\d[\d,]*(?:\.\d+)?)"


@dataclass(frozen=True)
class EmailFormat:
    platform: str
    subject: re.Pattern[str]
    body: re.Pattern[str]


EMAIL_FORMATS: tuple[EmailFormat, ...] = (
    EmailFormat(
        Platform.ZELLE,
        subject=re.compile(r"You[’']ve received money from (.+)", _FLAGS),
        body=re.compile(r"(?P<name>.+?) has sent you \$?" + _AMOUNT + r" with Zelle.*?Memo: (?P<member>\d+)", _FLAGS),
    ),
    EmailFormat(
        Platform.VENMO,
        subject=re.compile(r"(.+?) sent you \$?(\d[\d,]*(?:\.\d+)?)", _FLAGS),
        body=re.compile(r"(?P<name>.+?) just sent you \$?" + _AMOUNT + r" on Venmo.*?Note: (?P<member>\d+)", _FLAGS),
    ),
    EmailFormat(
        Platform.CASHAPP,
        subject=re.compile(r"Payment Received - \$?(\d[\d,]*(?:\.\d+)?) from (.+)", _FLAGS),
        body=re.compile(r"You[’']ve received \$?" + _AMOUNT + r" from (?P<name>.+?) on.*?Note: (?P<member>\d+)", _FLAGS),
    ),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EmailParser:
    """
    Parses payment notification emails.

    Subject and body must both match the same platform format; there is no
    generic fallback for this channel.
    """

    def __init__(
        self,
        formats: tuple[EmailFormat, ...] = EMAIL_FORMATS,
        *,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._formats = formats
        self._now = now

    def parse(
        self,
        subject: str,
        body: str,
        received_date: Optional[datetime] = None,
    ) -> Optional[ParsedContribution]:
        clean_subject = normalize_text(subject)
        clean_body = normalize_text(body)
        if not clean_subject or not clean_body:
            return None

        for fmt in self._formats:
            if not fmt.subject.search(clean_subject):
                continue
            m = fmt.body.search(clean_body)
            if not m:
                continue
            amount = parse_amount(m.group("amount"))
            if amount is None:
                Logger.warning("Email %s amount not parseable: %r", fmt.platform, m.group("amount"))
                return None
            return ParsedContribution(
                sender_name=clean_sender_name(m.group("name")),
                amount=amount,
                member_id=m.group("member"),
                date=received_date or self._now(),
                platform=fmt.platform,
                raw_message=f"Subject: {subject}\n\nBody: {body}",
            )
        return None
