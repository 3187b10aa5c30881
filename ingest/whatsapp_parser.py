from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Optional

from ingest.extractors import extract_member_id
from ingest.normalizer import normalize_text
from ingest.patterns import PLATFORM_PATTERNS, PlatformPatterns, match_payment
from ingest.types import UNKNOWN_MEMBER, ParsedContribution, WhatsAppInbound

BUSINESS_ACCOUNT_OBJECT = "whatsapp_business_account"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def extract_message(envelope: Any) -> Optional[WhatsAppInbound]:
    """
    Pull the first text message out of a WhatsApp Business webhook envelope.

    Expected shape: {"object": "whatsapp_business_account",
    "entry": [{"changes": [{"value": {"messages": [{"type": "text", ...}]}}]}]}.
    Anything else (status callbacks, media, malformed payloads) gives None.
    """
    if not isinstance(envelope, dict) or envelope.get("object") != BUSINESS_ACCOUNT_OBJECT:
        return None
    try:
        value = envelope["entry"][0]["changes"][0]["value"]
        message = value["messages"][0]
    except (KeyError, IndexError, TypeError):
        return None
    if not isinstance(message, dict) or message.get("type") != "text":
        return None

    text = message.get("text")
    body = text.get("body") if isinstance(text, dict) else None
    if not isinstance(body, str) or not body.strip():
        return None

    return WhatsAppInbound(
        body=body,
        sender_phone=str(message.get("from") or ""),
        message_id=message.get("id"),
    )


class WhatsAppParser:
    """Most permissive channel: full platform cascade plus the fallback battery."""

    def __init__(
        self,
        platforms: tuple[PlatformPatterns, ...] = PLATFORM_PATTERNS,
        *,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._platforms = platforms
        self._now = now

    def parse(self, body: str, sender_phone: Optional[str] = None) -> Optional[ParsedContribution]:
        text = normalize_text(body)
        if not text:
            return None

        match = match_payment(text, platforms=self._platforms)
        if match is None:
            return None

        phone = sender_phone or None
        member_id = extract_member_id(text) or phone or UNKNOWN_MEMBER
        return ParsedContribution(
            sender_name=match.sender_name,
            amount=match.amount,
            member_id=member_id,
            date=self._now(),
            platform=match.platform,
            raw_message=body,
            phone_number=phone,
        )
