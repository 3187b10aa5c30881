from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


class Platform:
    MPESA = "M-Pesa"
    AIRTEL = "Airtel Money"
    BANK = "Bank Transfer"
    WHATSAPP_PAY = "WhatsApp Pay"
    ZELLE = "Zelle"
    VENMO = "Venmo"
    CASHAPP = "Cash App"
    PAYPAL = "PayPal"
    GENERIC = "Mobile Payment"


UNKNOWN_MEMBER = "Unknown"


@dataclass(frozen=True)
class ParsedContribution:
    sender_name: str
    amount: Decimal
    member_id: str
    date: datetime
    platform: str
    raw_message: str
    phone_number: Optional[str] = None


@dataclass(frozen=True)
class PatternMatch:
    platform: str
    amount: Decimal
    sender_name: str
    is_fallback: bool = False


@dataclass(frozen=True)
class WhatsAppInbound:
    body: str
    sender_phone: str
    message_id: Optional[str] = None
