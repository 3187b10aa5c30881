import unittest
from datetime import datetime, timezone
from decimal import Decimal

from ingest.types import UNKNOWN_MEMBER, Platform
from ingest.whatsapp_parser import WhatsAppParser, extract_message

FIXED_NOW = datetime(2025, 1, 2, tzinfo=timezone.utc)


def envelope(message: dict, obj: str = "whatsapp_business_account") -> dict:
    return {
        "object": obj,
        "entry": [{"id": "WABA", "changes": [{"field": "messages", "value": {"messages": [message]}}]}],
    }


def text_message(body: str, sender: str = "254700000001") -> dict:
    return {"from": sender, "id": "wamid.1", "type": "text", "text": {"body": body}}


class WhatsAppParserTest(unittest.TestCase):
    def setUp(self) -> None:
        self.parser = WhatsAppParser(now=lambda: FIXED_NOW)

    def test_member_falls_back_to_phone(self) -> None:
        parsed = self.parser.parse("Payment of KES 500 received from Mary Atieno", "254700000001")
        self.assertIsNotNone(parsed)
        self.assertEqual(parsed.platform, Platform.MPESA)
        self.assertEqual(parsed.amount, Decimal("500"))
        self.assertEqual(parsed.sender_name, "Mary Atieno")
        self.assertEqual(parsed.member_id, "254700000001")
        self.assertEqual(parsed.phone_number, "254700000001")
        self.assertEqual(parsed.date, FIXED_NOW)

    def test_member_unknown_without_phone(self) -> None:
        parsed = self.parser.parse("Payment of KES 500 received from Mary Atieno")
        self.assertEqual(parsed.member_id, UNKNOWN_MEMBER)
        self.assertIsNone(parsed.phone_number)

    def test_member_from_message_text(self) -> None:
        parsed = self.parser.parse(
            "QGH7XK2L9P Confirmed. You have received Ksh2,500.00 from JANE WANJIRU 0722000111 "
            "on 3/4/24 at 10:15 AM. Account: MBR204",
            "254700000001",
        )
        self.assertEqual(parsed.platform, Platform.MPESA)
        self.assertEqual(parsed.amount, Decimal("2500.00"))
        self.assertEqual(parsed.member_id, "MBR204")

    def test_fallback_message(self) -> None:
        parsed = self.parser.parse("John Kamau sent 2,000 for harambee")
        self.assertEqual(parsed.platform, Platform.GENERIC)
        self.assertEqual(parsed.amount, Decimal("2000"))

    def test_reparsing_is_stable(self) -> None:
        text = "Airtel Money: You have received KES 1,200 from PETER OTIENO. Ref: AM55521"
        first, second = self.parser.parse(text), self.parser.parse(text)
        self.assertEqual(first, second)
        self.assertEqual(first.member_id, "AM55521")

    def test_chat_message(self) -> None:
        self.assertIsNone(self.parser.parse("Hello, are we meeting tomorrow at 5?", "254700000001"))
        self.assertIsNone(self.parser.parse(""))


class ExtractMessageTest(unittest.TestCase):
    def test_text_message(self) -> None:
        inbound = extract_message(envelope(text_message("KES 500 from Mary")))
        self.assertIsNotNone(inbound)
        self.assertEqual(inbound.body, "KES 500 from Mary")
        self.assertEqual(inbound.sender_phone, "254700000001")
        self.assertEqual(inbound.message_id, "wamid.1")

    def test_wrong_object(self) -> None:
        self.assertIsNone(extract_message(envelope(text_message("KES 500 from Mary"), obj="page")))

    def test_status_callback(self) -> None:
        payload = {
            "object": "whatsapp_business_account",
            "entry": [{"changes": [{"value": {"statuses": [{"status": "delivered"}]}}]}],
        }
        self.assertIsNone(extract_message(payload))

    def test_non_text_message(self) -> None:
        self.assertIsNone(extract_message(envelope({"from": "254700000001", "type": "image", "image": {}})))

    def test_malformed(self) -> None:
        self.assertIsNone(extract_message(None))
        self.assertIsNone(extract_message({"object": "whatsapp_business_account", "entry": []}))
        self.assertIsNone(extract_message(envelope(text_message("   "))))


if __name__ == "__main__":
    unittest.main()
