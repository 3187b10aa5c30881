import unittest
from decimal import Decimal

from ingest.extractors import clean_sender_name, extract_member_id, parse_amount, split_amount_and_name
from ingest.normalizer import normalize_text


class ParseAmountTest(unittest.TestCase):
    def test_thousands_separators(self) -> None:
        self.assertEqual(parse_amount("1,500.00"), Decimal("1500.00"))
        self.assertEqual(parse_amount("1 500"), Decimal("1500"))
        self.assertEqual(parse_amount("2,000"), Decimal("2000"))

    def test_comma_decimal(self) -> None:
        self.assertEqual(parse_amount("1.500,50"), Decimal("1500.50"))

    def test_rejects_garbage(self) -> None:
        self.assertIsNone(parse_amount(None))
        self.assertIsNone(parse_amount(""))
        self.assertIsNone(parse_amount("abc"))
        self.assertIsNone(parse_amount("-5"))
        self.assertIsNone(parse_amount("NaN"))


class SenderNameTest(unittest.TestCase):
    def test_title_cases_and_strips_punctuation(self) -> None:
        self.assertEqual(clean_sender_name("JOHN  DOE."), "John Doe")
        self.assertEqual(clean_sender_name("mary-jane WANJIRU"), "Mary Jane Wanjiru")

    def test_idempotent(self) -> None:
        for raw in ("JOHN  DOE.", "mary-jane WANJIRU", "Peter O'Otieno"):
            once = clean_sender_name(raw)
            self.assertEqual(clean_sender_name(once), once)

    def test_empty(self) -> None:
        self.assertEqual(clean_sender_name(None), "")
        self.assertEqual(clean_sender_name(" ... "), "")


class SplitAmountAndNameTest(unittest.TestCase):
    def test_amount_first(self) -> None:
        self.assertEqual(split_amount_and_name("500", "Mary"), ("500", "Mary"))

    def test_name_first(self) -> None:
        self.assertEqual(split_amount_and_name("Mary", "500"), ("500", "Mary"))


class MemberIdTest(unittest.TestCase):
    def test_labelled_reference(self) -> None:
        self.assertEqual(extract_member_id("Paid. Ref: AM55521"), "AM55521")
        self.assertEqual(extract_member_id("Zelle payment. Memo: 4821"), "4821")

    def test_label_without_colon_needs_digit(self) -> None:
        self.assertEqual(extract_member_id("contribution for member 4821 thanks"), "4821")
        self.assertIsNone(extract_member_id("thanks for the account update"))

    def test_code_shape(self) -> None:
        self.assertEqual(extract_member_id("paid for MBR204 today"), "MBR204")

    def test_currency_is_not_a_code(self) -> None:
        self.assertIsNone(extract_member_id("KES500 from Mary"))

    def test_phone_numbers(self) -> None:
        self.assertEqual(extract_member_id("call me on 0722000111"), "0722000111")
        self.assertEqual(extract_member_id("sent from +254722000111"), "+254722000111")

    def test_nothing_found(self) -> None:
        self.assertIsNone(extract_member_id("Hello there"))


class NormalizeTextTest(unittest.TestCase):
    def test_collapses_whitespace(self) -> None:
        self.assertEqual(normalize_text("  KES 500\n\n received \t from  Mary "), "KES 500 received from Mary")
        self.assertEqual(normalize_text(None), "")


if __name__ == "__main__":
    unittest.main()
