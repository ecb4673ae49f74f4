"""Tests for rule-based field extraction and receipt record assembly."""

import math
from datetime import datetime

import pytest

from src.extraction.date_parser import DateFormat, parse_date
from src.extraction.field_extractor import (
    DEFAULT_CURRENCY,
    DEFAULT_INVOICE_NUMBER,
    DEFAULT_STORE_NAME,
    FieldExtractor,
    ReceiptRecord,
    score_record,
)
from src.extraction.rule_extractor import (
    ExtractedField,
    RuleExtractor,
    normalize_amount,
    normalize_payment_method,
)
from src.extraction.structure_analyzer import StructureAnalyzer
from src.utils.config import ExtractionConfig


class TestNormalizeAmount:
    """Tests for separator-aware amount parsing."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("45,90", 45.90),
            ("1.234,56", 1234.56),
            ("1,234.56", 1234.56),
            ("1,234", 1234.0),
            ("10", 10.0),
            ("7,5", 7.5),
        ],
    )
    def test_valid(self, raw: str, expected: float) -> None:
        assert normalize_amount(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", ["", "abc", "12,a5"])
    def test_invalid(self, raw: str) -> None:
        assert normalize_amount(raw) is None

    def test_overflowing_digits_rejected(self) -> None:
        assert normalize_amount("9" * 400 + ",00") is None


class TestDateParser:
    """Tests for format-tagged date parsing."""

    def test_day_month_with_time(self) -> None:
        parsed = parse_date("05/03/2024 14:30", DateFormat.DMY_HM)
        assert parsed == datetime(2024, 3, 5, 14, 30)

    def test_month_first(self) -> None:
        assert parse_date("12/25/2024", DateFormat.MDY) == datetime(2024, 12, 25)

    def test_iso(self) -> None:
        assert parse_date("2024-01-15", "YYYY-MM-DD") == datetime(2024, 1, 15)

    def test_two_digit_year(self) -> None:
        assert parse_date("05/03/24", DateFormat.DMY) == datetime(2024, 3, 5)

    def test_invalid_calendar_date(self) -> None:
        assert parse_date("31/02/2024", DateFormat.DMY) is None

    def test_unknown_format(self) -> None:
        assert parse_date("05/03/2024", "DD~MM~YYYY") is None

    def test_wrong_separator(self) -> None:
        assert parse_date("05-03-2024", DateFormat.DMY) is None


class TestRuleExtractor:
    """Tests for the RuleExtractor class."""

    def setup_method(self) -> None:
        self.extractor = RuleExtractor()

    def test_extract_amount_brl(self) -> None:
        result = self.extractor.extract_amount("TOTAL R$ 45,90")
        assert result is not None
        assert result.value == pytest.approx(45.90)
        assert result.tag == "BRL"

    def test_extract_amount_usd_with_thousands(self) -> None:
        result = self.extractor.extract_amount("Total: $1,234.56")
        assert result.value == pytest.approx(1234.56)
        assert result.tag == "USD"

    def test_extract_amount_eur(self) -> None:
        result = self.extractor.extract_amount("TOTAL € 12,50")
        assert result.value == pytest.approx(12.50)
        assert result.tag == "EUR"

    def test_extract_amount_gbp_code(self) -> None:
        result = self.extractor.extract_amount("GBP 8.99")
        assert result.tag == "GBP"

    def test_subtotal_is_not_the_total(self) -> None:
        result = self.extractor.extract_amount("SUBTOTAL 40,00\nTOTAL 45,90")
        assert result.value == pytest.approx(45.90)
        assert result.tag == "UNKNOWN"

    def test_zero_amount_rejected(self) -> None:
        assert self.extractor.extract_amount("TOTAL 0,00") is None

    def test_overflowing_total_skipped(self) -> None:
        text = "TOTAL R$ " + "9" * 400 + ",00\nR$ 12,50"
        result = self.extractor.extract_amount(text)
        assert result.value == pytest.approx(12.50)

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("CASHBACK: R$ 2,30", 2.30),
            ("Cash back 4,00", 4.00),
            ("Cash-back R$1.250,00", 1250.00),
            ("Reembolso 1,50", 1.50),
            ("DEVOLUÇÃO R$ 3,00", 3.00),
            ("CB: 0,75", 0.75),
        ],
    )
    def test_extract_cashback(self, text: str, expected: float) -> None:
        result = self.extractor.extract_cashback(text)
        assert result.field_name == "cashback"
        assert result.value == pytest.approx(expected)

    def test_cashback_requires_positive_amount(self) -> None:
        assert self.extractor.extract_cashback("CASHBACK 0,00") is None

    def test_cashback_word_boundary(self) -> None:
        assert self.extractor.extract_cashback("ACB 5,00\nTOTAL 5,00") is None

    def test_extract_date_with_time(self) -> None:
        result = self.extractor.extract_date("Data: 05/03/2024 14:30")
        assert result.value == datetime(2024, 3, 5, 14, 30)
        assert result.tag == "DD/MM/YYYY HH:mm"

    def test_extract_date_month_first_fallback(self) -> None:
        result = self.extractor.extract_date("DATE 12/25/2024")
        assert result.value == datetime(2024, 12, 25)
        assert result.tag == "MM/DD/YYYY"

    def test_extract_date_iso(self) -> None:
        result = self.extractor.extract_date("Emitido em 2024-01-15")
        assert result.value == datetime(2024, 1, 15)

    def test_extract_date_dotted(self) -> None:
        result = self.extractor.extract_date("Datum 15.01.2024")
        assert result.value == datetime(2024, 1, 15)

    def test_extract_date_invalid(self) -> None:
        assert self.extractor.extract_date("32/13/2024") is None

    def test_extract_invoice_number(self) -> None:
        result = self.extractor.extract_invoice_number("CUPOM FISCAL 123456")
        assert result.value == "123456"

    def test_extract_invoice_alphanumeric(self) -> None:
        result = self.extractor.extract_invoice_number("Invoice #INV-2024-001")
        assert result.value == "INV-2024-001"

    def test_extract_invoice_nfce(self) -> None:
        result = self.extractor.extract_invoice_number("NFC-e 000123")
        assert result.value == "000123"

    def test_extract_store_name_skips_headers(self) -> None:
        text = "12345\nCNPJ 12.345.678/0001-90\nPadaria Pão Quente\nTOTAL 10,00"
        result = self.extractor.extract_store_name(text)
        assert result.value == "Padaria Pão Quente"

    def test_store_name_limited_to_leading_lines(self) -> None:
        extractor = RuleExtractor(store_name_scan_lines=2)
        assert extractor.extract_store_name("123\n456\nLate Store") is None

    def test_extract_payment_method_label(self) -> None:
        text = "Forma de pagamento: Dinheiro"
        assert self.extractor.extract_payment_method(text) == "cash"

    def test_extract_payment_method_keyword(self) -> None:
        assert self.extractor.extract_payment_method("Pago via PIX") == "pix"

    def test_extract_payment_method_unknown(self) -> None:
        assert self.extractor.extract_payment_method("TOTAL 10,00") == "unknown"

    def test_normalize_payment_method(self) -> None:
        assert normalize_payment_method("VISA DEBITO") == "card"
        assert normalize_payment_method("nothing here") is None

    def test_extract_items(self, brl_receipt_text: str) -> None:
        items = self.extractor.extract_items(brl_receipt_text)
        assert items[0] == (2, "ARROZ 5KG", pytest.approx(19.90))
        assert len(items) == 3

    def test_extract_tax(self) -> None:
        taxes = self.extractor.extract_tax("ICMS: 8,26\nVAT 2.50")
        assert taxes == {"icms": pytest.approx(8.26), "vat": pytest.approx(2.5)}

    def test_extracted_field_structure(self) -> None:
        result = self.extractor.extract_amount("TOTAL R$ 45,90")
        assert isinstance(result, ExtractedField)
        assert result.field_name == "amount"
        assert result.start_pos < result.end_pos
        assert result.rule_index == 0


class TestScoreRecord:
    """Tests for record completeness scoring."""

    def test_all_fields(self) -> None:
        score = score_record(
            invoice_number="1",
            date_detected=True,
            amount=10.0,
            store_name="Shop",
            payment_method="card",
            has_items=True,
        )
        assert score == pytest.approx(1.0)

    def test_floor(self) -> None:
        score = score_record(
            invoice_number=DEFAULT_INVOICE_NUMBER,
            date_detected=False,
            amount=0.0,
            store_name=DEFAULT_STORE_NAME,
            payment_method="unknown",
            has_items=False,
        )
        assert score == 0.1

    def test_amount_and_store(self) -> None:
        score = score_record(
            invoice_number=DEFAULT_INVOICE_NUMBER,
            date_detected=False,
            amount=5.0,
            store_name="Shop",
            payment_method="unknown",
            has_items=False,
        )
        assert score == pytest.approx(0.45)


class TestFieldExtractor:
    """Tests for building receipt records from text."""

    def test_brl_receipt(self, brl_receipt_text: str) -> None:
        record = FieldExtractor().extract(brl_receipt_text)
        assert record.amount == pytest.approx(45.90)
        assert record.currency == "BRL"
        assert record.date == datetime(2024, 3, 5, 14, 30)
        assert record.date_detected is True
        assert record.store_name == "SUPERMERCADO BOM PRECO"
        assert record.invoice_number == "123456"
        assert record.payment_method == "card"
        assert len(record.items) == 3
        assert record.items[0].currency == "BRL"
        assert record.confidence == pytest.approx(1.0)

    def test_empty_text_keeps_defaults(self) -> None:
        now = datetime(2025, 1, 1, 12, 0)
        record = FieldExtractor().extract("", now=now)
        assert record.amount == 0.0
        assert record.currency == DEFAULT_CURRENCY
        assert record.date == now
        assert record.date_detected is False
        assert record.items == ()
        assert record.confidence == 0.1

    def test_invalid_date_falls_back_to_now(self) -> None:
        now = datetime(2025, 1, 1, 12, 0)
        record = FieldExtractor().extract("Data: 31/02/2024", now=now)
        assert record.date == now
        assert record.date_detected is False

    def test_overflowing_amount_not_recorded(self) -> None:
        text = "LOJA TESTE\nTOTAL R$ " + "9" * 400 + ",00"
        record = FieldExtractor().extract(text)
        assert record.amount == 0.0
        assert record.currency == DEFAULT_CURRENCY
        assert math.isfinite(record.confidence)

    def test_cashback_recorded(self, brl_receipt_text: str) -> None:
        text = brl_receipt_text + "\nCASHBACK: R$ 2,30"
        record = FieldExtractor().extract(text)
        assert record.cashback == pytest.approx(2.30)
        assert record.amount == pytest.approx(45.90)
        assert record.to_dict()["cashback"] == pytest.approx(2.30)

    def test_cashback_defaults_to_zero(self, brl_receipt_text: str) -> None:
        assert FieldExtractor().extract(brl_receipt_text).cashback == 0.0

    def test_undetected_date_does_not_score(self) -> None:
        record = FieldExtractor().extract("Loja Central\nTOTAL R$ 10,00")
        assert record.date_detected is False
        assert record.confidence == pytest.approx(0.45)

    def test_items_from_structures(self, brl_receipt_text: str) -> None:
        structures = StructureAnalyzer().detect(brl_receipt_text)
        record = FieldExtractor().extract(
            brl_receipt_text, structures, extraction_method="structured"
        )
        assert record.extraction_method == "structured"
        assert len(record.items) == 3
        assert all(item.source == "structure" for item in record.items)

    def test_confidence_floor_from_config(self) -> None:
        extractor = FieldExtractor(ExtractionConfig(min_confidence=0.25))
        assert extractor.extract("nothing useful").confidence == 0.25

    def test_to_dict(self, brl_receipt_text: str) -> None:
        data = FieldExtractor().extract(brl_receipt_text).to_dict()
        assert data["date"] == "2024-03-05T14:30:00"
        assert data["items"][0]["description"] == "ARROZ 5KG"
        assert data["currency"] == "BRL"

    def test_record_is_immutable(self) -> None:
        record = ReceiptRecord()
        with pytest.raises(AttributeError):
            record.amount = 10.0
