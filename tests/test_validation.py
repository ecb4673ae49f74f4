"""Tests for the receipt validation checks."""

from datetime import datetime, timedelta

import pytest

from src.extraction.field_extractor import FieldExtractor, LineItem, ReceiptRecord
from src.utils.config import ValidationConfig
from src.validation.rules_engine import (
    MISSING_AMOUNT_MESSAGE,
    NOT_A_RECEIPT_MESSAGE,
    ReceiptValidator,
    ValidationReport,
    ValidationResult,
    is_plausible_store_name,
    receipt_indicators,
)

NOW = datetime(2024, 3, 10, 12, 0)


def _record(**overrides) -> ReceiptRecord:
    """Build a plausible receipt record with selected fields overridden."""
    values = {
        "invoice_number": "123456",
        "store_name": "Mercado Central",
        "amount": 45.90,
        "currency": "BRL",
        "date": NOW - timedelta(days=2),
        "date_detected": True,
        "payment_method": "card",
        "items": (LineItem(1, "CAFE", 17.50),),
        "confidence": 0.9,
    }
    values.update(overrides)
    return ReceiptRecord(**values)


class TestValidationResult:
    """Tests for the ValidationResult data class."""

    def test_creation(self) -> None:
        result = ValidationResult("amount", True, "Amount within range")
        assert result.check_name == "amount"
        assert result.passed is True
        assert result.severity == "warning"


class TestStoreNamePlausibility:
    """Tests for the store-name indicator."""

    def test_real_store(self) -> None:
        assert is_plausible_store_name("Mercado Central") is True

    def test_app_vocabulary_rejected(self) -> None:
        assert is_plausible_store_name("System Update Available") is False
        assert is_plausible_store_name("Daily Rewards") is False

    def test_word_match_only(self) -> None:
        assert is_plausible_store_name("Apple Store") is True

    def test_default_rejected(self) -> None:
        assert is_plausible_store_name("Unknown Store") is False


class TestReceiptIndicators:
    """Tests for receipt-likelihood indicators."""

    def test_all_present(self) -> None:
        assert all(receipt_indicators(_record()).values())

    def test_none_present(self) -> None:
        assert not any(receipt_indicators(ReceiptRecord()).values())


class TestReceiptValidator:
    """Tests for the ReceiptValidator class."""

    def setup_method(self) -> None:
        self.validator = ReceiptValidator()

    def test_valid_receipt(self) -> None:
        report = self.validator.validate(_record(), now=NOW)
        assert isinstance(report, ValidationReport)
        assert report.is_valid is True
        assert report.errors == []
        assert report.indicator_count == 6

    def test_extracted_receipt_passes(self, brl_receipt_text: str) -> None:
        record = FieldExtractor().extract(brl_receipt_text)
        report = self.validator.validate(record, now=datetime(2024, 3, 6))
        assert report.is_valid is True
        assert report.warnings == []

    def test_non_receipt_rejected(self) -> None:
        record = ReceiptRecord(store_name="System Update Available", confidence=0.1)
        report = self.validator.validate(record, now=NOW)
        assert report.is_valid is False
        assert NOT_A_RECEIPT_MESSAGE in report.errors
        assert report.indicator_count == 0

    def test_missing_amount_is_error(self) -> None:
        report = self.validator.validate(_record(amount=0.0), now=NOW)
        assert report.is_valid is False
        assert MISSING_AMOUNT_MESSAGE in report.errors

    def test_high_amount_warns(self) -> None:
        report = self.validator.validate(_record(amount=2500.0), now=NOW)
        assert report.is_valid is True
        assert any("above 1000.00" in w for w in report.warnings)

    def test_extreme_amount_warns(self) -> None:
        report = self.validator.validate(_record(amount=25000.0), now=NOW)
        assert any("unusually high" in w for w in report.warnings)

    def test_low_amount_warns(self) -> None:
        report = self.validator.validate(_record(amount=0.5), now=NOW)
        assert any("unusually low" in w for w in report.warnings)

    def test_future_date_warns(self) -> None:
        report = self.validator.validate(
            _record(date=NOW + timedelta(days=5)), now=NOW
        )
        assert "Receipt date is in the future" in report.warnings

    def test_old_date_warns(self) -> None:
        report = self.validator.validate(
            _record(date=NOW - timedelta(days=60)), now=NOW
        )
        assert any("more than 30 days old" in w for w in report.warnings)

    def test_very_old_date_warns(self) -> None:
        report = self.validator.validate(
            _record(date=NOW - timedelta(days=400)), now=NOW
        )
        assert any("more than 365 days old" in w for w in report.warnings)

    def test_undetected_date_warns(self) -> None:
        report = self.validator.validate(_record(date_detected=False), now=NOW)
        assert any("Date not found" in w for w in report.warnings)

    @pytest.mark.parametrize(
        ("confidence", "fragment"),
        [(0.2, "Low confidence"), (0.5, "Medium confidence")],
    )
    def test_confidence_warnings(self, confidence: float, fragment: str) -> None:
        report = self.validator.validate(_record(confidence=confidence), now=NOW)
        assert any(fragment in w for w in report.warnings)

    def test_missing_optional_fields_only_warn(self) -> None:
        record = _record(
            invoice_number="UNKNOWN",
            items=(),
            currency="UNKNOWN",
            payment_method="unknown",
        )
        report = self.validator.validate(record, now=NOW)
        assert report.is_valid is True
        assert len(report.warnings) == 3

    def test_min_indicators_configurable(self) -> None:
        validator = ReceiptValidator(ValidationConfig(min_indicators=1))
        record = ReceiptRecord(amount=12.0, confidence=0.1)
        report = validator.validate(record, now=NOW)
        assert NOT_A_RECEIPT_MESSAGE not in report.errors

    def test_report_to_dict(self) -> None:
        data = self.validator.validate(_record(), now=NOW).to_dict()
        assert data["is_valid"] is True
        assert set(data) == {"is_valid", "errors", "warnings", "indicator_count"}
