"""Validation of extracted receipt records.

Runs a registry of checks over a ``ReceiptRecord``: a receipt-likelihood
gate that rejects confidently parsed non-receipt text, a required-amount
check, and advisory warnings for suspicious amounts, dates, and missing
fields. Validation reports problems; it never raises.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from src.extraction.field_extractor import (
    DEFAULT_CURRENCY,
    DEFAULT_INVOICE_NUMBER,
    DEFAULT_PAYMENT_METHOD,
    DEFAULT_STORE_NAME,
    ReceiptRecord,
)
from src.utils.config import ValidationConfig
from src.utils.logger import get_logger

logger = get_logger(__name__)

NOT_A_RECEIPT_MESSAGE = (
    "This does not appear to be a receipt. Please upload an image of an actual "
    "purchase receipt, invoice, or bill."
)
MISSING_AMOUNT_MESSAGE = "Amount not found or invalid - this is required for processing"

# Store names made of app or notification vocabulary point at screenshots.
_NON_STORE_WORDS = re.compile(
    r"\b(?:update|notification|reward|level|app|system)s?\b", re.IGNORECASE
)


@dataclass
class ValidationResult:
    """Result of a single validation check."""

    check_name: str
    passed: bool
    message: str
    severity: str = "warning"


@dataclass
class ValidationReport:
    """Aggregated validation report for a receipt record."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    results: list[ValidationResult] = field(default_factory=list)
    indicator_count: int = 0

    def to_dict(self) -> dict[str, object]:
        """Serialize to JSON-friendly primitives."""
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "indicator_count": self.indicator_count,
        }


def is_plausible_store_name(name: str) -> bool:
    """Whether a store name is real and not app or notification vocabulary."""
    return (
        bool(name)
        and name != DEFAULT_STORE_NAME
        and not _NON_STORE_WORDS.search(name)
    )


def receipt_indicators(record: ReceiptRecord) -> dict[str, bool]:
    """Evaluate the six receipt-likelihood indicators for a record."""
    return {
        "amount": record.amount > 0,
        "store_name": is_plausible_store_name(record.store_name),
        "confidence": record.confidence > 0.2,
        "currency": bool(record.currency) and record.currency != DEFAULT_CURRENCY,
        "items": len(record.items) > 0,
        "payment_method": record.payment_method != DEFAULT_PAYMENT_METHOD,
    }


class ReceiptValidator:
    """Configurable validation checks for receipt records.

    Args:
        config: Thresholds for amounts, dates, confidence, and the
            minimum number of receipt indicators.
    """

    def __init__(self, config: ValidationConfig | None = None) -> None:
        self.config = config or ValidationConfig()
        self._checks: dict[
            str, Callable[[ReceiptRecord, datetime], list[ValidationResult]]
        ] = {
            "receipt_likelihood": self._check_likelihood,
            "invoice_number": self._check_invoice_number,
            "amount": self._check_amount,
            "date": self._check_date,
            "store_name": self._check_store_name,
            "confidence": self._check_confidence,
            "items": self._check_items,
            "currency": self._check_currency,
        }

    def validate(
        self, record: ReceiptRecord, now: datetime | None = None
    ) -> ValidationReport:
        """Validate a receipt record.

        Args:
            record: Record to validate.
            now: Reference time for date-age checks. Defaults to now.

        Returns:
            Report whose ``is_valid`` is false when any error-severity check
            failed, including the receipt-likelihood gate.
        """
        now = now or datetime.now()
        results: list[ValidationResult] = []
        for check in self._checks.values():
            results.extend(check(record, now))

        errors = [r.message for r in results if not r.passed and r.severity == "error"]
        warnings = [
            r.message for r in results if not r.passed and r.severity == "warning"
        ]
        indicator_count = sum(receipt_indicators(record).values())

        report = ValidationReport(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            results=results,
            indicator_count=indicator_count,
        )
        logger.info(
            "Validation %s: %d error(s), %d warning(s), %d/6 receipt indicators",
            "PASSED" if report.is_valid else "FAILED",
            len(errors),
            len(warnings),
            indicator_count,
        )
        return report

    def _check_likelihood(
        self, record: ReceiptRecord, now: datetime
    ) -> list[ValidationResult]:
        """Gate: enough receipt indicators must hold."""
        count = sum(receipt_indicators(record).values())
        passed = count >= self.config.min_indicators
        return [
            ValidationResult(
                "receipt_likelihood",
                passed,
                "Receipt indicators present"
                if passed
                else NOT_A_RECEIPT_MESSAGE,
                "error",
            )
        ]

    def _check_invoice_number(
        self, record: ReceiptRecord, now: datetime
    ) -> list[ValidationResult]:
        passed = record.invoice_number != DEFAULT_INVOICE_NUMBER
        return [
            ValidationResult(
                "invoice_number",
                passed,
                "Invoice number found"
                if passed
                else "Invoice number not found - this is common for some receipt types",
            )
        ]

    def _check_amount(
        self, record: ReceiptRecord, now: datetime
    ) -> list[ValidationResult]:
        """Amount must be positive; unusual values only warn."""
        amount = record.amount
        if amount <= 0:
            return [ValidationResult("amount", False, MISSING_AMOUNT_MESSAGE, "error")]

        results: list[ValidationResult] = []
        if amount > self.config.max_amount:
            results.append(
                ValidationResult(
                    "amount_range",
                    False,
                    "Amount seems unusually high - please verify",
                )
            )
        elif amount > self.config.warning_high_amount:
            results.append(
                ValidationResult(
                    "amount_high",
                    False,
                    f"Amount is above {self.config.warning_high_amount:.2f} "
                    "- please verify",
                )
            )
        if amount < self.config.min_amount or amount < self.config.warning_low_amount:
            results.append(
                ValidationResult(
                    "amount_low", False, "Amount seems unusually low - please verify"
                )
            )
        if not results:
            results.append(ValidationResult("amount", True, "Amount within range"))
        return results

    def _check_date(
        self, record: ReceiptRecord, now: datetime
    ) -> list[ValidationResult]:
        """Date should be detected, not in the future, and not too old."""
        if not record.date_detected:
            return [
                ValidationResult(
                    "date", False, "Date not found or invalid - using current date"
                )
            ]

        age_days = (now - record.date).days
        if age_days < -1:
            message = "Receipt date is in the future"
            return [ValidationResult("date_future", False, message)]
        if age_days > self.config.max_age_days:
            return [
                ValidationResult(
                    "date_age",
                    False,
                    f"Receipt date is more than {self.config.max_age_days} days old",
                )
            ]
        if age_days > self.config.warning_age_days:
            return [
                ValidationResult(
                    "date_age",
                    False,
                    f"Receipt date is more than "
                    f"{self.config.warning_age_days} days old",
                )
            ]
        return [ValidationResult("date", True, "Receipt date is recent")]

    def _check_store_name(
        self, record: ReceiptRecord, now: datetime
    ) -> list[ValidationResult]:
        passed = record.store_name != DEFAULT_STORE_NAME
        return [
            ValidationResult(
                "store_name",
                passed,
                "Store name found"
                if passed
                else "Store name not found - this may affect store matching",
            )
        ]

    def _check_confidence(
        self, record: ReceiptRecord, now: datetime
    ) -> list[ValidationResult]:
        if record.confidence < self.config.low_confidence:
            message = (
                "Low confidence in extracted data - "
                "manual verification recommended"
            )
            return [ValidationResult("confidence", False, message)]
        if record.confidence < self.config.medium_confidence:
            message = "Medium confidence in extracted data - review recommended"
            return [ValidationResult("confidence", False, message)]
        return [ValidationResult("confidence", True, "High confidence")]

    def _check_items(
        self, record: ReceiptRecord, now: datetime
    ) -> list[ValidationResult]:
        passed = len(record.items) > 0
        return [
            ValidationResult(
                "items",
                passed,
                f"{len(record.items)} item(s) detected"
                if passed
                else "No individual items detected - this may be normal for some "
                "receipt types",
            )
        ]

    def _check_currency(
        self, record: ReceiptRecord, now: datetime
    ) -> list[ValidationResult]:
        passed = record.currency != DEFAULT_CURRENCY
        return [
            ValidationResult(
                "currency",
                passed,
                f"Currency {record.currency}"
                if passed
                else "Currency not detected - assuming local currency",
            )
        ]
