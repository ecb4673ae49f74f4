"""Receipt record assembly from recognized text.

Applies the rule tables to consensus text, optionally takes line items
from structural analysis, and scores how complete the resulting record is.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.extraction.rule_extractor import RuleExtractor
from src.extraction.structure_analyzer import StructureResult
from src.utils.config import ExtractionConfig
from src.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_INVOICE_NUMBER = "UNKNOWN"
DEFAULT_STORE_NAME = "Unknown Store"
DEFAULT_CURRENCY = "UNKNOWN"
DEFAULT_PAYMENT_METHOD = "unknown"

# Contribution of each populated field to the record confidence.
CONFIDENCE_WEIGHTS: dict[str, float] = {
    "invoice_number": 0.2,
    "date": 0.2,
    "amount": 0.3,
    "store_name": 0.15,
    "payment_method": 0.1,
    "items": 0.05,
}


@dataclass(frozen=True)
class LineItem:
    """One purchased item."""

    quantity: int
    description: str
    price: float
    currency: str | None = None
    confidence: float = 0.0
    source: str = "text"


@dataclass(frozen=True)
class ReceiptRecord:
    """Typed purchase data extracted from one receipt."""

    invoice_number: str = DEFAULT_INVOICE_NUMBER
    store_name: str = DEFAULT_STORE_NAME
    amount: float = 0.0
    currency: str = DEFAULT_CURRENCY
    date: datetime = field(default_factory=datetime.now)
    date_detected: bool = False
    payment_method: str = DEFAULT_PAYMENT_METHOD
    items: tuple[LineItem, ...] = ()
    tax_info: dict[str, float] = field(default_factory=dict)
    cashback: float = 0.0
    confidence: float = 0.1
    extraction_method: str = "rules"
    tables: tuple[dict[str, Any], ...] = ()
    price_breakdown: tuple[dict[str, Any], ...] = ()
    structure_confidence: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to JSON-friendly primitives."""
        return {
            "invoice_number": self.invoice_number,
            "store_name": self.store_name,
            "amount": self.amount,
            "currency": self.currency,
            "date": self.date.isoformat(),
            "date_detected": self.date_detected,
            "payment_method": self.payment_method,
            "items": [
                {
                    "quantity": item.quantity,
                    "description": item.description,
                    "price": item.price,
                    "currency": item.currency,
                    "confidence": round(item.confidence, 3),
                    "source": item.source,
                }
                for item in self.items
            ],
            "tax_info": dict(self.tax_info),
            "cashback": self.cashback,
            "confidence": round(self.confidence, 3),
            "extraction_method": self.extraction_method,
            "tables": list(self.tables),
            "price_breakdown": list(self.price_breakdown),
            "structure_confidence": self.structure_confidence,
        }


def score_record(
    *,
    invoice_number: str,
    date_detected: bool,
    amount: float,
    store_name: str,
    payment_method: str,
    has_items: bool,
    floor: float = 0.1,
) -> float:
    """Composite confidence of a record from which fields were populated.

    Returns:
        Sum of field weights, capped at 1.0 and floored at ``floor``.
    """
    score = 0.0
    if invoice_number != DEFAULT_INVOICE_NUMBER:
        score += CONFIDENCE_WEIGHTS["invoice_number"]
    if date_detected:
        score += CONFIDENCE_WEIGHTS["date"]
    if amount > 0:
        score += CONFIDENCE_WEIGHTS["amount"]
    if store_name != DEFAULT_STORE_NAME:
        score += CONFIDENCE_WEIGHTS["store_name"]
    if payment_method != DEFAULT_PAYMENT_METHOD:
        score += CONFIDENCE_WEIGHTS["payment_method"]
    if has_items:
        score += CONFIDENCE_WEIGHTS["items"]
    return max(floor, min(score, 1.0))


def items_from_structures(structures: StructureResult) -> list[LineItem]:
    """Convert priced-item elements into line items."""
    return [
        LineItem(
            quantity=element.fields.quantity or 1,
            description=element.fields.description or element.raw_text,
            price=element.fields.price or 0.0,
            currency=element.fields.currency,
            confidence=element.role_confidence,
            source="structure",
        )
        for element in structures.items
    ]


class FieldExtractor:
    """Builds a ``ReceiptRecord`` from consensus text.

    Args:
        config: Extraction configuration.
    """

    def __init__(self, config: ExtractionConfig | None = None) -> None:
        self.config = config or ExtractionConfig()
        self.rules = RuleExtractor(self.config.store_name_scan_lines)

    def extract(
        self,
        text: str,
        structures: StructureResult | None = None,
        extraction_method: str = "rules",
        now: datetime | None = None,
    ) -> ReceiptRecord:
        """Extract receipt fields from text.

        Args:
            text: Consensus OCR text.
            structures: Optional structural analysis of the same text. Its
                priced items replace regex-matched items when present.
            extraction_method: Label recorded on the record.
            now: Fallback date when none is found; defaults to the current time.

        Returns:
            The extracted record. Missing fields keep their defaults.
        """
        invoice = self.rules.extract_invoice_number(text)
        date = self.rules.extract_date(text)
        amount = self.rules.extract_amount(text)
        store = self.rules.extract_store_name(text)
        payment_method = self.rules.extract_payment_method(text)
        tax_info = self.rules.extract_tax(text)
        cashback = self.rules.extract_cashback(text)

        currency = amount.tag if amount else DEFAULT_CURRENCY
        items: list[LineItem] = []
        if structures is not None:
            items = items_from_structures(structures)
        if not items:
            items = [
                LineItem(
                    quantity=quantity,
                    description=description,
                    price=price,
                    currency=currency if currency != DEFAULT_CURRENCY else None,
                    confidence=0.5,
                )
                for quantity, description, price in self.rules.extract_items(text)
            ]

        invoice_number = invoice.value if invoice else DEFAULT_INVOICE_NUMBER
        store_name = store.value if store else DEFAULT_STORE_NAME
        amount_value = amount.value if amount else 0.0

        confidence = score_record(
            invoice_number=invoice_number,
            date_detected=date is not None,
            amount=amount_value,
            store_name=store_name,
            payment_method=payment_method,
            has_items=bool(items),
            floor=self.config.min_confidence,
        )

        record = ReceiptRecord(
            invoice_number=invoice_number,
            store_name=store_name,
            amount=amount_value,
            currency=currency or DEFAULT_CURRENCY,
            date=date.value if date else (now or datetime.now()),
            date_detected=date is not None,
            payment_method=payment_method,
            items=tuple(items),
            tax_info=tax_info,
            cashback=cashback.value if cashback else 0.0,
            confidence=confidence,
            extraction_method=extraction_method,
        )
        logger.info(
            "Extracted receipt: store=%r amount=%.2f %s, %d item(s), confidence %.2f",
            record.store_name,
            record.amount,
            record.currency,
            len(record.items),
            record.confidence,
        )
        return record
