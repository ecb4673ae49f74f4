"""Structural inference over recognized receipt text.

Classifies every non-blank line into a structural role (table row, list
item, priced item, price line, or unclassified) from the fields it
carries, then groups contiguous rows into tables. Works purely on text
and never re-runs recognition.
"""

import math
import re
from collections import Counter
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from src.utils.errors import StructureAnalysisError
from src.utils.logger import get_logger

logger = get_logger(__name__)


class StructuralRole(StrEnum):
    """Role assigned to one line of recognized text."""

    TABLE_ROW = "table_row"
    LIST_ITEM = "list_item"
    PRICED_ITEM = "priced_item"
    PRICE = "price"
    UNCLASSIFIED = "unclassified"


# Whole-line shapes; each match adds to the line's role confidence.
_SHAPE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"^\s*\w+\s+[\w\s]+\s+[\d,.]+\s*$"),
    re.compile(r"^\s*\d+\s+[^0-9]+\s+[\d,.]+\s*$"),
    re.compile(r"^\s*\d+\s*[.)]\s+[^0-9]+\s*$"),
    re.compile(r"^\s*[-*]\s+[^0-9]+\s*$"),
    re.compile(r"^\s*[^0-9]+\s+[\d,.]+\s*$"),
    re.compile(r"^\s*[\d,.]+\s*$"),
    re.compile(r"^\s*\d+\s+[^0-9]+\s+[\d,.]+\s*$"),
    re.compile(r"^\s*[^0-9]+\s+\d+\s+[\d,.]+\s*$"),
]
_SHAPE_WEIGHT = 0.2

_ROLE_BONUS: dict[StructuralRole, float] = {
    StructuralRole.PRICED_ITEM: 0.4,
    StructuralRole.PRICE: 0.3,
    StructuralRole.LIST_ITEM: 0.2,
    StructuralRole.TABLE_ROW: 0.1,
    StructuralRole.UNCLASSIFIED: 0.0,
}

_QUANTITY_RE = re.compile(r"^(\d{1,4})\s+")
_PRICE_RE = re.compile(r"(?:^|\s)(\d+(?:[.,]\d{3})*[.,]\d{2})\s*$")
_NUMERIC_TOKEN_RE = re.compile(r"^\d+(?:[.,]\d+)*$")
_LETTER_RE = re.compile(r"[^\W\d_]")

# Checked in order so that "R$" and "US$" win over a bare "$".
CURRENCY_GLYPHS: list[tuple[str, str]] = [
    ("R$", "BRL"),
    ("US$", "USD"),
    ("€", "EUR"),
    ("£", "GBP"),
    ("¥", "JPY"),
    ("$", "USD"),
]
_CURRENCY_CODE_RE = re.compile(r"\b(BRL|USD|EUR|GBP|JPY)\b")

TABLE_ROLES = (StructuralRole.TABLE_ROW, StructuralRole.PRICED_ITEM)


@dataclass(frozen=True)
class LineFields:
    """Candidate fields found on one line."""

    quantity: int | None = None
    description: str | None = None
    price: float | None = None
    currency: str | None = None


@dataclass(frozen=True)
class StructuralElement:
    """One classified line of recognized text."""

    role: StructuralRole
    source_line_index: int
    raw_text: str
    fields: LineFields
    role_confidence: float


@dataclass(frozen=True)
class Table:
    """Contiguous run of table-like rows."""

    rows: tuple[StructuralElement, ...]
    column_count: int
    confidence: float


@dataclass(frozen=True)
class StructureResult:
    """All structures detected in a text."""

    elements: tuple[StructuralElement, ...]
    tables: tuple[Table, ...]
    lists: tuple[StructuralElement, ...]
    items: tuple[StructuralElement, ...]
    prices: tuple[StructuralElement, ...]
    mixed: tuple[StructuralElement, ...]
    confidence: float
    summary: dict[str, Any] = field(default_factory=dict)


def parse_price(raw: str) -> float:
    """Convert a price token such as ``9,00`` or ``1.234,56`` to a float.

    The token always ends in a separator and two decimals; any earlier
    separator groups thousands.
    """
    integer_part = re.sub(r"[.,]", "", raw[:-3])
    return float(f"{integer_part}.{raw[-2:]}")


def detect_currency(line: str) -> str | None:
    """Return the ISO code of the first currency glyph or code on a line."""
    for glyph, code in CURRENCY_GLYPHS:
        if glyph in line:
            return code
    match = _CURRENCY_CODE_RE.search(line)
    return match.group(1) if match else None


def detect_fields(line: str) -> LineFields:
    """Extract quantity, price, currency, and description candidates from a line.

    Args:
        line: One stripped line of text.

    Returns:
        The fields found; absent fields are ``None``.
    """
    remainder = line
    quantity = None
    price = None

    quantity_match = _QUANTITY_RE.match(remainder)
    if quantity_match:
        quantity = int(quantity_match.group(1))
        remainder = remainder[quantity_match.end() :]

    price_match = _PRICE_RE.search(remainder)
    if price_match:
        value = parse_price(price_match.group(1))
        if math.isfinite(value):
            price = value
            remainder = remainder[: price_match.start()]

    currency = detect_currency(line)
    for glyph, _ in CURRENCY_GLYPHS:
        remainder = remainder.replace(glyph, " ")
    remainder = _CURRENCY_CODE_RE.sub(" ", remainder)
    description = " ".join(remainder.split()).strip(" :-")

    return LineFields(
        quantity=quantity,
        description=description if _LETTER_RE.search(description) else None,
        price=price,
        currency=currency,
    )


def _is_table_like(line: str) -> bool:
    tokens = line.split()
    return len(tokens) >= 3 and any(_NUMERIC_TOKEN_RE.match(t) for t in tokens)


def classify_line(line: str, index: int = 0) -> StructuralElement:
    """Assign a structural role to one line.

    Classification depends only on the text, so reclassifying an element's
    ``raw_text`` yields the same role.

    Args:
        line: Line of recognized text.
        index: Position of the line in the source text.

    Returns:
        The classified element.
    """
    text = line.strip()
    fields = detect_fields(text)

    has_quantity = fields.quantity is not None
    has_price = fields.price is not None
    has_description = fields.description is not None

    if has_quantity and has_description and has_price:
        role = StructuralRole.PRICED_ITEM
    elif has_price and has_description:
        role = StructuralRole.PRICE
    elif has_quantity and has_description:
        role = StructuralRole.LIST_ITEM
    elif _is_table_like(text):
        role = StructuralRole.TABLE_ROW
    else:
        role = StructuralRole.UNCLASSIFIED

    shape_matches = sum(1 for pattern in _SHAPE_PATTERNS if pattern.match(text))
    confidence = min(shape_matches * _SHAPE_WEIGHT + _ROLE_BONUS[role], 1.0)

    return StructuralElement(
        role=role,
        source_line_index=index,
        raw_text=text,
        fields=fields,
        role_confidence=confidence,
    )


def _column_count(rows: list[StructuralElement]) -> int:
    counts = Counter(len(row.raw_text.split()) for row in rows)
    return counts.most_common(1)[0][0]


def _table_confidence(rows: list[StructuralElement]) -> float:
    mean = sum(row.role_confidence for row in rows) / len(rows)
    bonus = 0.1 if len(rows) >= 3 else 0.0
    return min(mean + bonus, 1.0)


def group_tables(elements: list[StructuralElement]) -> list[Table]:
    """Group runs of table-like elements on consecutive lines into tables.

    A run becomes a table when it contains at least one generic table row
    or spans two or more lines. Tables are never empty.

    Args:
        elements: Classified elements in line order.

    Returns:
        Tables in line order.
    """
    tables: list[Table] = []
    run: list[StructuralElement] = []

    def flush() -> None:
        if run and (
            len(run) >= 2 or any(r.role == StructuralRole.TABLE_ROW for r in run)
        ):
            tables.append(
                Table(
                    rows=tuple(run),
                    column_count=_column_count(run),
                    confidence=_table_confidence(run),
                )
            )
        run.clear()

    for element in elements:
        if element.role not in TABLE_ROLES:
            flush()
            continue
        if run and element.source_line_index != run[-1].source_line_index + 1:
            flush()
        run.append(element)
    flush()
    return tables


def _summarize(
    items: list[StructuralElement], counts: dict[str, int]
) -> dict[str, Any]:
    item_count = 0
    total_value = 0.0
    currencies: Counter[str] = Counter()
    for item in items:
        quantity = item.fields.quantity or 1
        item_count += quantity
        total_value += (item.fields.price or 0.0) * quantity
        if item.fields.currency:
            currencies[item.fields.currency] += 1

    return {
        "total_structures": sum(counts.values()),
        "structure_types": counts,
        "item_count": item_count,
        "total_value": round(total_value, 2),
        "currency": currencies.most_common(1)[0][0] if currencies else None,
    }


class StructureAnalyzer:
    """Detects tables, item lists, and price lines in recognized text."""

    def detect(self, text: str) -> StructureResult:
        """Classify every non-blank line and group tables.

        Args:
            text: Consensus OCR text.

        Returns:
            All detected structures with an overall confidence and summary.

        Raises:
            StructureAnalysisError: If analysis fails unexpectedly.
        """
        try:
            elements = [
                classify_line(line, index)
                for index, line in enumerate(text.splitlines())
                if line.strip()
            ]
            tables = group_tables(elements)
        except (re.error, ValueError, IndexError, TypeError) as exc:
            raise StructureAnalysisError(f"Structure detection failed: {exc}") from exc

        by_role: dict[StructuralRole, list[StructuralElement]] = {
            role: [e for e in elements if e.role == role] for role in StructuralRole
        }
        lists = by_role[StructuralRole.LIST_ITEM]
        items = by_role[StructuralRole.PRICED_ITEM]
        prices = by_role[StructuralRole.PRICE]
        mixed = by_role[StructuralRole.UNCLASSIFIED]

        scores = [t.confidence for t in tables] + [
            e.role_confidence for e in lists + items + prices + mixed
        ]
        confidence = sum(scores) / len(scores) if scores else 0.0

        counts = {
            "tables": len(tables),
            "lists": len(lists),
            "items": len(items),
            "prices": len(prices),
            "mixed": len(mixed),
        }
        summary = _summarize(items, counts)

        logger.info(
            "Structure detection: %d lines, %d tables, %d items, %d prices",
            len(elements),
            len(tables),
            len(items),
            len(prices),
        )
        return StructureResult(
            elements=tuple(elements),
            tables=tuple(tables),
            lists=tuple(lists),
            items=tuple(items),
            prices=tuple(prices),
            mixed=tuple(mixed),
            confidence=confidence,
            summary=summary,
        )
