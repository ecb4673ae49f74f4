"""Rule-based field extraction using regex patterns.

Extracts invoice numbers, dates, amounts, store names, payment methods,
line items, tax fields, and cashback from receipt OCR text. Rules are plain data:
ordered lists of patterns where the first usable match wins, so support
for a new locale is added by appending entries to a table.
"""

import math
import re
from dataclasses import dataclass
from typing import Any

from src.extraction.date_parser import DateFormat, parse_date
from src.utils.logger import get_logger

logger = get_logger(__name__)

_I = re.IGNORECASE
_NUM = r"(\d+(?:[.,]\d{3})*(?:[.,]\d{1,2})?)"
_TOTAL_KW = r"(?:TOTAL\s+FINAL|VALOR\s+TOTAL|TOTAL|VALOR)"


@dataclass
class ExtractedField:
    """A field value extracted by a regex rule."""

    field_name: str
    value: Any
    raw: str
    rule_index: int
    start_pos: int
    end_pos: int
    tag: str | None = None


# Pattern definitions: (regex, flags)
INVOICE_RULES: list[tuple[str, int]] = [
    (
        r"\b(?:NOTA\s+FISCAL|NOTA|CUPOM\s+FISCAL|CUPOM|NFC-?e|NF-?e|NF"
        r"|N[ÚU]MERO|NUMBER)"
        r"[\s:.#º°]*(\d+)",
        _I,
    ),
    (r"\bN[º°o]\.?[\s:#]*(\d+)", _I),
    (
        r"\b(?:INVOICE|BILL|RECEIPT)\b\s*(?:NO\.?|NUM\.?|NUMBER|N[º°])?[\s#:.]*(\d+)",
        _I,
    ),
    (r"#\s*(\d{6,})", 0),
    (r"(?<!\d)(\d{8,})(?!\d)", 0),
    (r"\b(?:DOC|DOCUMENT|DOCUMENTO)\b[\s:.#]*(\d+)", _I),
    (r"\b(?:REF|REFERENCE|REFER[ÊE]NCIA)\b[\s:.#]*(\d+)", _I),
    (r"\b(?:ID|IDENTIFICADOR)\b[\s:.#]*(\d+)", _I),
    (r"\b(?:TRANS|TRANSACTION|TRANSA[ÇC][ÃA]O)\b[\s:.#]*(\d+)", _I),
    (r"\b(?:NOTA|CUPOM|NF)\b[\s:.#]*((?=[A-Z-]*\d)[A-Z0-9-]{6,})", _I),
    (r"\b(?:INVOICE|BILL)\b[\s:.#]*((?=[A-Z-]*\d)[A-Z0-9-]{6,})", _I),
]

_DMY = r"(?<!\d)(\d{1,2}/\d{1,2}/\d{2,4})(?!\d)"

# (regex, format tag, flags); a captured time is group 2 when present.
DATE_RULES: list[tuple[str, DateFormat, int]] = [
    (r"\b(?:DATA|DATE)\b[\s:]*" + _DMY + r"\s+(\d{1,2}:\d{2})", DateFormat.DMY_HM, _I),
    (_DMY + r"\s+(\d{1,2}:\d{2})", DateFormat.DMY_HM, 0),
    (r"\b(?:DATA|DATE)\b[\s:]*" + _DMY, DateFormat.DMY, _I),
    (_DMY, DateFormat.DMY, 0),
    (r"\bDATE\b[\s:]*(?<!\d)(\d{1,2}/\d{1,2}/\d{4})(?!\d)", DateFormat.MDY, _I),
    (r"(?<!\d)(\d{4}-\d{1,2}-\d{1,2})(?!\d)", DateFormat.ISO, 0),
    (r"(?<!\d)(\d{1,2}-\d{1,2}-\d{2,4})(?!\d)", DateFormat.DMY_DASH, 0),
    (r"(?<!\d)(\d{1,2}\.\d{1,2}\.\d{2,4})(?!\d)", DateFormat.DMY_DOT, 0),
    (r"(?<!\d)(\d{4}/\d{1,2}/\d{1,2})(?!\d)", DateFormat.YMD_SLASH, 0),
]

# (regex, currency, flags); ordered by currency, generic totals last.
AMOUNT_RULES: list[tuple[str, str, int]] = [
    (rf"\b{_TOTAL_KW}\b[\s:]*R\$\s*{_NUM}", "BRL", _I),
    (rf"R\$\s*{_NUM}\s*\b(?:TOTAL|FINAL)\b", "BRL", _I),
    (rf"R\$\s*{_NUM}", "BRL", 0),
    (rf"\b(?:REAIS|REAL|BRL)\b[\s:]*{_NUM}", "BRL", _I),
    (rf"\b(?:TOTAL|AMOUNT|SUM)\b[\s:]*(?:US)?\$\s*{_NUM}", "USD", _I),
    (rf"(?<!R)\$\s*{_NUM}\s*\b(?:TOTAL|AMOUNT)\b", "USD", _I),
    (rf"\bUSD\b[\s:]*{_NUM}", "USD", _I),
    (rf"\bDOLLARS?\b[\s:]*{_NUM}", "USD", _I),
    (rf"\b(?:TOTAL|AMOUNT)\b[\s:]*€\s*{_NUM}", "EUR", _I),
    (rf"€\s*{_NUM}\s*\b(?:TOTAL)\b", "EUR", _I),
    (rf"\bEUR\b[\s:]*{_NUM}", "EUR", _I),
    (rf"\b(?:TOTAL|AMOUNT)\b[\s:]*£\s*{_NUM}", "GBP", _I),
    (rf"£\s*{_NUM}\s*\b(?:TOTAL)\b", "GBP", _I),
    (rf"\bGBP\b[\s:]*{_NUM}", "GBP", _I),
    (rf"\b(?:TOTAL|AMOUNT)\b[\s:]*¥\s*{_NUM}", "JPY", _I),
    (rf"¥\s*{_NUM}\s*\b(?:TOTAL)\b", "JPY", _I),
    (rf"\bJPY\b[\s:]*{_NUM}", "JPY", _I),
    (rf"\b(?:TOTAL|AMOUNT|SUM)\b[\s:]*{_NUM}", "UNKNOWN", _I),
    (rf"{_NUM}\s*\b(?:TOTAL|AMOUNT)\b", "UNKNOWN", _I),
]

PAYMENT_LABEL_RULE = (
    r"\b(?:FORMA\s+DE\s+PAGAMENTO|PAGAMENTO|PAYMENT\s+METHOD|PAYMENT)\b[\s:]*([^\n]+)"
)

# (regex, canonical method); IGNORECASE applies to every entry.
PAYMENT_KEYWORDS: list[tuple[str, str]] = [
    (
        r"\b(?:CART[ÃA]O|CARD|CREDIT|DEBIT|CR[ÉE]DITO|D[ÉE]BITO|VISA|MASTERCARD)\b",
        "card",
    ),
    (r"\b(?:DINHEIRO|CASH|MOEDA|MONEY)\b", "cash"),
    (r"\bPIX\b", "pix"),
    (r"\b(?:BOLETO|BANK\s+SLIP|BANKING\s+BILLET)\b", "boleto"),
    (r"\b(?:BANK\s+TRANSFER|TRANSFER[ÊE]NCIA|TRANSFER)\b", "bank_transfer"),
    (r"\b(?:VALE|VOUCHER|TICKET)\b", "voucher"),
    (r"\b(?:CHEQUE|CHECK)\b", "check"),
]

ITEM_RULE = r"^\s*(\d{1,4})\s+(.+?)\s+(\d+(?:[.,]\d{3})*[.,]\d{2})\s*$"

TAX_RULES: list[tuple[str, str]] = [
    ("icms", rf"\bICMS\b[^\d\n]*{_NUM}"),
    ("ipi", rf"\bIPI\b[^\d\n]*{_NUM}"),
    ("iss", rf"\bISS\b[^\d\n]*{_NUM}"),
    ("vat", rf"\b(?:VAT|IVA)\b[^\d\n]*{_NUM}"),
]

_CASHBACK_NUM = r"[:\s]*(?:R\$)?\s*(\d+(?:[.,]\d{3})*[.,]\d{2})"

CASHBACK_RULES: list[str] = [
    rf"\bCASH\s*-?\s*BACK\b{_CASHBACK_NUM}",
    rf"\bREEMBOLSO\b{_CASHBACK_NUM}",
    rf"\bDEVOLU[ÇC][ÃA]O\b{_CASHBACK_NUM}",
    rf"\bCB\b{_CASHBACK_NUM}",
]

# Lines that can never be a store name.
STORE_SKIP_RULES: list[str] = [
    r"\b(?:CNPJ|CPF|IE|RUA|AV|AVENIDA|CEP|ENDERE[ÇC]O|ADDRESS|STREET)\b",
    r"\d{2}\.?\d{3}\.?\d{3}/?\d{4}-?\d{2}",
    r"\b(?:PHONE|TEL|TELEFONE|FONE)\b",
    r"\b(?:NOTA|CUPOM|RECEIPT|INVOICE|BILL|FISCAL)\b",
]
_NUMERIC_LINE_RE = re.compile(r"^[\d\s.,:/\-()#]+$")
_LETTER_RE = re.compile(r"[^\W\d_]")
_CURRENCY_GLYPH_RE = re.compile(r"R\$|US\$|[$€£¥]")


def normalize_amount(raw: str) -> float | None:
    """Convert an amount with ``.``/``,`` separators to a float.

    The last separator is decimal when followed by one or two digits and
    groups thousands when followed by three: ``"45,90"`` is 45.9,
    ``"1.234,56"`` is 1234.56, and ``"1,234"`` is 1234.

    Args:
        raw: Amount text as captured.

    Returns:
        The numeric value, or ``None`` if the text is not a finite number.
    """
    text = raw.strip().replace(" ", "")
    if not text:
        return None
    last_sep = max(text.rfind(","), text.rfind("."))
    if last_sep == -1:
        digits, decimals = text, ""
    else:
        decimals = text[last_sep + 1 :]
        digits = text[:last_sep]
        if len(decimals) == 3:
            digits, decimals = text, ""
    digits = re.sub(r"[.,]", "", digits)
    if not digits.isdigit() or (decimals and not decimals.isdigit()):
        return None
    value = float(f"{digits}.{decimals}") if decimals else float(digits)
    return value if math.isfinite(value) else None


def normalize_payment_method(value: str) -> str | None:
    """Map free payment text to a canonical method, or ``None`` if unrecognized."""
    for pattern, method in PAYMENT_KEYWORDS:
        if re.search(pattern, value, _I):
            return method
    return None


class RuleExtractor:
    """Regex-based field extractor for receipt text.

    Every ``extract_*`` method walks its rule table in order and returns
    the first match that yields a usable value.
    """

    def __init__(self, store_name_scan_lines: int = 8) -> None:
        self.store_name_scan_lines = store_name_scan_lines
        self._store_skip = [re.compile(p, _I) for p in STORE_SKIP_RULES]

    def extract_invoice_number(self, text: str) -> ExtractedField | None:
        """Find the receipt or invoice number."""
        for index, (pattern, flags) in enumerate(INVOICE_RULES):
            match = re.search(pattern, text, flags)
            if match:
                return ExtractedField(
                    field_name="invoice_number",
                    value=match.group(1).strip(),
                    raw=match.group(0),
                    rule_index=index,
                    start_pos=match.start(),
                    end_pos=match.end(),
                )
        return None

    def extract_date(self, text: str) -> ExtractedField | None:
        """Find the first date that parses under its rule's format tag.

        Returns:
            Field whose value is a ``datetime`` and whose tag is the format,
            or ``None`` when no rule yields a valid date.
        """
        for index, (pattern, fmt, flags) in enumerate(DATE_RULES):
            for match in re.finditer(pattern, text, flags):
                captured = " ".join(g for g in match.groups() if g)
                parsed = parse_date(captured, fmt)
                if parsed is not None:
                    return ExtractedField(
                        field_name="date",
                        value=parsed,
                        raw=captured,
                        rule_index=index,
                        start_pos=match.start(),
                        end_pos=match.end(),
                        tag=str(fmt),
                    )
        return None

    def extract_amount(self, text: str) -> ExtractedField | None:
        """Find the purchase total; the first positive match wins.

        Returns:
            Field whose value is a float and whose tag is the currency code.
        """
        for index, (pattern, currency, flags) in enumerate(AMOUNT_RULES):
            for match in re.finditer(pattern, text, flags):
                amount = normalize_amount(match.group(1))
                if amount is not None and amount > 0:
                    return ExtractedField(
                        field_name="amount",
                        value=amount,
                        raw=match.group(0),
                        rule_index=index,
                        start_pos=match.start(),
                        end_pos=match.end(),
                        tag=currency,
                    )
        return None

    def extract_store_name(self, text: str) -> ExtractedField | None:
        """Pick the first plausible store name among the leading lines.

        Tax IDs, addresses, phone numbers, receipt headers, numeric lines,
        and lines shorter than three characters are skipped.
        """
        lines = text.splitlines()[: self.store_name_scan_lines]
        for index, line in enumerate(lines):
            candidate = " ".join(line.split())
            if len(candidate) < 3 or not _LETTER_RE.search(candidate):
                continue
            if _NUMERIC_LINE_RE.match(candidate):
                continue
            if any(rule.search(candidate) for rule in self._store_skip):
                continue
            return ExtractedField(
                field_name="store_name",
                value=candidate,
                raw=line,
                rule_index=index,
                start_pos=0,
                end_pos=len(line),
            )
        return None

    def extract_payment_method(self, text: str) -> str:
        """Return the canonical payment method, or ``"unknown"``."""
        label = re.search(PAYMENT_LABEL_RULE, text, _I)
        if label:
            method = normalize_payment_method(label.group(1))
            if method:
                return method
        return normalize_payment_method(text) or "unknown"

    def extract_items(self, text: str) -> list[tuple[int, str, float]]:
        """Find ``quantity description price`` lines.

        Returns:
            List of ``(quantity, description, price)`` tuples in text order.
        """
        items: list[tuple[int, str, float]] = []
        for match in re.finditer(ITEM_RULE, text, re.MULTILINE):
            description = " ".join(_CURRENCY_GLYPH_RE.sub(" ", match.group(2)).split())
            price = normalize_amount(match.group(3))
            if price is None or not _LETTER_RE.search(description):
                continue
            items.append((int(match.group(1)), description, price))
        return items

    def extract_tax(self, text: str) -> dict[str, float]:
        """Find tax amounts keyed by tax name (icms, ipi, iss, vat)."""
        taxes: dict[str, float] = {}
        for name, pattern in TAX_RULES:
            match = re.search(pattern, text, _I)
            if match:
                value = normalize_amount(match.group(1))
                if value is not None:
                    taxes[name] = value
        return taxes

    def extract_cashback(self, text: str) -> ExtractedField | None:
        """Find a cashback or refund amount; the first positive match wins."""
        for index, pattern in enumerate(CASHBACK_RULES):
            for match in re.finditer(pattern, text, _I):
                amount = normalize_amount(match.group(1))
                if amount is not None and amount > 0:
                    return ExtractedField(
                        field_name="cashback",
                        value=amount,
                        raw=match.group(0),
                        rule_index=index,
                        start_pos=match.start(),
                        end_pos=match.end(),
                    )
        return None
