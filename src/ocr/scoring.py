"""Scores used to rank recognition outputs by how receipt-like they look."""

RECEIPT_KEYWORDS: tuple[str, ...] = (
    "total",
    "amount",
    "price",
    "invoice",
    "receipt",
    "bill",
    "valor",
    "preço",
    "nota",
    "cupom",
    "fatura",
    "date",
    "data",
    "time",
    "hora",
    "store",
    "loja",
    "payment",
    "pagamento",
    "card",
    "cartão",
    "cash",
    "dinheiro",
    "item",
    "produto",
    "quantity",
    "quantidade",
    "subtotal",
)


def keyword_count(text: str) -> int:
    """Count distinct receipt keywords occurring in ``text`` (case-insensitive)."""
    lowered = text.lower()
    return sum(1 for keyword in RECEIPT_KEYWORDS if keyword in lowered)


def keyword_score(text: str) -> float:
    """Fraction of receipt keywords present in ``text``."""
    return keyword_count(text) / len(RECEIPT_KEYWORDS)


def variant_score(text: str, confidence: float) -> float:
    """Rank the OCR output of one preprocessed variant.

    Confidence plus a length bonus capped at 0.2, a 0.3 penalty for
    outputs shorter than 10 characters, and 0.05 per receipt keyword
    capped at 0.2.

    Args:
        text: Recognized text.
        confidence: Engine confidence in ``[0, 1]``.

    Returns:
        Unbounded ranking score; higher is better.
    """
    length = len(text.strip())
    score = confidence + min(length / 100, 0.2)
    if length < 10:
        score -= 0.3
    score += min(keyword_count(text) * 0.05, 0.2)
    return score


def consensus_score(text: str, confidence: float) -> float:
    """Rank one engine's result when choosing the consensus text.

    ``0.3 * min(len / 1000, 0.3) + 0.4 * confidence + 0.3 * keyword_score``.
    """
    length_score = min(len(text) / 1000, 0.3)
    return 0.3 * length_score + 0.4 * confidence + 0.3 * keyword_score(text)
