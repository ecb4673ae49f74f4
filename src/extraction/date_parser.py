"""Date parsing for receipt dates tagged with an explicit format.

Each date rule declares the layout of what it captures (day first,
month first, or ISO order), so parsing never has to guess.
"""

from datetime import datetime
from enum import StrEnum

from src.utils.logger import get_logger

logger = get_logger(__name__)


class DateFormat(StrEnum):
    """Layouts a date rule can capture."""

    DMY_HM = "DD/MM/YYYY HH:mm"
    DMY = "DD/MM/YYYY"
    MDY = "MM/DD/YYYY"
    ISO = "YYYY-MM-DD"
    DMY_DASH = "DD-MM-YYYY"
    DMY_DOT = "DD.MM.YYYY"
    YMD_SLASH = "YYYY/MM/DD"


# (separator, order of day/month/year parts)
_LAYOUTS: dict[DateFormat, tuple[str, str]] = {
    DateFormat.DMY_HM: ("/", "dmy"),
    DateFormat.DMY: ("/", "dmy"),
    DateFormat.MDY: ("/", "mdy"),
    DateFormat.ISO: ("-", "ymd"),
    DateFormat.DMY_DASH: ("-", "dmy"),
    DateFormat.DMY_DOT: (".", "dmy"),
    DateFormat.YMD_SLASH: ("/", "ymd"),
}


def _expand_year(year: int) -> int:
    return 2000 + year if year < 100 else year


def parse_date(raw: str, fmt: DateFormat | str) -> datetime | None:
    """Parse a captured date string according to its format tag.

    Two-digit years map to 20xx. A trailing ``HH:mm`` is honoured for the
    ``DD/MM/YYYY HH:mm`` format.

    Args:
        raw: Captured text, e.g. ``"05/03/2024 14:30"``.
        fmt: Format tag of the rule that captured it.

    Returns:
        The parsed datetime, or ``None`` if the text is not a valid date
        in that format.
    """
    try:
        fmt = DateFormat(fmt)
    except ValueError:
        logger.warning("Unknown date format tag: %s", fmt)
        return None

    parts = raw.strip().split()
    if not parts:
        return None
    date_part = parts[0]
    time_part = parts[1] if fmt is DateFormat.DMY_HM and len(parts) > 1 else None

    separator, order = _LAYOUTS[fmt]
    pieces = date_part.split(separator)
    if len(pieces) != 3 or not all(p.isdigit() for p in pieces):
        return None

    values = dict(zip(order, (int(p) for p in pieces)))
    hour = minute = 0
    if time_part:
        hour_text, _, minute_text = time_part.partition(":")
        if not (hour_text.isdigit() and minute_text.isdigit()):
            return None
        hour, minute = int(hour_text), int(minute_text)

    try:
        return datetime(
            _expand_year(values["y"]), values["m"], values["d"], hour, minute
        )
    except ValueError:
        return None
