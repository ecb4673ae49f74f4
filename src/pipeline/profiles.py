"""Processing profiles trading speed for accuracy."""

from enum import StrEnum
from pathlib import Path

from src.utils.logger import get_logger

logger = get_logger(__name__)

_LARGE_FILE_BYTES = 10 * 1024 * 1024
_HIGH_RES_FILE_BYTES = 5 * 1024 * 1024


class ProcessingProfile(StrEnum):
    """Which pipeline stages run for a request.

    ``fast`` recognizes with a single engine; ``balanced`` votes across the
    engine ensemble; ``accurate`` adds structural analysis; ``maximum``
    also merges tables and the price breakdown into the record.
    """

    FAST = "fast"
    BALANCED = "balanced"
    ACCURATE = "accurate"
    MAXIMUM = "maximum"


def recommend_profile(path: Path) -> ProcessingProfile:
    """Suggest a profile from file size and type.

    Large files and PDFs get ``fast``, high-resolution images get
    ``maximum``, and everything else ``balanced``.

    Args:
        path: Input file.

    Returns:
        The recommended profile. Unreadable files get ``balanced``.
    """
    try:
        size = path.stat().st_size
    except OSError as exc:
        logger.debug("Cannot stat %s for profile recommendation: %s", path, exc)
        return ProcessingProfile.BALANCED

    if size > _LARGE_FILE_BYTES or path.suffix.lower() == ".pdf":
        return ProcessingProfile.FAST
    if size > _HIGH_RES_FILE_BYTES:
        return ProcessingProfile.MAXIMUM
    return ProcessingProfile.BALANCED
