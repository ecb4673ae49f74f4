"""Common interface for recognition engines.

Every engine exposes ``recognize(source) -> RecognitionResult`` and never
raises: failures come back as results carrying an ``error`` message, which
downstream consumers treat as absent data rather than as empty text.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from src.ocr.cache import RecognitionCache, SourceFingerprint
from src.utils.logger import get_logger

logger = get_logger(__name__)


def clamp_confidence(value: float) -> float:
    """Clamp a confidence score to ``[0, 1]``, mapping NaN to 0."""
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, float(value)))


@dataclass(frozen=True)
class SourceImage:
    """An input image handed to engines. Engines never modify the file."""

    path: Path
    fingerprint: SourceFingerprint | None = None

    @classmethod
    def from_path(cls, path: Path) -> "SourceImage":
        """Build a source image with its content fingerprint."""
        return cls(path=path, fingerprint=SourceFingerprint.of(path))


@dataclass(frozen=True)
class RecognitionResult:
    """Output of one engine run on one image."""

    text: str
    confidence: float
    engine_id: str
    technique: str = "original"
    error: str | None = None

    @property
    def ok(self) -> bool:
        """Whether the result carries usable text."""
        return self.error is None and bool(self.text.strip())

    @classmethod
    def failure(
        cls, engine_id: str, error: str, technique: str = "original"
    ) -> "RecognitionResult":
        """Build an errored result.

        Args:
            engine_id: Engine that failed.
            error: Human-readable failure reason.
            technique: Preprocessing technique that was being recognized.

        Returns:
            Result with empty text, zero confidence, and ``error`` set.
        """
        return cls(
            text="",
            confidence=0.0,
            engine_id=engine_id,
            technique=technique,
            error=error,
        )


class RecognitionEngine(ABC):
    """Base class for OCR engines.

    Subclasses implement ``_recognize``; this class adds caching, confidence
    clamping, and conversion of exceptions into errored results.

    Args:
        cache: Optional shared recognition cache.
    """

    engine_id: str = "engine"

    def __init__(self, cache: RecognitionCache | None = None) -> None:
        self.cache = cache

    def recognize(self, source: SourceImage) -> RecognitionResult:
        """Recognize text in an image.

        Args:
            source: Image to recognize.

        Returns:
            Recognition result. Never raises; failures set ``error``.
        """
        use_cache = self.cache is not None and source.fingerprint is not None
        if use_cache:
            cached = self.cache.get(self.engine_id, source.fingerprint)
            if cached is not None:
                logger.debug("Cache hit for %s on %s", self.engine_id, source.path.name)
                return cached

        try:
            text, confidence, technique = self._recognize(source)
        except Exception as exc:
            logger.warning(
                "Engine %s failed on %s: %s", self.engine_id, source.path.name, exc
            )
            return RecognitionResult.failure(self.engine_id, str(exc))

        result = RecognitionResult(
            text=text,
            confidence=clamp_confidence(confidence),
            engine_id=self.engine_id,
            technique=technique,
        )
        if use_cache and result.ok:
            result = self.cache.put_if_absent(
                self.engine_id, source.fingerprint, result
            )
        return result

    @abstractmethod
    def _recognize(self, source: SourceImage) -> tuple[str, float, str]:
        """Run the engine.

        Returns:
            Tuple of (text, confidence, technique).
        """
        raise NotImplementedError

    def close(self) -> None:
        """Release engine resources. The default engine holds none."""
