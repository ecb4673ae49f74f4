"""Tesseract OCR engine wrapper with word-level confidence.

Provides a pooled Tesseract worker that extracts text and an average
word confidence from an image file, and the ``tesseract`` recognition
engine built on top of it.
"""

from dataclasses import dataclass
from pathlib import Path

import pytesseract
from PIL import Image

from src.ocr.base import RecognitionEngine, SourceImage
from src.ocr.cache import RecognitionCache
from src.ocr.worker_pool import WorkerPool
from src.utils.config import OCRConfig
from src.utils.logger import get_logger

logger = get_logger(__name__)

FALLBACK_LANGUAGE = "eng"


@dataclass
class OCRResult:
    """Complete OCR result for one image."""

    text: str
    language: str
    confidence: float
    word_count: int


class TesseractEngine:
    """Wrapper around Tesseract OCR for receipt text extraction.

    Args:
        tesseract_cmd: Path to the Tesseract executable.
            If ``None``, uses the system default.
        languages: Requested language packs joined with ``+``.
        oem: Tesseract OCR engine mode.
        psm: Tesseract page segmentation mode.
        timeout_s: Per-call timeout in seconds.
    """

    def __init__(
        self,
        tesseract_cmd: str | None = None,
        languages: str = FALLBACK_LANGUAGE,
        oem: int = 3,
        psm: int = 6,
        timeout_s: float = 300.0,
    ) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.requested_languages = languages
        self.oem = oem
        self.psm = psm
        self.timeout_s = timeout_s
        self._languages: str | None = None

    @property
    def languages(self) -> str:
        """Requested languages that are actually installed, joined with ``+``."""
        if self._languages is None:
            self._languages = self.resolve_languages()
        return self._languages

    def resolve_languages(self) -> str:
        """Intersect the requested languages with the installed packs.

        Missing packs are dropped with a warning. When none of the
        requested packs is installed, English is used.

        Returns:
            Language string suitable for Tesseract's ``-l`` option.
        """
        requested = [lang for lang in self.requested_languages.split("+") if lang]
        try:
            installed = set(pytesseract.get_languages(config=""))
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError) as exc:
            logger.warning("Could not list Tesseract languages: %s", exc)
            return "+".join(requested) or FALLBACK_LANGUAGE

        available = [lang for lang in requested if lang in installed]
        missing = [lang for lang in requested if lang not in installed]
        if missing:
            logger.warning("Tesseract language packs not installed: %s", missing)
        if not available:
            logger.warning(
                "No requested language installed, using %s", FALLBACK_LANGUAGE
            )
            return FALLBACK_LANGUAGE
        return "+".join(available)

    def extract_text(self, image_path: Path) -> OCRResult:
        """Extract text and mean word confidence from an image file.

        Args:
            image_path: Image to recognize.

        Returns:
            OCRResult containing full text and confidence in ``[0, 1]``.
        """
        lang = self.languages
        config = f"--oem {self.oem} --psm {self.psm}"

        with Image.open(image_path) as pil_image:
            text = pytesseract.image_to_string(
                pil_image, lang=lang, config=config, timeout=self.timeout_s
            )
            data = pytesseract.image_to_data(
                pil_image,
                lang=lang,
                config=config,
                output_type=pytesseract.Output.DICT,
                timeout=self.timeout_s,
            )

        total_conf = 0.0
        word_count = 0
        for i in range(len(data["text"])):
            conf = float(data["conf"][i])
            if conf > 0 and str(data["text"][i]).strip():
                total_conf += conf
                word_count += 1

        avg_conf = (total_conf / word_count / 100.0) if word_count > 0 else 0.0

        logger.info(
            "OCR extracted %d words from %s with average confidence %.2f",
            word_count,
            image_path.name,
            avg_conf,
        )
        return OCRResult(
            text=text,
            language=lang,
            confidence=avg_conf,
            word_count=word_count,
        )


def make_tesseract_pool(config: OCRConfig) -> WorkerPool[TesseractEngine]:
    """Create a worker pool of Tesseract engines configured from ``config``."""
    return WorkerPool(
        lambda: TesseractEngine(
            tesseract_cmd=config.tesseract_cmd,
            languages=config.languages,
            oem=config.oem,
            psm=config.psm,
            timeout_s=config.timeout_s,
        ),
        size=config.max_workers,
    )


class TesseractAdapter(RecognitionEngine):
    """Recognition engine backed by pooled ``pytesseract`` workers.

    Args:
        pool: Pool of Tesseract workers.
        cache: Optional shared recognition cache.
    """

    engine_id = "tesseract"

    def __init__(
        self,
        pool: WorkerPool[TesseractEngine],
        cache: RecognitionCache | None = None,
    ) -> None:
        super().__init__(cache)
        self.pool = pool

    def _recognize(self, source: SourceImage) -> tuple[str, float, str]:
        with self.pool.checkout() as worker:
            result = worker.extract_text(source.path)
        return result.text, result.confidence, "original"
