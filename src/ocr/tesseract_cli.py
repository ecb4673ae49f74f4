"""Tesseract recognition through the ``tesseract`` command-line binary.

The binary's plain-text output carries no confidence, so results are
reported with a fixed provisional confidence taken from configuration.
"""

import subprocess

from src.ocr.base import RecognitionEngine, SourceImage
from src.ocr.cache import RecognitionCache
from src.utils.config import OCRConfig
from src.utils.errors import RecognitionError
from src.utils.logger import get_logger

logger = get_logger(__name__)

_STDERR_TAIL = 2000


class TesseractCliEngine(RecognitionEngine):
    """Recognition engine invoking ``tesseract IMAGE stdout``.

    Args:
        config: OCR configuration (binary path, languages, modes, timeout).
        cache: Optional shared recognition cache.
        languages: Resolved language string; defaults to the configured one.
    """

    engine_id = "tesseract-cli"

    def __init__(
        self,
        config: OCRConfig,
        cache: RecognitionCache | None = None,
        languages: str | None = None,
    ) -> None:
        super().__init__(cache)
        self.config = config
        self.languages = languages or config.languages

    def build_command(self, source: SourceImage) -> list[str]:
        """Build the argument vector for one recognition call."""
        return [
            self.config.tesseract_cmd or "tesseract",
            str(source.path),
            "stdout",
            "-l",
            self.languages,
            "--oem",
            str(self.config.oem),
            "--psm",
            str(self.config.psm),
            "-c",
            "preserve_interword_spaces=1",
        ]

    def _recognize(self, source: SourceImage) -> tuple[str, float, str]:
        cmd = self.build_command(source)
        try:
            proc = subprocess.run(
                cmd,
                check=False,
                capture_output=True,
                text=True,
                timeout=self.config.timeout_s,
            )
        except FileNotFoundError as exc:
            raise RecognitionError(
                self.engine_id, f"{cmd[0]} binary not found on PATH"
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise RecognitionError(
                self.engine_id, f"timed out after {self.config.timeout_s:.0f}s"
            ) from exc

        if proc.returncode != 0:
            raise RecognitionError(
                self.engine_id,
                f"exit code {proc.returncode}: {proc.stderr[-_STDERR_TAIL:].strip()}",
            )

        text = proc.stdout
        logger.info(
            "tesseract CLI recognized %d characters from %s",
            len(text.strip()),
            source.path.name,
        )
        return text, self.config.provisional_confidence, "original"
