"""Input file checks applied before any recognition work."""

from pathlib import Path

from PIL import Image, UnidentifiedImageError

from src.utils.config import FileConfig
from src.utils.errors import FileValidationError
from src.utils.logger import get_logger

logger = get_logger(__name__)


class FileValidator:
    """Rejects unsupported, oversized, or badly sized input files.

    Args:
        config: Allowed extensions, size limit, and pixel bounds.
    """

    def __init__(self, config: FileConfig | None = None) -> None:
        self.config = config or FileConfig()

    def validate(self, path: Path) -> None:
        """Check that a file can be processed.

        PDFs are checked for type and size only; images are also opened
        with Pillow to check their pixel dimensions.

        Args:
            path: Input file.

        Raises:
            FileValidationError: If the file is missing, has an unsupported
                extension, is too large, or has out-of-range dimensions.
        """
        if not path.is_file():
            raise FileValidationError(f"File not found: {path}")

        ext = path.suffix.lower()
        if ext not in self.config.extensions:
            supported = ", ".join(self.config.extensions)
            raise FileValidationError(
                f"Unsupported file format: {ext or '(none)'}. "
                f"Supported formats: {supported}"
            )

        size = path.stat().st_size
        if size > self.config.max_size_bytes:
            raise FileValidationError(
                f"File too large: {size} bytes. "
                f"Maximum allowed: {self.config.max_size_bytes} bytes"
            )
        if size == 0:
            raise FileValidationError(f"File is empty: {path.name}")

        if ext == ".pdf":
            return

        try:
            with Image.open(path) as image:
                width, height = image.size
        except (UnidentifiedImageError, OSError) as exc:
            raise FileValidationError(f"Cannot read image {path.name}: {exc}") from exc

        cfg = self.config
        if width < cfg.min_width or height < cfg.min_height:
            raise FileValidationError(
                f"Image too small: {width}x{height}. "
                f"Minimum: {cfg.min_width}x{cfg.min_height}"
            )
        if width > cfg.max_width or height > cfg.max_height:
            raise FileValidationError(
                f"Image too large: {width}x{height}. "
                f"Maximum: {cfg.max_width}x{cfg.max_height}"
            )
        logger.debug("Validated %s (%dx%d, %d bytes)", path.name, width, height, size)
