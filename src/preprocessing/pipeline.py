"""Multi-technique image preprocessing for receipt OCR.

Produces several independently preprocessed variants of one source image
so that recognition can be attempted on each. Variant files live in a
private temporary directory owned by a ``VariantSet``, which removes them
when it is closed.
"""

import shutil
import tempfile
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import cv2
import numpy as np

from src.utils.config import PreprocessingConfig
from src.utils.errors import TransformError
from src.utils.logger import get_logger

from .filters import (
    DENOISE_KERNEL,
    clip_normalize,
    convolve,
    linear,
    normalize,
    sharpen,
    to_gray,
    upscale,
)

logger = get_logger(__name__)

ORIGINAL_TECHNIQUE = "original"


@dataclass(frozen=True)
class QualityMetrics:
    """Image quality measurements for a preprocessed variant."""

    sharpness: float
    contrast: float


@dataclass(frozen=True)
class ImageVariant:
    """One preprocessed image written to disk.

    ``owned`` variants were created by the preprocessor and are deleted
    when their ``VariantSet`` closes; the original image never is.
    """

    path: Path
    technique: str
    owned: bool = True
    metrics: QualityMetrics | None = None


def calculate_sharpness(image: np.ndarray) -> float:
    """Calculate image sharpness using Laplacian variance.

    Args:
        image: Input image (BGR or grayscale).

    Returns:
        Sharpness score (higher means sharper).
    """
    return float(cv2.Laplacian(to_gray(image), cv2.CV_64F).var())


def calculate_contrast(image: np.ndarray) -> float:
    """Calculate image contrast as the standard deviation of pixel intensities.

    Args:
        image: Input image (BGR or grayscale).

    Returns:
        Contrast score (higher means more contrast).
    """
    return float(to_gray(image).std())


@dataclass
class VariantSet:
    """Scoped collection of image variants.

    Use as a context manager; the temporary directory holding owned
    variants is removed on exit, whether or not the block raised.
    """

    variants: list[ImageVariant]
    workdir: Path | None = None
    diagnostics: list[str] = field(default_factory=list)

    def __enter__(self) -> list[ImageVariant]:
        return self.variants

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Delete every owned variant file."""
        if self.workdir is None:
            return
        shutil.rmtree(self.workdir, ignore_errors=True)
        logger.debug("Removed variant directory %s", self.workdir)
        self.workdir = None


class Preprocessor:
    """Produces preprocessed variants of a receipt image.

    Techniques are independent and deterministic: the same input always
    yields the same pixels for a given technique. A technique that fails
    is dropped; if every technique fails the original image is returned
    as the single variant.

    Args:
        config: Preprocessing configuration selecting techniques and parameters.
    """

    def __init__(self, config: PreprocessingConfig | None = None) -> None:
        self.config = config or PreprocessingConfig()
        self._techniques: dict[str, Callable[[np.ndarray], np.ndarray]] = {
            "standard": self._standard,
            "contrast": self._contrast,
            "denoised": self._denoised,
            "upscaled": self._upscaled,
        }

    def apply(self, technique: str, image: np.ndarray) -> np.ndarray:
        """Run a single named technique on an in-memory image.

        Args:
            technique: Technique name.
            image: Input image (BGR or grayscale).

        Returns:
            Preprocessed grayscale image.

        Raises:
            TransformError: If the technique is unknown or produces no pixels.
        """
        step = self._techniques.get(technique)
        if step is None:
            raise TransformError(technique, "unknown technique")
        result = step(image)
        if result.size == 0:
            raise TransformError(technique, "produced an empty image")
        return result

    def transform(self, image_path: Path) -> VariantSet:
        """Write every configured variant of an image to a temporary directory.

        Args:
            image_path: Path of the source image. It is never modified.

        Returns:
            A ``VariantSet`` whose variants follow the configured technique
            order, or holds only the original image when nothing succeeded.
        """
        original = ImageVariant(
            path=image_path, technique=ORIGINAL_TECHNIQUE, owned=False
        )

        if not self.config.enabled or not self.config.techniques:
            return VariantSet([original], diagnostics=["preprocessing disabled"])

        image = cv2.imread(str(image_path), cv2.IMREAD_COLOR)
        if image is None:
            message = f"could not decode {image_path.name}, using original"
            logger.warning("Preprocessing skipped: %s", message)
            return VariantSet([original], diagnostics=[message])

        workdir = Path(tempfile.mkdtemp(prefix="receipt-ocr-"))
        variant_set = VariantSet([], workdir=workdir)
        try:
            for technique in self.config.techniques:
                variant = self._write_variant(technique, image, image_path, workdir)
                if isinstance(variant, ImageVariant):
                    variant_set.variants.append(variant)
                else:
                    variant_set.diagnostics.append(f"{technique} failed: {variant}")
        except BaseException:
            variant_set.close()
            raise

        if not variant_set.variants:
            variant_set.close()
            variant_set.variants.append(original)
            variant_set.diagnostics.append("all techniques failed, using original")

        logger.info(
            "Preprocessing produced %d variant(s) for %s",
            len(variant_set.variants),
            image_path.name,
        )
        return variant_set

    def _write_variant(
        self, technique: str, image: np.ndarray, image_path: Path, workdir: Path
    ) -> ImageVariant | Exception:
        """Apply one technique and write its variant, or return its failure."""
        try:
            processed = self.apply(technique, image)
            out_path = workdir / f"{image_path.stem}_{technique}.png"
            if not cv2.imwrite(str(out_path), processed):
                raise TransformError(technique, f"could not write {out_path.name}")
            metrics = QualityMetrics(
                sharpness=calculate_sharpness(processed),
                contrast=calculate_contrast(processed),
            )
        except Exception as exc:
            logger.warning("Technique %s failed: %s", technique, exc)
            return exc

        logger.debug(
            "Variant %s: sharpness %.1f, contrast %.1f",
            technique,
            metrics.sharpness,
            metrics.contrast,
        )
        return ImageVariant(path=out_path, technique=technique, metrics=metrics)

    def _standard(self, image: np.ndarray) -> np.ndarray:
        result = normalize(to_gray(image))
        return sharpen(result, sigma=self.config.sharpen_sigma)

    def _contrast(self, image: np.ndarray) -> np.ndarray:
        result = clip_normalize(
            to_gray(image), self.config.clip_low, self.config.clip_high
        )
        result = linear(result, self.config.linear_gain, self.config.linear_offset)
        return sharpen(result, sigma=self.config.strong_sharpen_sigma, amount=1.5)

    def _denoised(self, image: np.ndarray) -> np.ndarray:
        return convolve(normalize(to_gray(image)), DENOISE_KERNEL)

    def _upscaled(self, image: np.ndarray) -> np.ndarray:
        result = upscale(to_gray(image), self.config.upscale_factor)
        return sharpen(normalize(result), sigma=self.config.sharpen_sigma)
