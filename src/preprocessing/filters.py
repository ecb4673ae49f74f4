"""Image filters used by the receipt preprocessing techniques.

Greyscale conversion, intensity normalization, linear stretching,
unsharp-mask sharpening, convolution, and Lanczos upscaling. Every
function takes and returns a numpy array and never modifies its input.
"""

import cv2
import numpy as np

from src.utils.logger import get_logger

logger = get_logger(__name__)

DENOISE_KERNEL = np.array(
    [[-1, -1, -1], [-1, 9, -1], [-1, -1, -1]],
    dtype=np.float32,
)


def to_gray(image: np.ndarray) -> np.ndarray:
    """Convert an image to grayscale if it has color channels.

    Args:
        image: Input image (BGR, BGRA, or grayscale).

    Returns:
        Grayscale image.
    """
    if len(image.shape) == 3:
        if image.shape[2] == 4:
            return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    return image


def normalize(image: np.ndarray) -> np.ndarray:
    """Stretch intensities so the darkest pixel is 0 and the brightest 255.

    Args:
        image: Grayscale image.

    Returns:
        Normalized 8-bit image.
    """
    result = cv2.normalize(image, None, 0, 255, cv2.NORM_MINMAX)
    logger.debug("Applied min-max normalization")
    return result.astype(np.uint8)


def clip_normalize(image: np.ndarray, low: int = 10, high: int = 240) -> np.ndarray:
    """Clip intensities to ``[low, high]`` and stretch that band to 0-255.

    Args:
        image: Grayscale image.
        low: Intensities at or below this value become black.
        high: Intensities at or above this value become white.

    Returns:
        Normalized 8-bit image.

    Raises:
        ValueError: If ``low`` is not below ``high``.
    """
    if low >= high:
        raise ValueError(f"Invalid clip band: {low}..{high}")
    clipped = np.clip(image.astype(np.float32), low, high)
    result = (clipped - low) * (255.0 / (high - low))
    logger.debug("Applied clipped normalization (%d..%d)", low, high)
    return result.astype(np.uint8)


def linear(image: np.ndarray, gain: float = 1.2, offset: float = -25.6) -> np.ndarray:
    """Apply ``gain * pixel + offset`` with saturation to 0-255.

    Args:
        image: Grayscale image.
        gain: Multiplicative contrast factor.
        offset: Additive brightness offset.

    Returns:
        Adjusted 8-bit image.
    """
    result = np.clip(image.astype(np.float32) * gain + offset, 0, 255)
    logger.debug("Applied linear stretch (gain=%.2f, offset=%.2f)", gain, offset)
    return result.astype(np.uint8)


def sharpen(image: np.ndarray, sigma: float = 1.0, amount: float = 1.0) -> np.ndarray:
    """Sharpen with an unsharp mask.

    Args:
        image: Grayscale image.
        sigma: Standard deviation of the Gaussian used for the mask.
        amount: Strength of the sharpening.

    Returns:
        Sharpened image.
    """
    blurred = cv2.GaussianBlur(image, (0, 0), sigma)
    result = cv2.addWeighted(image, 1.0 + amount, blurred, -amount, 0)
    logger.debug("Applied unsharp mask (sigma=%.1f)", sigma)
    return result


def convolve(image: np.ndarray, kernel: np.ndarray = DENOISE_KERNEL) -> np.ndarray:
    """Convolve the image with a kernel, keeping its depth.

    Args:
        image: Grayscale image.
        kernel: 2D convolution kernel.

    Returns:
        Filtered image.
    """
    result = cv2.filter2D(image, -1, kernel)
    logger.debug("Applied %dx%d convolution", kernel.shape[0], kernel.shape[1])
    return result


def upscale(image: np.ndarray, factor: float = 2.0) -> np.ndarray:
    """Resize the image by ``factor`` using Lanczos interpolation.

    Args:
        image: Input image.
        factor: Scale factor applied to both axes.

    Returns:
        Resized image.
    """
    result = cv2.resize(
        image, None, fx=factor, fy=factor, interpolation=cv2.INTER_LANCZOS4
    )
    logger.debug("Upscaled image by %.1fx to %s", factor, result.shape[:2])
    return result
