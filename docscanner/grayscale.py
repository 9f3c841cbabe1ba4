"""Luminance conversion for BGR(A) image buffers."""

from typing import Tuple

import numpy as np

from .exceptions import InvalidImageError

# Luminosity weights
RED_WEIGHT = 0.299
GREEN_WEIGHT = 0.587
BLUE_WEIGHT = 0.114


def validate_image(image: np.ndarray) -> Tuple[int, int]:
    """Check that an image buffer is usable.

    Args:
        image: Grayscale (H x W), BGR (H x W x 3) or BGRA (H x W x 4) array.

    Returns:
        Tuple of (height, width).

    Raises:
        InvalidImageError: If the image is None, empty or has an
            unsupported shape.
    """
    if image is None:
        raise InvalidImageError("Image is None")

    image = np.asarray(image)
    if image.size == 0:
        raise InvalidImageError("Image is empty")

    if image.ndim == 2:
        pass
    elif image.ndim == 3 and image.shape[2] in (1, 3, 4):
        pass
    else:
        raise InvalidImageError(f"Unsupported image shape: {image.shape}")

    height, width = image.shape[:2]
    if height == 0 or width == 0:
        raise InvalidImageError(f"Image has zero size: {width}x{height}")

    return height, width


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """Convert an image to integer luminance.

    Uses ``gray = 0.299 R + 0.587 G + 0.114 B`` truncated toward zero.
    The alpha channel of BGRA input is ignored. Single-channel input is
    returned as an int32 copy.

    Args:
        image: Input image in BGR, BGRA or grayscale layout.

    Returns:
        New int32 array of shape (H, W) with values in 0-255.
    """
    validate_image(image)
    image = np.asarray(image)

    if image.ndim == 2:
        return image.astype(np.int32)
    if image.shape[2] == 1:
        return image[:, :, 0].astype(np.int32)

    blue = image[:, :, 0].astype(np.float64)
    green = image[:, :, 1].astype(np.float64)
    red = image[:, :, 2].astype(np.float64)
    gray = RED_WEIGHT * red + GREEN_WEIGHT * green + BLUE_WEIGHT * blue
    return gray.astype(np.int32)
