"""Colour filters, tone adjustments and simple geometry for rectified scans.

All functions take 8-bit grayscale, BGR or BGRA images and return new
arrays. Alpha is carried through untouched; single-channel (H x W x 1)
input comes back as a plain (H x W) array.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import cv2
import numpy as np

from .detector import BoundaryDetector, DetectionResult
from .exceptions import InvalidImageError
from .grayscale import to_grayscale, validate_image
from .transformer import DimensionMode, PerspectiveTransformer

logger = logging.getLogger(__name__)

# Luminance weights for saturation changes
SATURATION_RED = 0.213
SATURATION_GREEN = 0.715
SATURATION_BLUE = 0.072

# Rows produce B, G, R from input columns B, G, R
SEPIA_MATRIX = np.array([
    [0.131, 0.534, 0.272],
    [0.168, 0.686, 0.349],
    [0.189, 0.769, 0.393],
], dtype=np.float32)

WHITE = (255, 255, 255)

_QUARTER_TURNS = {
    90: cv2.ROTATE_90_CLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}


class FilterType(Enum):
    """Colour filter applied by ``process_document``."""

    NONE = "none"
    GRAYSCALE = "grayscale"
    BLACK_AND_WHITE = "black_and_white"
    SEPIA = "sepia"
    AUTO_ENHANCE = "auto_enhance"


@dataclass(frozen=True)
class ProcessingOptions:
    """Settings for ``process_document``.

    Attributes:
        filter: Colour filter, applied after rotation.
        brightness: Offset added to every channel (-255 to 255).
        contrast: Contrast change around mid-gray; 0 keeps the image,
            -1 flattens it completely.
        saturation: 1.0 keeps colours, 0.0 removes them.
        rotation: Clockwise rotation in degrees.
        auto_enhance: Stretch the brightness range to 0-255. Only used
            when ``filter`` is NONE.
        sharpen: Sharpening strength; 0 disables it.
    """

    filter: FilterType = FilterType.NONE
    brightness: float = 0.0
    contrast: float = 0.0
    saturation: float = 1.0
    rotation: float = 0.0
    auto_enhance: bool = False
    sharpen: float = 0.0


class Presets:
    """Ready-made processing options."""

    DOCUMENT_SCAN = ProcessingOptions(filter=FilterType.AUTO_ENHANCE, sharpen=0.3)
    BLACK_AND_WHITE_DOCUMENT = ProcessingOptions(filter=FilterType.BLACK_AND_WHITE, contrast=0.2)
    COLOR_DOCUMENT = ProcessingOptions(brightness=10.0, contrast=0.1, saturation=1.1)
    PHOTO = ProcessingOptions(auto_enhance=True)
    VINTAGE = ProcessingOptions(filter=FilterType.SEPIA, brightness=-20.0)


def _split_channels(image: np.ndarray) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """Colour planes (gray or BGR) and the alpha plane, if any."""
    validate_image(image)
    image = np.asarray(image)
    if image.dtype != np.uint8:
        raise InvalidImageError(f"Expected an 8-bit image, got {image.dtype}")

    if image.ndim == 3 and image.shape[2] == 1:
        return image[:, :, 0], None
    if image.ndim == 3 and image.shape[2] == 4:
        return image[:, :, :3], image[:, :, 3]
    return image, None


def _merge_channels(color: np.ndarray, alpha: Optional[np.ndarray]) -> np.ndarray:
    if alpha is None:
        return color
    if color.ndim == 2:
        color = cv2.cvtColor(color, cv2.COLOR_GRAY2BGR)
    return np.dstack([color, alpha])


def _to_uint8(values: np.ndarray) -> np.ndarray:
    return np.clip(values, 0, 255).astype(np.uint8)


def _linear(image: np.ndarray, scale: float, offset: float) -> np.ndarray:
    color, alpha = _split_channels(image)
    adjusted = _to_uint8(color.astype(np.float32) * scale + offset)
    return _merge_channels(adjusted, alpha)


def adjust_brightness(image: np.ndarray, value: float) -> np.ndarray:
    """Add ``value`` to every colour channel."""
    return _linear(image, 1.0, value)


def adjust_contrast(image: np.ndarray, value: float) -> np.ndarray:
    """Scale channels by ``value + 1`` around mid-gray."""
    scale = value + 1.0
    return _linear(image, scale, (-0.5 * scale + 0.5) * 255.0)


def adjust_saturation(image: np.ndarray, value: float) -> np.ndarray:
    """Blend each pixel with its luminance.

    ``value`` 1.0 keeps the image, 0.0 gives gray, larger values boost
    colours. Grayscale input is returned unchanged.
    """
    color, alpha = _split_channels(image)
    if color.ndim == 2:
        return _merge_channels(color.copy(), alpha)

    pixels = color.astype(np.float32)
    luminance = (
        pixels[:, :, 2] * SATURATION_RED
        + pixels[:, :, 1] * SATURATION_GREEN
        + pixels[:, :, 0] * SATURATION_BLUE
    )
    blended = luminance[:, :, np.newaxis] * (1.0 - value) + pixels * value
    return _merge_channels(_to_uint8(blended), alpha)


def apply_grayscale(image: np.ndarray) -> np.ndarray:
    """Remove all colour, keeping the channel layout."""
    return adjust_saturation(image, 0.0)


def apply_black_and_white(image: np.ndarray, threshold: int = 128) -> np.ndarray:
    """Pixels brighter than ``threshold`` become white, the rest black."""
    color, alpha = _split_channels(image)
    binary = np.where(to_grayscale(color) > threshold, 255, 0).astype(np.uint8)
    if color.ndim == 3:
        binary = cv2.cvtColor(binary, cv2.COLOR_GRAY2BGR)
    return _merge_channels(binary, alpha)


def apply_sepia(image: np.ndarray) -> np.ndarray:
    """Warm brown tone. Grayscale input comes back as BGR."""
    color, alpha = _split_channels(image)
    if color.ndim == 2:
        color = cv2.cvtColor(color, cv2.COLOR_GRAY2BGR)
    toned = cv2.transform(color.astype(np.float32), SEPIA_MATRIX)
    return _merge_channels(_to_uint8(toned), alpha)


def auto_enhance(image: np.ndarray) -> np.ndarray:
    """Stretch the pixel brightness range to 0-255.

    Brightness is the integer mean of the colour channels. A flat image,
    where the darkest and brightest pixels match, is returned as a copy.
    """
    color, alpha = _split_channels(image)
    if color.ndim == 2:
        brightness = color.astype(np.int32)
    else:
        brightness = color.astype(np.int32).sum(axis=2) // 3

    low = int(brightness.min())
    high = int(brightness.max())
    if high == low:
        return _merge_channels(color.copy(), alpha)

    scale = 255.0 / (high - low)
    logger.debug(f"Auto enhance stretching brightness {low}-{high}")
    return _merge_channels(_to_uint8(color.astype(np.float32) * scale - low * scale), alpha)


def apply_sharpen(image: np.ndarray, amount: float = 1.0) -> np.ndarray:
    """Sharpen with a 3x3 kernel: centre ``1 + 4a``, edge neighbours ``-a``."""
    color, alpha = _split_channels(image)
    kernel = np.array([
        [0.0, -amount, 0.0],
        [-amount, 1.0 + 4.0 * amount, -amount],
        [0.0, -amount, 0.0],
    ], dtype=np.float32)
    sharpened = cv2.filter2D(
        color.astype(np.float32), -1, kernel, borderType=cv2.BORDER_REPLICATE
    )
    return _merge_channels(_to_uint8(sharpened), alpha)


def rotate_image(image: np.ndarray, degrees: float) -> np.ndarray:
    """
    Rotate image clockwise by ``degrees``.

    Quarter turns are exact. Other angles grow the canvas to fit the whole
    rotated image and fill the new area with black.
    """
    height, width = validate_image(image)
    image = np.ascontiguousarray(image)
    degrees = degrees % 360
    if degrees == 0:
        return image.copy()
    if degrees in _QUARTER_TURNS:
        return cv2.rotate(image, _QUARTER_TURNS[degrees])

    center = (width / 2.0, height / 2.0)
    # OpenCV angles are counter-clockwise
    matrix = cv2.getRotationMatrix2D(center, -degrees, 1.0)
    cos, sin = abs(matrix[0, 0]), abs(matrix[0, 1])
    new_width = max(int(round(height * sin + width * cos)), 1)
    new_height = max(int(round(height * cos + width * sin)), 1)
    matrix[0, 2] += new_width / 2.0 - center[0]
    matrix[1, 2] += new_height / 2.0 - center[1]
    return cv2.warpAffine(
        image, matrix, (new_width, new_height),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=0,
    )


def flip_horizontal(image: np.ndarray) -> np.ndarray:
    """Mirror left to right."""
    validate_image(image)
    return cv2.flip(np.ascontiguousarray(image), 1)


def flip_vertical(image: np.ndarray) -> np.ndarray:
    """Mirror top to bottom."""
    validate_image(image)
    return cv2.flip(np.ascontiguousarray(image), 0)


def crop_image(image: np.ndarray, left: int, top: int, width: int, height: int) -> np.ndarray:
    """
    Cut a rectangle out of the image.

    The rectangle is clamped to the image and always keeps at least one
    pixel in each direction.
    """
    img_height, img_width = validate_image(image)
    image = np.asarray(image)
    left = min(max(int(left), 0), img_width - 1)
    top = min(max(int(top), 0), img_height - 1)
    width = min(max(int(width), 1), img_width - left)
    height = min(max(int(height), 1), img_height - top)
    return image[top:top + height, left:left + width].copy()


def crop_normalized(
    image: np.ndarray, left: float, top: float, right: float, bottom: float
) -> np.ndarray:
    """Crop using edges given as fractions (0-1) of the image size."""
    img_height, img_width = validate_image(image)
    x0 = int(left * img_width)
    y0 = int(top * img_height)
    x1 = int(right * img_width)
    y1 = int(bottom * img_height)
    return crop_image(image, x0, y0, x1 - x0, y1 - y0)


def resize_image(image: np.ndarray, width: int, height: int) -> np.ndarray:
    """Resize to exactly ``width`` x ``height``."""
    img_height, img_width = validate_image(image)
    if width < 1 or height < 1:
        raise InvalidImageError(f"Cannot resize to {width}x{height}")
    shrinking = width * height < img_width * img_height
    interpolation = cv2.INTER_AREA if shrinking else cv2.INTER_LINEAR
    return cv2.resize(np.ascontiguousarray(image), (int(width), int(height)), interpolation=interpolation)


def resize_keep_aspect(image: np.ndarray, max_width: int, max_height: int) -> np.ndarray:
    """Shrink to fit inside ``max_width`` x ``max_height``; never enlarges."""
    img_height, img_width = validate_image(image)
    ratio = min(max_width / img_width, max_height / img_height)
    if ratio >= 1.0:
        return np.array(image, copy=True)
    return resize_image(
        image,
        max(int(img_width * ratio), 1),
        max(int(img_height * ratio), 1),
    )


def pad_image(
    image: np.ndarray,
    left: int,
    top: int,
    right: int,
    bottom: int,
    color: Tuple[int, int, int] = WHITE,
) -> np.ndarray:
    """Add a solid border, white by default. BGRA borders are opaque."""
    validate_image(image)
    image = np.ascontiguousarray(image)
    if image.ndim == 2 or image.shape[2] == 1:
        value = [int(round(sum(color) / 3.0))]
    elif image.shape[2] == 4:
        value = list(color) + [255]
    else:
        value = list(color)
    padded = cv2.copyMakeBorder(
        image, int(top), int(bottom), int(left), int(right),
        cv2.BORDER_CONSTANT, value=value,
    )
    if image.ndim == 3 and padded.ndim == 2:
        padded = padded[:, :, np.newaxis]
    return padded


_FILTERS = {
    FilterType.GRAYSCALE: apply_grayscale,
    FilterType.BLACK_AND_WHITE: apply_black_and_white,
    FilterType.SEPIA: apply_sepia,
    FilterType.AUTO_ENHANCE: auto_enhance,
}


def process_document(
    image: np.ndarray, options: ProcessingOptions = Presets.DOCUMENT_SCAN
) -> np.ndarray:
    """
    Apply rotation, a colour filter and tone adjustments.

    Steps run in a fixed order: rotation, filter, brightness, contrast,
    saturation (skipped for the grayscale and black-and-white filters),
    sharpening, and finally auto enhance when no filter was chosen.

    Args:
        image: 8-bit grayscale, BGR or BGRA image
        options: What to apply

    Returns:
        New processed image
    """
    validate_image(image)
    result = np.asarray(image)

    if options.rotation % 360 != 0:
        result = rotate_image(result, options.rotation)

    filter_type = FilterType(options.filter)
    if filter_type is not FilterType.NONE:
        logger.debug(f"Applying {filter_type.value} filter")
        result = _FILTERS[filter_type](result)

    if options.brightness != 0:
        result = adjust_brightness(result, options.brightness)
    if options.contrast != 0:
        result = adjust_contrast(result, options.contrast)
    if options.saturation != 1.0 and filter_type not in (FilterType.GRAYSCALE, FilterType.BLACK_AND_WHITE):
        result = adjust_saturation(result, options.saturation)
    if options.sharpen > 0:
        result = apply_sharpen(result, options.sharpen)
    if options.auto_enhance and filter_type is FilterType.NONE:
        result = auto_enhance(result)

    if result is image:
        result = result.copy()
    return result


def crop_and_process(
    image: np.ndarray,
    left: float,
    top: float,
    right: float,
    bottom: float,
    options: ProcessingOptions = Presets.DOCUMENT_SCAN,
) -> np.ndarray:
    """Crop with normalized edges (0-1), then run ``process_document``."""
    return process_document(crop_normalized(image, left, top, right, bottom), options)


def auto_process_document(
    image: np.ndarray,
    detector: Optional[BoundaryDetector] = None,
    transformer: Optional[PerspectiveTransformer] = None,
    options: ProcessingOptions = Presets.DOCUMENT_SCAN,
    mode: DimensionMode = DimensionMode.AVERAGE,
) -> Tuple[np.ndarray, DetectionResult]:
    """
    Detect the document, flatten it and apply ``options``.

    Returns:
        Tuple of (processed image, detection result)
    """
    detector = detector or BoundaryDetector()
    transformer = transformer or PerspectiveTransformer()

    result = detector.detect_with_confidence(image)
    rectified = transformer.transform(image, result.corners, mode=mode)
    return process_document(rectified, options), result
