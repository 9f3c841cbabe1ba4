"""
Image I/O helpers and the end-to-end document scan.
"""

import base64
import io
import logging
from typing import Optional, Tuple, Union

import cv2
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from docscanner import (
    BoundaryDetector,
    DetectionResult,
    DimensionMode,
    InvalidImageError,
    PerspectiveTransformer,
    ProcessingOptions,
    process_document,
)

logger = logging.getLogger(__name__)


def fix_orientation_from_exif(image: Image.Image) -> Image.Image:
    """
    Fix image orientation based on EXIF data.

    Args:
        image: PIL Image

    Returns:
        Upright image; the input itself when it carries no orientation tag
    """
    return ImageOps.exif_transpose(image)


def pil_to_cv2(image: Image.Image) -> np.ndarray:
    """Convert PIL image to OpenCV BGR image."""
    if image.mode != 'RGB':
        image = image.convert('RGB')
    return cv2.cvtColor(np.array(image), cv2.COLOR_RGB2BGR)


def cv2_to_pil(image: np.ndarray) -> Image.Image:
    """Convert OpenCV image (BGR, BGRA or grayscale) to PIL image."""
    if image.ndim == 2:
        return Image.fromarray(image)
    if image.shape[2] == 4:
        return Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA))
    return Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))


def bytes_to_cv2(image_bytes: bytes) -> np.ndarray:
    """
    Decode image bytes into an upright OpenCV BGR image.

    Args:
        image_bytes: Raw encoded image (JPEG, PNG, ...)

    Returns:
        BGR image with EXIF orientation applied

    Raises:
        InvalidImageError: If the bytes cannot be decoded
    """
    if not image_bytes:
        raise InvalidImageError("Image data is empty")
    try:
        pil_image = Image.open(io.BytesIO(image_bytes))
        pil_image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise InvalidImageError("Could not decode image data") from exc

    return pil_to_cv2(fix_orientation_from_exif(pil_image))


def cv2_to_bytes(image: np.ndarray, format: str = 'JPEG') -> bytes:
    """Encode OpenCV image as JPEG or PNG bytes."""
    if format.upper() == 'JPEG':
        ext = '.jpg'
        params = [cv2.IMWRITE_JPEG_QUALITY, 95]
    else:
        ext = '.png'
        params = [cv2.IMWRITE_PNG_COMPRESSION, 3]

    ok, buffer = cv2.imencode(ext, image, params)
    if not ok:
        raise InvalidImageError(f"Could not encode image as {format}")
    return buffer.tobytes()


def base64_to_cv2(base64_string: str) -> np.ndarray:
    """Convert base64 string to OpenCV image."""
    return bytes_to_cv2(base64.b64decode(base64_string))


def cv2_to_base64(image: np.ndarray, format: str = 'JPEG') -> str:
    """Convert OpenCV image to base64 string."""
    return base64.b64encode(cv2_to_bytes(image, format)).decode('utf-8')


def clamp_corners(corners, width: int, height: int) -> np.ndarray:
    """
    Keep corner points inside the image bounds.

    Args:
        corners: 4 (x, y) points, e.g. after a user dragged them
        width: Image width
        height: Image height

    Returns:
        float32 array of shape (4, 2) with x in [0, width] and y in [0, height]
    """
    pts = np.asarray(corners, dtype=np.float32).reshape(-1, 2)
    pts[:, 0] = np.clip(pts[:, 0], 0, width)
    pts[:, 1] = np.clip(pts[:, 1], 0, height)
    return pts


def scan_document(
    image_bytes: bytes,
    mode: Union[DimensionMode, str] = DimensionMode.AVERAGE,
    detector: Optional[BoundaryDetector] = None,
    transformer: Optional[PerspectiveTransformer] = None,
    format: str = 'JPEG',
    options: Optional[ProcessingOptions] = None,
) -> Tuple[bytes, DetectionResult]:
    """
    Detect a document in a photo and return it flattened.

    When no document is found the default inset corners are used, so the
    output is always a rectified image; check ``result.is_fallback``.

    Args:
        image_bytes: Raw image bytes
        mode: How the output size is derived from the detected sides
        detector: Detector to use (default settings if None)
        transformer: Transformer to use (default if None)
        format: Output encoding, 'JPEG' or 'PNG'
        options: Filters and adjustments applied to the flattened page
            (none if None)

    Returns:
        Tuple of (rectified image bytes, detection result)

    Raises:
        InvalidImageError: If the bytes cannot be decoded
        TransformError: If the detected corners cannot be rectified
    """
    image = bytes_to_cv2(image_bytes)
    height, width = image.shape[:2]

    detector = detector or BoundaryDetector()
    transformer = transformer or PerspectiveTransformer()

    result = detector.detect_with_confidence(image)
    if result.is_fallback:
        logger.info(f"No document found in {width}x{height} image, using default corners")
    else:
        logger.info(f"Document detected with confidence {result.confidence}")

    corners = clamp_corners(result.corners, width, height)
    rectified = transformer.transform(image, corners, mode=mode)
    if options is not None:
        rectified = process_document(rectified, options)
    return cv2_to_bytes(rectified, format), result
