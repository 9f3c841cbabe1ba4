"""Document boundary detection and perspective rectification."""

from typing import Union

import numpy as np

from .detector import BoundaryDetector, DetectionResult
from .enhance import FilterType, Presets, ProcessingOptions, process_document
from .exceptions import DocScannerError, InvalidCornersError, InvalidImageError, TransformError
from .geometry import QuadCandidate
from .transformer import DimensionMode, PerspectiveTransformer
from .visualizer import DetectionVisualizer

_default_detector = BoundaryDetector()
_default_transformer = PerspectiveTransformer()


def detect(image: np.ndarray) -> np.ndarray:
    """Corners of the document in ``image`` (TL, TR, BR, BL)."""
    return _default_detector.detect(image)


def detect_with_confidence(image: np.ndarray) -> DetectionResult:
    """Corners of the document in ``image`` plus a confidence score."""
    return _default_detector.detect_with_confidence(image)


def rectify(
    image: np.ndarray,
    corners: np.ndarray,
    mode: Union[DimensionMode, str] = DimensionMode.AVERAGE,
) -> np.ndarray:
    """Warp the quadrilateral ``corners`` of ``image`` onto a rectangle."""
    return _default_transformer.transform(image, corners, mode=mode)


__all__ = [
    "BoundaryDetector",
    "DetectionResult",
    "DetectionVisualizer",
    "DimensionMode",
    "DocScannerError",
    "FilterType",
    "InvalidCornersError",
    "InvalidImageError",
    "PerspectiveTransformer",
    "Presets",
    "ProcessingOptions",
    "QuadCandidate",
    "TransformError",
    "detect",
    "detect_with_confidence",
    "process_document",
    "rectify",
]
