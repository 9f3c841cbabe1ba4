"""Document boundary detection using edge tracing and quadrilateral scoring."""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .contours import MAX_CONTOUR_POINTS, MIN_CONTOUR_POINTS, trace_contours
from .edges import DEFAULT_HIGH_THRESHOLD_RATIO, DEFAULT_LOW_THRESHOLD_RATIO, detect_edges
from .exceptions import InvalidCornersError
from .geometry import (
    QuadCandidate,
    approximate_polygon,
    default_corners,
    order_corners,
    polygon_area,
    select_best,
)
from .grayscale import to_grayscale, validate_image

logger = logging.getLogger(__name__)

_RESIZABLE_DTYPES = (np.dtype(np.uint8), np.dtype(np.uint16), np.dtype(np.float32), np.dtype(np.float64))


@dataclass(frozen=True, eq=False)
class DetectionResult:
    """Detected document corners plus a heuristic confidence.

    Attributes:
        corners: float32 array of shape (4, 2) ordered top-left, top-right,
            bottom-right, bottom-left, in pixel coordinates.
        confidence: 1.0 or 0.7 or 0.4 depending on how much of the frame
            the document covers; 0.0 when the default corners were used.
    """

    corners: np.ndarray
    confidence: float

    @property
    def is_fallback(self) -> bool:
        """True when no document was found and default corners were used."""
        return self.confidence == 0.0

    def to_flat(self) -> List[float]:
        """Corners flattened to ``[x1, y1, x2, y2, x3, y3, x4, y4]``."""
        return [float(v) for v in np.asarray(self.corners).reshape(-1)]

    @classmethod
    def from_flat(cls, values: Sequence[float], confidence: float = 1.0) -> "DetectionResult":
        """Rebuild a result from 8 floats in TL, TR, BR, BL order."""
        values = list(values)
        if len(values) != 8:
            raise InvalidCornersError(f"Expected 8 values, got {len(values)}")
        corners = np.array(values, dtype=np.float32).reshape(4, 2)
        return cls(corners=corners, confidence=confidence)

    def normalized(self, width: int, height: int) -> List[float]:
        """Flattened corners divided by the image size (0-1 space)."""
        if width <= 0 or height <= 0:
            raise InvalidCornersError(f"Cannot normalize against {width}x{height}")
        scale = np.array([width, height], dtype=np.float64)
        return [float(v) for v in (np.asarray(self.corners, dtype=np.float64) / scale).reshape(-1)]

    @staticmethod
    def denormalize(values: Sequence[float], width: int, height: int) -> np.ndarray:
        """Convert 8 normalized floats back to pixel-space corners."""
        values = list(values)
        if len(values) != 8:
            raise InvalidCornersError(f"Expected 8 values, got {len(values)}")
        points = np.array(values, dtype=np.float64).reshape(4, 2)
        return (points * np.array([width, height], dtype=np.float64)).astype(np.float32)


class BoundaryDetector:
    """Finds the quadrilateral outline of a document in a photo.

    The image is downscaled, converted to luminance, run through a Canny
    style edge detector and traced into contours. Each contour is reduced
    to its 4 sharpest hull corners and scored on area, aspect ratio and
    convexity; the best candidate is scaled back to full resolution.
    When nothing usable is found the detector falls back to a rectangle
    inset from the image border, with confidence 0.0.
    """

    def __init__(
        self,
        max_dimension: int = 800,
        min_candidate_area_ratio: float = 0.08,
        max_candidate_area_ratio: float = 0.99,
        min_valid_area_ratio: float = 0.10,
        max_valid_area_ratio: float = 0.98,
        default_margin: float = 0.05,
        min_contour_points: int = MIN_CONTOUR_POINTS,
        max_contour_points: int = MAX_CONTOUR_POINTS,
        high_threshold_ratio: float = DEFAULT_HIGH_THRESHOLD_RATIO,
        low_threshold_ratio: float = DEFAULT_LOW_THRESHOLD_RATIO,
    ):
        """Initialize the boundary detector.

        Args:
            max_dimension: Larger image side is downscaled to this many
                pixels before processing.
            min_candidate_area_ratio: Smallest candidate area, as a ratio
                of image area, accepted for scoring.
            max_candidate_area_ratio: Largest candidate area accepted for
                scoring.
            min_valid_area_ratio: Smallest area ratio of the final answer.
            max_valid_area_ratio: Largest area ratio of the final answer.
            default_margin: Inset of the fallback corners as a fraction
                of width/height.
            min_contour_points: Shorter contours are treated as noise.
            max_contour_points: Flood fill cap per contour.
            high_threshold_ratio: High hysteresis threshold as a fraction
                of the maximum gradient.
            low_threshold_ratio: Low hysteresis threshold as a fraction
                of the high threshold.
        """
        self.max_dimension = max_dimension
        self.min_candidate_area_ratio = min_candidate_area_ratio
        self.max_candidate_area_ratio = max_candidate_area_ratio
        self.min_valid_area_ratio = min_valid_area_ratio
        self.max_valid_area_ratio = max_valid_area_ratio
        self.default_margin = default_margin
        self.min_contour_points = min_contour_points
        self.max_contour_points = max_contour_points
        self.high_threshold_ratio = high_threshold_ratio
        self.low_threshold_ratio = low_threshold_ratio

    def detect(self, image: np.ndarray) -> np.ndarray:
        """Detect document corners.

        Args:
            image: Input image in BGR, BGRA or grayscale layout.

        Returns:
            float32 array of 4 corners ordered top-left, top-right,
            bottom-right, bottom-left.
        """
        return self.detect_with_confidence(image).corners

    def detect_with_confidence(self, image: np.ndarray) -> DetectionResult:
        """Detect document corners and report how trustworthy they are.

        Args:
            image: Input image in BGR, BGRA or grayscale layout.

        Returns:
            DetectionResult. Never fails for a valid image; internal
            geometry errors degrade to the default corners.

        Raises:
            InvalidImageError: If the image is None, empty or zero-sized.
        """
        height, width = validate_image(image)
        image = np.asarray(image)
        logger.debug(f"Starting document detection for {width}x{height} image")

        try:
            corners = self._detect_corners(image, width, height)
        except Exception:
            logger.warning("Error during document detection", exc_info=True)
            corners = None

        if corners is not None:
            confidence = self._calculate_confidence(corners, width, height)
            logger.debug(f"Detection successful with confidence: {confidence}")
            return DetectionResult(corners=corners, confidence=confidence)

        logger.debug("Falling back to default corners")
        return DetectionResult(
            corners=default_corners(width, height, self.default_margin),
            confidence=0.0,
        )

    def find_candidates(self, image: np.ndarray) -> List[QuadCandidate]:
        """Score every quadrilateral found in the (downscaled) image.

        Args:
            image: Input image in BGR, BGRA or grayscale layout.

        Returns:
            Candidates in contour discovery order, in downscaled pixel
            coordinates.
        """
        validate_image(image)
        image = np.asarray(image)
        proc_image, _ = self.downscale(image)
        contours = self.find_contours(proc_image)
        proc_height, proc_width = proc_image.shape[:2]
        return self._collect_candidates(contours, proc_width, proc_height)

    def find_contours(self, image: np.ndarray) -> List[np.ndarray]:
        """Trace edge contours of an image at its given resolution."""
        gray = to_grayscale(image)
        edges = detect_edges(gray, self.high_threshold_ratio, self.low_threshold_ratio)
        return trace_contours(edges, self.min_contour_points, self.max_contour_points)

    def compute_scale(self, width: int, height: int) -> float:
        """Scale factor that caps the larger side at ``max_dimension``."""
        largest = max(width, height)
        if largest > self.max_dimension:
            return self.max_dimension / largest
        return 1.0

    def downscale(self, image: np.ndarray) -> Tuple[np.ndarray, float]:
        """Downscale large images for faster processing."""
        h, w = image.shape[:2]
        scale = self.compute_scale(w, h)
        if scale >= 1.0:
            return image, 1.0

        if image.dtype not in _RESIZABLE_DTYPES:
            image = image.astype(np.float32)
        else:
            image = np.ascontiguousarray(image)

        new_w = max(1, int(round(w * scale)))
        new_h = max(1, int(round(h * scale)))
        resized = cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_AREA)
        return resized, scale

    def _detect_corners(self, image: np.ndarray, width: int, height: int) -> Optional[np.ndarray]:
        proc_image, scale = self.downscale(image)
        logger.debug(f"Scale factor: {scale}")
        proc_height, proc_width = proc_image.shape[:2]

        contours = self.find_contours(proc_image)
        logger.debug(f"Found {len(contours)} contours")

        quad = self._find_best_quadrilateral(contours, proc_width, proc_height)
        if quad is None:
            logger.debug("No quadrilateral found")
            return None

        if not self._is_valid_quadrilateral(quad, proc_width, proc_height):
            logger.debug("Best quadrilateral failed the area check")
            return None

        # Scale back if we downscaled
        if scale != 1.0:
            quad = (quad / scale).astype(np.float32)

        return order_corners(quad)

    def _collect_candidates(
        self, contours: List[np.ndarray], width: int, height: int
    ) -> List[QuadCandidate]:
        image_area = float(width * height)
        candidates = []

        for contour in contours:
            if len(contour) < 4:
                continue

            polygon = approximate_polygon(contour)
            if len(polygon) != 4:
                continue

            area_ratio = polygon_area(polygon) / image_area
            if area_ratio < self.min_candidate_area_ratio or area_ratio > self.max_candidate_area_ratio:
                continue

            candidate = QuadCandidate.build(polygon, image_area)
            candidates.append(candidate)
            logger.debug(
                f"Quad candidate - area: {candidate.area_ratio:.0%}, "
                f"aspect: {candidate.aspect_ratio:.2f}, "
                f"convexity: {candidate.convexity:.2f}, "
                f"score: {candidate.score:.2f}"
            )

        return candidates

    def _find_best_quadrilateral(
        self, contours: List[np.ndarray], width: int, height: int
    ) -> Optional[np.ndarray]:
        """Find the best scoring quadrilateral among the traced contours."""
        logger.debug(f"Analyzing {len(contours)} contours for quadrilateral candidates")
        candidates = self._collect_candidates(contours, width, height)

        best = select_best(candidates)
        if best is None:
            logger.debug("No valid quadrilateral candidates found")
            return None

        logger.debug(f"Selected best quad with score: {best.score:.2f}")
        return best.quad

    def _is_valid_quadrilateral(self, quad: np.ndarray, width: int, height: int) -> bool:
        """Final area gate for the chosen quadrilateral."""
        if len(quad) != 4:
            return False
        area_ratio = polygon_area(quad) / float(width * height)
        logger.debug(f"Quadrilateral area ratio: {area_ratio:.3f}")
        return self.min_valid_area_ratio <= area_ratio <= self.max_valid_area_ratio

    def _calculate_confidence(self, corners: np.ndarray, width: int, height: int) -> float:
        """Confidence from the area ratio of full-resolution corners."""
        area_ratio = polygon_area(corners) / float(width * height)
        if 0.25 <= area_ratio <= 0.85:
            return 1.0
        if 0.15 <= area_ratio <= 0.95:
            return 0.7
        return 0.4
