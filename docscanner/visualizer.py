"""Debug overlays for inspecting what the boundary detector sees."""

import logging
from typing import Tuple

import cv2
import numpy as np

from .detector import BoundaryDetector, DetectionResult
from .grayscale import validate_image

logger = logging.getLogger(__name__)


def _to_bgr(image: np.ndarray) -> np.ndarray:
    """Copy an image into 8-bit BGR so colored drawing works on it."""
    image = np.asarray(image)
    if image.dtype != np.uint8:
        image = np.clip(image, 0, 255).astype(np.uint8)
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 1:
        return cv2.cvtColor(image[:, :, 0], cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return image.copy()


class DetectionVisualizer:
    """Draws traced contours and detection results on top of an image."""

    def __init__(
        self,
        contour_color: Tuple[int, int, int] = (0, 255, 0),
        overlay_alpha: float = 0.5,
        border_color: Tuple[int, int, int] = (255, 100, 0),
        border_thickness: int = 3,
        size_ratio: float = 0.2,
    ):
        """Initialize the visualizer.

        Args:
            contour_color: BGR fill color for contours.
            overlay_alpha: Opacity of the contour overlay.
            border_color: BGR color of the detected quadrilateral.
            border_thickness: Line thickness of the quadrilateral.
            size_ratio: Contours shorter than this fraction of the largest
                contour are not drawn.
        """
        self.contour_color = contour_color
        self.overlay_alpha = overlay_alpha
        self.border_color = border_color
        self.border_thickness = border_thickness
        self.size_ratio = size_ratio

    def draw_contours(self, image: np.ndarray, detector: BoundaryDetector) -> np.ndarray:
        """Overlay the large contours traced by ``detector``.

        Contours are traced on the downscaled image exactly as during
        detection, then mapped back to full resolution.

        Args:
            image: Input image in BGR, BGRA or grayscale layout.
            detector: Detector whose settings drive the tracing.

        Returns:
            New 8-bit BGR image.
        """
        validate_image(image)
        canvas = _to_bgr(image)

        try:
            proc_image, scale = detector.downscale(np.asarray(image))
            contours = detector.find_contours(proc_image)
            logger.debug(f"Found {len(contours)} contours for visualization")
            if not contours:
                return canvas

            max_size = max(len(c) for c in contours)
            threshold = int(max_size * self.size_ratio)
            selected = [c for c in contours if len(c) >= threshold]
            logger.debug(f"Drawing {len(selected)} filtered contours (out of {len(contours)})")

            overlay = canvas.copy()
            for contour in selected:
                points = contour / scale if scale < 1.0 else contour
                cv2.fillPoly(overlay, [np.round(points).astype(np.int32)], self.contour_color)

            return cv2.addWeighted(overlay, self.overlay_alpha, canvas, 1.0 - self.overlay_alpha, 0)
        except Exception:
            logger.error("Error creating debug visualization", exc_info=True)
            return canvas

    def draw_result(self, image: np.ndarray, result: DetectionResult) -> np.ndarray:
        """Draw the detected quadrilateral and its confidence.

        Returns:
            New 8-bit BGR image.
        """
        validate_image(image)
        canvas = _to_bgr(image)

        pts = np.round(np.asarray(result.corners, dtype=np.float64)).astype(np.int32)
        cv2.polylines(canvas, [pts.reshape(-1, 1, 2)], True, self.border_color, self.border_thickness)
        for x, y in pts.tolist():
            cv2.circle(canvas, (x, y), self.border_thickness * 2, self.border_color, -1)

        label = "fallback" if result.is_fallback else f"confidence {result.confidence:.1f}"
        cv2.putText(
            canvas, label, (10, 30),
            cv2.FONT_HERSHEY_SIMPLEX, 0.8, self.border_color, 2, cv2.LINE_AA,
        )
        return canvas
