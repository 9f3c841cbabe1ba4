"""Perspective rectification of a document quadrilateral."""

import logging
from enum import Enum
from typing import Optional, Tuple, Union

import cv2
import numpy as np

from .exceptions import InvalidCornersError, TransformError
from .geometry import is_degenerate, order_corners, side_lengths
from .grayscale import validate_image

logger = logging.getLogger(__name__)

# Reciprocal condition numbers below this are treated as singular
MIN_RCOND = 1e-10
MIN_DETERMINANT = 1e-12

# cv2.warpPerspective addresses output pixels with shorts
MAX_OUTPUT_DIMENSION = 32767
# Corners may sit at most this many image widths/heights outside the frame
MAX_OUTSIDE_RATIO = 1.0

_WARPABLE_DTYPES = (np.dtype(np.uint8), np.dtype(np.uint16), np.dtype(np.float32), np.dtype(np.float64))


class DimensionMode(Enum):
    """How the output size is derived from the quadrilateral sides."""

    # Mean of opposing sides; keeps proportions when the quad is imperfect
    AVERAGE = "average"
    # Longer of opposing sides; keeps all source detail
    MAXIMUM = "maximum"


def _normalization(points: np.ndarray) -> np.ndarray:
    """Similarity transform moving points to the origin at mean distance sqrt(2)."""
    centroid = points.mean(axis=0)
    mean_dist = float(np.mean(np.linalg.norm(points - centroid, axis=1)))
    if not np.isfinite(mean_dist) or mean_dist <= 0:
        raise TransformError("Corner points coincide")
    s = np.sqrt(2.0) / mean_dist
    return np.array([
        [s, 0.0, -s * centroid[0]],
        [0.0, s, -s * centroid[1]],
        [0.0, 0.0, 1.0],
    ])


def _apply(matrix: np.ndarray, points: np.ndarray) -> np.ndarray:
    homogeneous = np.hstack([points, np.ones((len(points), 1))])
    mapped = homogeneous @ matrix.T
    return mapped[:, :2] / mapped[:, 2:3]


def solve_homography(src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    """Solve the 3x3 projective transform mapping 4 src points onto 4 dst points.

    Both point sets are normalized before building the 8x8 linear system
    so that the conditioning check does not depend on pixel scale.

    Args:
        src: Array of 4 source (x, y) points.
        dst: Array of 4 destination (x, y) points.

    Returns:
        3x3 float64 homography.

    Raises:
        TransformError: If the system is singular or the result is not a
            finite, invertible matrix.
    """
    src = np.asarray(src, dtype=np.float64).reshape(4, 2)
    dst = np.asarray(dst, dtype=np.float64).reshape(4, 2)

    t_src = _normalization(src)
    t_dst = _normalization(dst)
    src_n = _apply(t_src, src)
    dst_n = _apply(t_dst, dst)

    a = np.zeros((8, 8))
    b = np.zeros(8)
    for i, ((x, y), (u, v)) in enumerate(zip(src_n, dst_n)):
        a[2 * i] = [x, y, 1.0, 0.0, 0.0, 0.0, -u * x, -u * y]
        a[2 * i + 1] = [0.0, 0.0, 0.0, x, y, 1.0, -v * x, -v * y]
        b[2 * i] = u
        b[2 * i + 1] = v

    singular_values = np.linalg.svd(a, compute_uv=False)
    rcond = singular_values[-1] / singular_values[0] if singular_values[0] > 0 else 0.0
    if not np.isfinite(rcond) or rcond < MIN_RCOND:
        raise TransformError(f"Homography system is singular (rcond {rcond:.3g})")

    try:
        h = np.linalg.solve(a, b)
    except np.linalg.LinAlgError as exc:
        raise TransformError("Homography system is singular") from exc

    normalized = np.append(h, 1.0).reshape(3, 3)
    matrix = np.linalg.inv(t_dst) @ normalized @ t_src

    if not np.all(np.isfinite(matrix)):
        raise TransformError("Homography contains non-finite values")
    if abs(matrix[2, 2]) > MIN_DETERMINANT:
        matrix = matrix / matrix[2, 2]
    else:
        matrix = matrix / np.linalg.norm(matrix)
    if abs(np.linalg.det(matrix)) < MIN_DETERMINANT:
        raise TransformError("Homography is not invertible")

    return matrix


class PerspectiveTransformer:
    """Applies perspective transformation to flatten a skewed document.

    Given 4 corner points ordered top-left, top-right, bottom-right,
    bottom-left, maps the quadrilateral onto an axis-aligned rectangle
    sized from its side lengths.
    """

    def order_points(self, pts: np.ndarray) -> np.ndarray:
        """Order points as top-left, top-right, bottom-right, bottom-left."""
        return order_corners(self._prepare_corners(pts))

    def compute_output_dimensions(
        self,
        pts: np.ndarray,
        mode: Union[DimensionMode, str] = DimensionMode.AVERAGE,
    ) -> Tuple[int, int]:
        """Compute the output rectangle size.

        Args:
            pts: Ordered array of 4 corner points.
            mode: AVERAGE uses the mean of opposing sides, MAXIMUM the
                larger one.

        Returns:
            Tuple of (width, height), each at least 1.
        """
        mode = DimensionMode(mode)
        top, bottom, left, right = side_lengths(self._prepare_corners(pts))

        if mode is DimensionMode.AVERAGE:
            width = int((top + bottom) / 2.0)
            height = int((left + right) / 2.0)
        else:
            width = int(max(top, bottom))
            height = int(max(left, right))

        return max(width, 1), max(height, 1)

    def get_transformation_matrix(
        self,
        pts: np.ndarray,
        mode: Union[DimensionMode, str] = DimensionMode.AVERAGE,
        output_size: Optional[Tuple[int, int]] = None,
    ) -> Tuple[np.ndarray, Tuple[int, int]]:
        """Get the perspective transformation matrix without applying it.

        Args:
            pts: Array of 4 corner points ordered TL, TR, BR, BL.
            mode: Dimension strategy used when ``output_size`` is None.
            output_size: Optional explicit (width, height) for the output.

        Returns:
            Tuple of (3x3 transformation matrix, (width, height)).

        Raises:
            InvalidCornersError: If ``pts`` is not 4 finite points.
            TransformError: If the quadrilateral is degenerate.
        """
        corners = self._prepare_corners(pts)
        if is_degenerate(corners):
            raise TransformError("Degenerate quadrilateral: zero area or collinear corners")

        if output_size is None:
            width, height = self.compute_output_dimensions(corners, mode)
        else:
            width, height = max(int(output_size[0]), 1), max(int(output_size[1]), 1)

        if width > MAX_OUTPUT_DIMENSION or height > MAX_OUTPUT_DIMENSION:
            raise TransformError(
                f"Output size {width}x{height} exceeds {MAX_OUTPUT_DIMENSION} px per side"
            )

        dst_pts = np.array([
            [0, 0],                # Top-left
            [width, 0],            # Top-right
            [width, height],       # Bottom-right
            [0, height],           # Bottom-left
        ], dtype=np.float64)

        matrix = solve_homography(corners, dst_pts)
        return matrix, (width, height)

    def transform(
        self,
        image: np.ndarray,
        pts: np.ndarray,
        mode: Union[DimensionMode, str] = DimensionMode.AVERAGE,
        output_size: Optional[Tuple[int, int]] = None,
        reorder: bool = False,
    ) -> np.ndarray:
        """Apply perspective transformation to extract the document.

        Args:
            image: Source image (grayscale, BGR or BGRA).
            pts: 4 corner points ordered TL, TR, BR, BL.
            mode: Dimension strategy used when ``output_size`` is None.
            output_size: Optional (width, height) for the output.
            reorder: Sort the corners into TL, TR, BR, BL order first.

        Returns:
            New image with perspective correction applied, same channel
            layout as the input.

        Raises:
            InvalidImageError: If the image is None, empty or zero-sized.
            InvalidCornersError: If ``pts`` is not 4 finite points.
            TransformError: If the quadrilateral cannot be rectified.
        """
        img_height, img_width = validate_image(image)
        image = np.asarray(image)
        corners = self.order_points(pts) if reorder else self._prepare_corners(pts)
        self._check_within_reach(corners, img_width, img_height)

        matrix, (width, height) = self.get_transformation_matrix(corners, mode, output_size)
        logger.debug(f"Rectifying to {width}x{height} ({DimensionMode(mode).value} mode)")

        if image.dtype in _WARPABLE_DTYPES:
            source = np.ascontiguousarray(image)
        else:
            source = image.astype(np.float32)
        transformed = cv2.warpPerspective(
            source, matrix, (width, height),
            flags=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_REPLICATE,
        )

        if source.ndim == 3 and transformed.ndim == 2:
            transformed = transformed[:, :, np.newaxis]
        return transformed.astype(image.dtype, copy=False)

    def _check_within_reach(self, corners: np.ndarray, width: int, height: int) -> None:
        """Reject corners lying far outside the source image."""
        reach = np.array([width, height], dtype=np.float64) * MAX_OUTSIDE_RATIO
        lower = -reach
        upper = np.array([width, height], dtype=np.float64) + reach
        if np.any(corners < lower) or np.any(corners > upper):
            raise InvalidCornersError(
                f"Corners lie too far outside the {width}x{height} image: {corners.tolist()}"
            )

    def _prepare_corners(self, pts) -> np.ndarray:
        if pts is None:
            raise InvalidCornersError("Corners are None")
        corners = np.asarray(pts, dtype=np.float64)
        if corners.size != 8:
            raise InvalidCornersError(f"Expected 4 corners, got {corners.size / 2:g} points")
        corners = corners.reshape(4, 2)
        if not np.all(np.isfinite(corners)):
            raise InvalidCornersError("Corners contain non-finite coordinates")
        return corners
