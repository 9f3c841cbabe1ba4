"""Polygon geometry and quadrilateral scoring."""

import math
from dataclasses import dataclass
from itertools import combinations
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .exceptions import InvalidCornersError

AREA_WEIGHT = 0.4
ASPECT_WEIGHT = 0.3
CONVEXITY_WEIGHT = 0.3


def _as_points(points) -> np.ndarray:
    return np.asarray(points, dtype=np.float64).reshape(-1, 2)


def _cross(o, a, b) -> float:
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def polygon_area(points) -> float:
    """Absolute polygon area via the shoelace formula."""
    pts = _as_points(points)
    if len(pts) < 3:
        return 0.0
    x = pts[:, 0]
    y = pts[:, 1]
    return float(abs(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y)) / 2.0)


def convex_hull(points) -> np.ndarray:
    """Convex hull by Graham scan.

    The pivot is the first point with the lowest y. Remaining points are
    sorted (stably) by polar angle around it, the pivot itself being
    forced first, and the sweep keeps strict left turns only.

    Args:
        points: Sequence or array of (x, y) pairs.

    Returns:
        float32 array of hull vertices in sweep order.
    """
    pts = _as_points(points)
    if len(pts) < 3:
        return pts.astype(np.float32)

    pivot = pts[int(np.argmin(pts[:, 1]))]
    angles = np.arctan2(pts[:, 1] - pivot[1], pts[:, 0] - pivot[0])
    angles[np.all(pts == pivot, axis=1)] = -np.inf
    order = np.argsort(angles, kind="stable")

    hull: List[Tuple[float, float]] = []
    for x, y in pts[order].tolist():
        while len(hull) >= 2 and _cross(hull[-2], hull[-1], (x, y)) <= 0:
            hull.pop()
        hull.append((x, y))

    return np.array(hull, dtype=np.float32)


def turning_angle(prev, curr, nxt) -> float:
    """Angle by which the boundary turns at ``curr`` (0 for a straight line)."""
    v1x, v1y = prev[0] - curr[0], prev[1] - curr[1]
    v2x, v2y = nxt[0] - curr[0], nxt[1] - curr[1]
    dot = v1x * v2x + v1y * v2y
    cross = v1x * v2y - v1y * v2x
    interior = abs(math.atan2(cross, dot))
    return math.pi - interior


def simplify_to_quadrilateral(points) -> np.ndarray:
    """Reduce a closed polygon to its 4 sharpest corners.

    Each vertex is scored by how sharply the boundary turns there; the
    four highest-scoring vertices are kept in their original order. Ties
    go to the vertex that comes first.
    """
    pts = _as_points(points)
    n = len(pts)
    if n <= 4:
        return pts.astype(np.float32)

    turns = [
        turning_angle(pts[(i - 1) % n], pts[i], pts[(i + 1) % n])
        for i in range(n)
    ]
    ranked = sorted(range(n), key=lambda i: -turns[i])
    selected = sorted(ranked[:4])
    return pts[selected].astype(np.float32)


def approximate_polygon(contour) -> np.ndarray:
    """Approximate a contour as a polygon via its convex hull.

    Returns the hull directly when it already has 4 vertices, otherwise
    the hull simplified to its 4 sharpest corners.
    """
    pts = _as_points(contour)
    if len(pts) < 4:
        return pts.astype(np.float32)

    hull = convex_hull(pts)
    if len(hull) == 4:
        return hull
    return simplify_to_quadrilateral(hull)


def order_corners(quad) -> np.ndarray:
    """Order 4 corners as top-left, top-right, bottom-right, bottom-left.

    Points are sorted by y; the upper pair is then sorted by x and the
    lower pair by descending x.

    Raises:
        InvalidCornersError: If ``quad`` does not hold exactly 4 points.
    """
    pts = _as_points(quad)
    if len(pts) != 4:
        raise InvalidCornersError(f"Expected 4 corners, got {len(pts)}")

    by_y = sorted(pts.tolist(), key=lambda p: p[1])
    top = sorted(by_y[:2], key=lambda p: p[0])
    bottom = sorted(by_y[2:], key=lambda p: p[0], reverse=True)
    return np.array([top[0], top[1], bottom[0], bottom[1]], dtype=np.float32)


def side_lengths(ordered) -> Tuple[float, float, float, float]:
    """Lengths of the (top, bottom, left, right) sides of ordered corners."""
    tl, tr, br, bl = _as_points(ordered)
    top = float(np.linalg.norm(tr - tl))
    bottom = float(np.linalg.norm(br - bl))
    left = float(np.linalg.norm(bl - tl))
    right = float(np.linalg.norm(br - tr))
    return top, bottom, left, right


def aspect_ratio(quad) -> float:
    """Mean width divided by mean height of the ordered quadrilateral."""
    top, bottom, left, right = side_lengths(order_corners(quad))
    width = (top + bottom) / 2.0
    height = (left + right) / 2.0
    return width / height if height > 0 else 0.0


def convexity(quad) -> float:
    """Ratio of polygon area to convex hull area (1.0 when convex)."""
    area = polygon_area(quad)
    hull_area = polygon_area(convex_hull(quad))
    return area / hull_area if hull_area > 0 else 0.0


def area_score(area_ratio: float) -> float:
    """Prefer documents covering 25-85% of the frame."""
    if 0.25 <= area_ratio <= 0.85:
        return 1.0
    if 0.15 <= area_ratio <= 0.25:
        return 0.7 + (area_ratio - 0.15) * 3.0
    if 0.85 <= area_ratio <= 0.95:
        return 1.0 - (area_ratio - 0.85) * 3.0
    if 0.10 <= area_ratio <= 0.15:
        return 0.4 + (area_ratio - 0.10) * 6.0
    return 0.2


def aspect_score(ratio: float) -> float:
    """Prefer document-like proportions (square through A4 and beyond)."""
    if 0.7 <= ratio <= 1.5:
        return 1.0
    if 0.5 <= ratio <= 0.7 or 1.5 <= ratio <= 2.0:
        return 0.7
    if 0.3 <= ratio <= 0.5 or 2.0 <= ratio <= 3.0:
        return 0.4
    return 0.1


def convexity_score(value: float) -> float:
    if value > 0.95:
        return 1.0
    if value > 0.9:
        return 0.8
    if value > 0.8:
        return 0.5
    return 0.2


def quad_score(area_ratio: float, ratio: float, convex: float) -> float:
    """Weighted quality score of a quadrilateral candidate."""
    return (
        area_score(area_ratio) * AREA_WEIGHT
        + aspect_score(ratio) * ASPECT_WEIGHT
        + convexity_score(convex) * CONVEXITY_WEIGHT
    )


@dataclass(frozen=True, eq=False)
class QuadCandidate:
    """A simplified 4-point polygon together with its quality metrics."""

    quad: np.ndarray
    area: float
    area_ratio: float
    aspect_ratio: float
    convexity: float
    score: float

    @classmethod
    def build(cls, quad, image_area: float) -> "QuadCandidate":
        quad = _as_points(quad).astype(np.float32)
        area = polygon_area(quad)
        ratio = area / image_area if image_area > 0 else 0.0
        aspect = aspect_ratio(quad)
        convex = convexity(quad)
        return cls(
            quad=quad,
            area=area,
            area_ratio=ratio,
            aspect_ratio=aspect,
            convexity=convex,
            score=quad_score(ratio, aspect, convex),
        )


def select_best(candidates: Sequence[QuadCandidate]) -> Optional[QuadCandidate]:
    """Highest-scoring candidate; the first one wins on ties."""
    best = None
    for candidate in candidates:
        if best is None or candidate.score > best.score:
            best = candidate
    return best


def default_corners(width: float, height: float, margin: float = 0.05) -> np.ndarray:
    """Rectangle inset by ``margin`` of the width/height on every side."""
    mx = width * margin
    my = height * margin
    return np.array([
        [mx, my],                    # Top-left
        [width - mx, my],            # Top-right
        [width - mx, height - my],   # Bottom-right
        [mx, height - my],           # Bottom-left
    ], dtype=np.float32)


def is_degenerate(
    quad,
    min_area: float = 1.0,
    min_corner_distance: float = 1.0,
    min_fill_ratio: float = 0.02,
) -> bool:
    """Whether a quadrilateral is too thin to map onto a rectangle.

    A quad is degenerate when its area is below ``min_area`` px², when it
    covers less than ``min_fill_ratio`` of its bounding box, or when any
    corner lies within ``min_corner_distance`` px of the line through two
    other corners.
    """
    pts = _as_points(quad)
    if len(pts) != 4 or not np.all(np.isfinite(pts)):
        return True

    area = polygon_area(pts)
    if area < min_area:
        return True

    box_width, box_height = np.ptp(pts, axis=0)
    if area < min_fill_ratio * float(box_width * box_height):
        return True

    for a, b, c in combinations(pts.tolist(), 3):
        longest = max(math.dist(a, b), math.dist(b, c), math.dist(a, c))
        # Twice the triangle area over its longest side is its smallest height
        if longest == 0 or abs(_cross(a, b, c)) / longest < min_corner_distance:
            return True
    return False
