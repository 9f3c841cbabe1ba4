"""Connected-component contour tracing over binary edge masks."""

import logging
from collections import deque
from typing import List

import numpy as np

logger = logging.getLogger(__name__)

MIN_CONTOUR_POINTS = 20
MAX_CONTOUR_POINTS = 5000

_NEIGHBOR_OFFSETS = [
    (dx, dy)
    for dy in (-1, 0, 1)
    for dx in (-1, 0, 1)
    if dx != 0 or dy != 0
]


def _trace_contour(
    edges: List[List[bool]],
    visited: bytearray,
    start_x: int,
    start_y: int,
    width: int,
    height: int,
    max_points: int,
) -> List[List[float]]:
    """Breadth-first flood fill from a seed edge pixel.

    Collection stops once ``max_points`` pixels have been gathered; pixels
    still waiting in the queue stay unvisited and may seed later contours.
    """
    contour = []
    queue = deque([(start_x, start_y)])

    while queue and len(contour) < max_points:
        x, y = queue.popleft()

        if x < 0 or x >= width or y < 0 or y >= height:
            continue
        index = y * width + x
        if visited[index] or not edges[y][x]:
            continue

        visited[index] = 1
        contour.append([float(x), float(y)])

        for dx, dy in _NEIGHBOR_OFFSETS:
            queue.append((x + dx, y + dy))

    return contour


def trace_contours(
    mask: np.ndarray,
    min_points: int = MIN_CONTOUR_POINTS,
    max_points: int = MAX_CONTOUR_POINTS,
) -> List[np.ndarray]:
    """Extract 8-connected edge components as point sequences.

    Pixels are scanned in raster order; every unvisited edge pixel seeds a
    FIFO flood fill. Points are kept in discovery order, which makes the
    output deterministic for a given mask.

    Args:
        mask: Boolean edge mask of shape (H, W).
        min_points: Contours with fewer points are discarded as noise.
        max_points: Upper bound on points gathered per contour.

    Returns:
        List of float32 arrays of shape (N, 2) holding (x, y) pairs.
    """
    mask = np.asarray(mask, dtype=bool)
    if mask.ndim != 2 or mask.size == 0:
        return []

    height, width = mask.shape
    edges = mask.tolist()
    visited = bytearray(height * width)
    contours = []

    # np.argwhere walks row-major, i.e. the same order as a raster scan
    for y, x in np.argwhere(mask).tolist():
        if visited[y * width + x]:
            continue
        contour = _trace_contour(edges, visited, x, y, width, height, max_points)
        if len(contour) >= min_points:
            contours.append(np.array(contour, dtype=np.float32))
            logger.debug(f"Found contour with {len(contour)} points")

    logger.debug(f"Total contours found: {len(contours)}")
    return contours
