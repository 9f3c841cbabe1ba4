"""Canny-style edge detection on integer luminance buffers.

Every stage is a pure function that allocates its result; the input
buffer is never modified. Stages only compute where their kernel fits and
leave the remaining border either copied from the source (blur) or zero.
"""

import logging

import numpy as np

logger = logging.getLogger(__name__)

# 5x5 Gaussian kernel (sigma ~ 1.4), integer weights normalized by 159
GAUSSIAN_KERNEL = np.array([
    [2, 4, 5, 4, 2],
    [4, 9, 12, 9, 4],
    [5, 12, 15, 12, 5],
    [4, 9, 12, 9, 4],
    [2, 4, 5, 4, 2],
], dtype=np.int64)
GAUSSIAN_KERNEL_SUM = 159

# Quantized gradient directions (image coordinates, y pointing down)
HORIZONTAL = 0
DIAGONAL_UP = 1      # "/"
VERTICAL = 2
DIAGONAL_DOWN = 3    # "\"

DEFAULT_HIGH_THRESHOLD_RATIO = 0.15
DEFAULT_LOW_THRESHOLD_RATIO = 0.40

MORPH_RADIUS = 2  # 5x5 structuring element


def gaussian_blur(gray: np.ndarray) -> np.ndarray:
    """Smooth with the fixed 5x5 Gaussian kernel.

    The kernel is applied only where it fits entirely; the 2-pixel border
    is copied from the unblurred input.

    Args:
        gray: Integer luminance array of shape (H, W).

    Returns:
        New int32 array of the same shape.
    """
    gray = np.asarray(gray)
    height, width = gray.shape
    blurred = gray.astype(np.int32)

    if height < 5 or width < 5:
        return blurred

    source = gray.astype(np.int64)
    acc = np.zeros((height - 4, width - 4), dtype=np.int64)
    for ky in range(5):
        for kx in range(5):
            acc += GAUSSIAN_KERNEL[ky, kx] * source[ky:height - 4 + ky, kx:width - 4 + kx]

    blurred[2:height - 2, 2:width - 2] = acc // GAUSSIAN_KERNEL_SUM
    return blurred


def quantize_direction(angle_degrees: np.ndarray) -> np.ndarray:
    """Map gradient angles onto the four 45-degree-centred direction bins."""
    folded = np.mod(angle_degrees, 180.0)
    return np.select(
        [
            (folded >= 22.5) & (folded < 67.5),
            (folded >= 67.5) & (folded < 112.5),
            (folded >= 112.5) & (folded < 157.5),
        ],
        [DIAGONAL_DOWN, VERTICAL, DIAGONAL_UP],
        default=HORIZONTAL,
    ).astype(np.int8)


def sobel_gradients(gray: np.ndarray):
    """Compute Sobel gradient magnitude and quantized direction.

    Args:
        gray: Integer luminance array of shape (H, W).

    Returns:
        Tuple of (magnitude, direction). Magnitude is int32 and truncated;
        direction holds one of HORIZONTAL, DIAGONAL_UP, VERTICAL,
        DIAGONAL_DOWN. The outer 1-pixel ring is zero in both.
    """
    gray = np.asarray(gray)
    height, width = gray.shape
    magnitude = np.zeros((height, width), dtype=np.int32)
    direction = np.zeros((height, width), dtype=np.int8)

    if height < 3 or width < 3:
        return magnitude, direction

    g = gray.astype(np.int64)
    gx = (
        -g[:-2, :-2] + g[:-2, 2:]
        - 2 * g[1:-1, :-2] + 2 * g[1:-1, 2:]
        - g[2:, :-2] + g[2:, 2:]
    )
    gy = (
        -g[:-2, :-2] - 2 * g[:-2, 1:-1] - g[:-2, 2:]
        + g[2:, :-2] + 2 * g[2:, 1:-1] + g[2:, 2:]
    )

    magnitude[1:-1, 1:-1] = np.sqrt((gx * gx + gy * gy).astype(np.float64)).astype(np.int32)
    angle = np.arctan2(gy.astype(np.float64), gx.astype(np.float64)) * 180.0 / np.pi
    direction[1:-1, 1:-1] = quantize_direction(angle)

    return magnitude, direction


def non_maximum_suppression(magnitude: np.ndarray, direction: np.ndarray) -> np.ndarray:
    """Thin edges by keeping only local maxima along the gradient.

    A pixel survives when its magnitude is >= both neighbours lying along
    its quantized gradient direction. Only interior pixels are evaluated.
    """
    magnitude = np.asarray(magnitude)
    height, width = magnitude.shape
    suppressed = np.zeros((height, width), dtype=np.int32)

    if height < 3 or width < 3:
        return suppressed

    m = magnitude
    center = m[1:-1, 1:-1]
    dirs = np.asarray(direction)[1:-1, 1:-1]

    conditions = [
        dirs == HORIZONTAL,
        dirs == DIAGONAL_UP,
        dirs == VERTICAL,
        dirs == DIAGONAL_DOWN,
    ]
    neighbor1 = np.select(conditions, [m[1:-1, :-2], m[:-2, 2:], m[:-2, 1:-1], m[:-2, :-2]])
    neighbor2 = np.select(conditions, [m[1:-1, 2:], m[2:, :-2], m[2:, 1:-1], m[2:, 2:]])

    keep = (center >= neighbor1) & (center >= neighbor2)
    suppressed[1:-1, 1:-1] = np.where(keep, center, 0)
    return suppressed


def _window_any(mask: np.ndarray, radius: int) -> np.ndarray:
    """True where any pixel of the (2r+1)^2 window is set; interior only."""
    height, width = mask.shape
    result = np.zeros((height, width), dtype=bool)
    size = 2 * radius + 1
    if height < size or width < size:
        return result

    acc = np.zeros((height - 2 * radius, width - 2 * radius), dtype=bool)
    for dy in range(size):
        for dx in range(size):
            acc |= mask[dy:height - 2 * radius + dy, dx:width - 2 * radius + dx]

    result[radius:height - radius, radius:width - radius] = acc
    return result


def _window_all(mask: np.ndarray, radius: int) -> np.ndarray:
    """True where every pixel of the (2r+1)^2 window is set; interior only."""
    height, width = mask.shape
    result = np.zeros((height, width), dtype=bool)
    size = 2 * radius + 1
    if height < size or width < size:
        return result

    acc = np.ones((height - 2 * radius, width - 2 * radius), dtype=bool)
    for dy in range(size):
        for dx in range(size):
            acc &= mask[dy:height - 2 * radius + dy, dx:width - 2 * radius + dx]

    result[radius:height - radius, radius:width - radius] = acc
    return result


def hysteresis_threshold(
    suppressed: np.ndarray,
    high_ratio: float = DEFAULT_HIGH_THRESHOLD_RATIO,
    low_ratio: float = DEFAULT_LOW_THRESHOLD_RATIO,
) -> np.ndarray:
    """Classify suppressed magnitudes into an edge mask.

    ``high = int(high_ratio * max)`` and ``low = int(low_ratio * high)``.
    Pixels >= high are strong edges. Weak pixels in [low, high) are kept
    only when one of their 8 immediate neighbours is strong; this is a
    single local pass, weak pixels do not propagate through other weak
    pixels. Zero-magnitude pixels are never edges.

    Args:
        suppressed: Output of non_maximum_suppression.
        high_ratio: High threshold as a fraction of the maximum magnitude.
        low_ratio: Low threshold as a fraction of the high threshold.

    Returns:
        Boolean edge mask of the same shape.
    """
    suppressed = np.asarray(suppressed)
    height, width = suppressed.shape

    max_gradient = int(suppressed.max()) if suppressed.size else 0
    high_threshold = int(max_gradient * high_ratio)
    low_threshold = int(high_threshold * low_ratio)
    logger.debug(f"Hysteresis thresholds - low: {low_threshold}, high: {high_threshold}")

    nonzero = suppressed > 0
    strong = nonzero & (suppressed >= high_threshold)
    weak = nonzero & (suppressed >= low_threshold) & (suppressed < high_threshold)

    interior = np.zeros((height, width), dtype=bool)
    interior[1:height - 1, 1:width - 1] = True

    connected = _window_any(strong, 1)
    return strong | (weak & interior & connected)


def dilate(mask: np.ndarray) -> np.ndarray:
    """5x5 dilation: set where any neighbour is set. Border stays False."""
    return _window_any(np.asarray(mask, dtype=bool), MORPH_RADIUS)


def erode(mask: np.ndarray) -> np.ndarray:
    """5x5 erosion: set where all neighbours are set. Border stays False."""
    return _window_all(np.asarray(mask, dtype=bool), MORPH_RADIUS)


def morphological_close(mask: np.ndarray) -> np.ndarray:
    """Dilation followed by erosion to bridge small gaps in edges."""
    return erode(dilate(mask))


def detect_edges(
    gray: np.ndarray,
    high_ratio: float = DEFAULT_HIGH_THRESHOLD_RATIO,
    low_ratio: float = DEFAULT_LOW_THRESHOLD_RATIO,
) -> np.ndarray:
    """Run the full edge pipeline on a luminance buffer.

    Steps: Gaussian blur, Sobel gradients, non-maximum suppression,
    hysteresis thresholding, morphological closing.

    Args:
        gray: Integer luminance array of shape (H, W).
        high_ratio: High hysteresis threshold as a fraction of max magnitude.
        low_ratio: Low hysteresis threshold as a fraction of the high one.

    Returns:
        Boolean edge mask of shape (H, W).
    """
    logger.debug("Step 1: Gaussian blur")
    blurred = gaussian_blur(gray)

    logger.debug("Step 2: Sobel gradients")
    magnitude, direction = sobel_gradients(blurred)

    logger.debug("Step 3: Non-maximum suppression")
    suppressed = non_maximum_suppression(magnitude, direction)

    logger.debug("Step 4: Hysteresis thresholding")
    edges = hysteresis_threshold(suppressed, high_ratio, low_ratio)

    logger.debug("Step 5: Morphological closing")
    closed = morphological_close(edges)

    logger.debug(f"Edge detection complete. Edge pixels: {int(closed.sum())}")
    return closed
