"""Exceptions raised by the document scanner core."""


class DocScannerError(Exception):
    """Base class for all scanner errors."""


class InvalidImageError(DocScannerError, ValueError):
    """Raised when an image buffer is missing, empty or has a bad layout."""


class InvalidCornersError(DocScannerError, ValueError):
    """Raised when a corner set is not exactly four finite points."""


class TransformError(DocScannerError):
    """Raised when a quadrilateral cannot be mapped onto a rectangle.

    Degenerate corner sets (zero area, collinear points) make the
    homography singular; rather than warping into garbage pixels the
    transformer refuses and the caller is expected to re-prompt for
    corner adjustment.
    """
