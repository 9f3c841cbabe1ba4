"""
Tests for PerspectiveTransformer
"""

import numpy as np
import pytest

from docscanner.exceptions import InvalidCornersError, InvalidImageError, TransformError
from docscanner.transformer import DimensionMode, PerspectiveTransformer, solve_homography

# Keystoned sheet: bottom edge 40px wider than the top edge
TRAPEZOID = [[200, 200], [800, 200], [820, 800], [180, 800]]


def _apply(matrix, points):
    points = np.asarray(points, dtype=np.float64)
    homogeneous = np.hstack([points, np.ones((len(points), 1))]) @ matrix.T
    return homogeneous[:, :2] / homogeneous[:, 2:3]


class TestPerspectiveTransformer:
    """Tests for PerspectiveTransformer"""

    @pytest.fixture
    def transformer(self):
        return PerspectiveTransformer()

    def test_full_frame_dimensions(self, transformer):
        corners = [[0, 0], [640, 0], [640, 480], [0, 480]]
        assert transformer.compute_output_dimensions(corners) == (640, 480)
        assert transformer.compute_output_dimensions(corners, DimensionMode.MAXIMUM) == (640, 480)

    def test_full_frame_transform_keeps_image(self, transformer):
        image = np.random.default_rng(4).integers(0, 256, (480, 640, 3), dtype=np.uint8)
        corners = [[0, 0], [640, 0], [640, 480], [0, 480]]
        warped = transformer.transform(image, corners)
        assert warped.shape == image.shape
        assert np.abs(warped.astype(int) - image.astype(int)).max() <= 1

    def test_average_and_maximum_modes(self, transformer):
        assert transformer.compute_output_dimensions(TRAPEZOID, DimensionMode.AVERAGE) == (620, 600)
        assert transformer.compute_output_dimensions(TRAPEZOID, DimensionMode.MAXIMUM) == (640, 600)

    def test_mode_accepts_string(self, transformer):
        assert transformer.compute_output_dimensions(TRAPEZOID, "maximum") == (640, 600)

    def test_transform_output_shapes(self, transformer, document_image):
        average = transformer.transform(document_image, TRAPEZOID)
        maximum = transformer.transform(document_image, TRAPEZOID, mode=DimensionMode.MAXIMUM)
        assert average.shape == (600, 620, 3)
        assert maximum.shape == (600, 640, 3)

    def test_rectified_sheet_is_white(self, transformer, document_image):
        corners = [[200, 200], [800, 200], [800, 800], [200, 800]]
        warped = transformer.transform(document_image, corners)
        assert warped.shape == (600, 600, 3)
        assert warped.mean() > 250

    def test_matrix_maps_corners_to_rectangle(self, transformer):
        matrix, (width, height) = transformer.get_transformation_matrix(TRAPEZOID)
        assert (width, height) == (620, 600)
        mapped = _apply(matrix, TRAPEZOID)
        np.testing.assert_allclose(mapped, [[0, 0], [620, 0], [620, 600], [0, 600]], atol=1e-6)

    def test_explicit_output_size(self, transformer, document_image):
        warped = transformer.transform(document_image, TRAPEZOID, output_size=(300, 200))
        assert warped.shape == (200, 300, 3)

    def test_reorder(self, transformer, document_image):
        shuffled = [TRAPEZOID[2], TRAPEZOID[0], TRAPEZOID[3], TRAPEZOID[1]]
        expected = transformer.transform(document_image, TRAPEZOID)
        warped = transformer.transform(document_image, shuffled, reorder=True)
        np.testing.assert_array_equal(warped, expected)

    def test_order_points(self, transformer):
        shuffled = [[820, 800], [200, 200], [180, 800], [800, 200]]
        np.testing.assert_array_equal(transformer.order_points(shuffled), TRAPEZOID)

    def test_grayscale_image(self, transformer):
        gray = np.full((100, 120), 90, dtype=np.uint8)
        warped = transformer.transform(gray, [[10, 10], [110, 10], [110, 90], [10, 90]])
        assert warped.shape == (80, 100)
        assert warped.dtype == np.uint8

    def test_collinear_corners(self, transformer, document_image):
        with pytest.raises(TransformError):
            transformer.transform(document_image, [[0, 0], [100, 0], [200, 0], [100, 100]])

    def test_nearly_collinear_corners(self, transformer, document_image):
        with pytest.raises(TransformError):
            transformer.transform(document_image, [[0, 0], [100, 0.5], [200, 0], [100, 150]])

    def test_corners_far_outside_image(self, transformer, document_image):
        huge = [[0, 0], [1e6, 0], [1e6, 1e6], [0, 1e6]]
        with pytest.raises(InvalidCornersError):
            transformer.transform(document_image, huge)

    def test_corners_slightly_outside_image(self, transformer, document_image):
        corners = [[-50, -50], [1050, -50], [1050, 1050], [-50, 1050]]
        warped = transformer.transform(document_image, corners)
        assert warped.shape == (1100, 1100, 3)

    def test_oversized_output_rejected(self, transformer):
        huge = [[0, 0], [1e6, 0], [1e6, 1e6], [0, 1e6]]
        with pytest.raises(TransformError):
            transformer.get_transformation_matrix(huge)

    def test_oversized_explicit_output_rejected(self, transformer):
        with pytest.raises(TransformError):
            transformer.get_transformation_matrix(TRAPEZOID, output_size=(40000, 100))

    def test_coincident_corners(self, transformer, document_image):
        with pytest.raises(TransformError):
            transformer.transform(document_image, [[50, 50]] * 4)

    def test_too_few_corners(self, transformer, document_image):
        with pytest.raises(InvalidCornersError):
            transformer.transform(document_image, [[0, 0], [100, 0], [100, 100]])

    def test_non_finite_corners(self, transformer, document_image):
        with pytest.raises(InvalidCornersError):
            transformer.transform(document_image, [[0, 0], [100, 0], [100, np.inf], [0, 100]])

    def test_none_corners(self, transformer, document_image):
        with pytest.raises(InvalidCornersError):
            transformer.transform(document_image, None)

    def test_invalid_image(self, transformer):
        with pytest.raises(InvalidImageError):
            transformer.transform(None, TRAPEZOID)


class TestSolveHomography:
    """Tests for solve_homography"""

    def test_identity(self):
        square = [[0, 0], [10, 0], [10, 10], [0, 10]]
        np.testing.assert_allclose(solve_homography(square, square), np.eye(3), atol=1e-9)

    def test_scaling(self):
        src = [[0, 0], [10, 0], [10, 10], [0, 10]]
        dst = [[0, 0], [20, 0], [20, 30], [0, 30]]
        np.testing.assert_allclose(
            solve_homography(src, dst), np.diag([2.0, 3.0, 1.0]), atol=1e-9
        )

    def test_singular_system(self):
        src = [[0, 0], [10, 0], [20, 0], [30, 0]]
        dst = [[0, 0], [10, 0], [10, 10], [0, 10]]
        with pytest.raises(TransformError):
            solve_homography(src, dst)
