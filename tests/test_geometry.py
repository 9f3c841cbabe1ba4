"""
Tests for polygon geometry and quadrilateral scoring
"""

import math

import numpy as np
import pytest

from docscanner.contours import trace_contours
from docscanner.exceptions import InvalidCornersError
from docscanner.geometry import (
    QuadCandidate,
    approximate_polygon,
    area_score,
    aspect_ratio,
    aspect_score,
    convex_hull,
    convexity,
    convexity_score,
    default_corners,
    is_degenerate,
    order_corners,
    polygon_area,
    quad_score,
    select_best,
    side_lengths,
    simplify_to_quadrilateral,
    turning_angle,
)

SQUARE = [(0, 0), (10, 0), (10, 10), (0, 10)]


class TestPolygonArea:
    """Tests for polygon_area"""

    def test_square(self):
        assert polygon_area(SQUARE) == pytest.approx(100.0)

    def test_orientation_independent(self):
        assert polygon_area(SQUARE[::-1]) == pytest.approx(100.0)

    def test_triangle(self):
        assert polygon_area([(0, 0), (4, 0), (0, 3)]) == pytest.approx(6.0)

    def test_too_few_points(self):
        assert polygon_area([(0, 0), (5, 5)]) == 0.0


class TestConvexHull:
    """Tests for convex_hull"""

    def test_interior_points_removed(self):
        points = SQUARE + [(5, 5), (2, 7), (8, 3)]
        hull = convex_hull(points)
        assert len(hull) == 4
        assert polygon_area(hull) == pytest.approx(100.0)

    def test_collinear_edge_points_removed(self):
        points = [(0, 0), (5, 0), (10, 0), (10, 5), (10, 10), (5, 10), (0, 10)]
        assert len(convex_hull(points)) == 4

    def test_starts_at_lowest_y(self):
        hull = convex_hull([(3, 8), (0, 2), (6, 1), (9, 9)])
        assert hull[0].tolist() == [6.0, 1.0]

    def test_contains_all_points(self):
        points = np.random.default_rng(7).uniform(0, 100, (200, 2))
        hull = convex_hull(points).astype(np.float64)
        n = len(hull)
        for i in range(n):
            a, b = hull[i], hull[(i + 1) % n]
            cross = (b[0] - a[0]) * (points[:, 1] - a[1]) - (b[1] - a[1]) * (points[:, 0] - a[0])
            assert (cross >= -1e-2).all()

    def test_hull_is_convex(self):
        points = np.random.default_rng(8).uniform(0, 100, (100, 2))
        hull = convex_hull(points).astype(np.float64)
        assert convexity(hull) == pytest.approx(1.0)


class TestSimplification:
    """Tests for turning_angle, simplify_to_quadrilateral and approximate_polygon"""

    def test_turning_angle(self):
        assert turning_angle((0, 0), (1, 0), (2, 0)) == pytest.approx(0.0)
        assert turning_angle((0, 0), (1, 0), (1, 1)) == pytest.approx(math.pi / 2)

    def test_keeps_four_sharpest_corners_in_order(self):
        octagon = [
            (0, 0), (50, 1), (100, 0), (101, 50),
            (100, 100), (50, 99), (0, 100), (-1, 50),
        ]
        quad = simplify_to_quadrilateral(octagon)
        assert quad.tolist() == [[0, 0], [100, 0], [100, 100], [0, 100]]

    def test_four_or_fewer_points_unchanged(self):
        assert simplify_to_quadrilateral(SQUARE).tolist() == [list(p) for p in SQUARE]

    def test_approximate_square_contour(self, square_ring_mask):
        contour = trace_contours(square_ring_mask)[0]
        polygon = approximate_polygon(contour)
        assert len(polygon) == 4
        assert polygon_area(polygon) == pytest.approx(29 * 29)


class TestOrderCorners:
    """Tests for order_corners and side_lengths"""

    def test_shuffled_square(self):
        shuffled = [(10, 10), (0, 0), (0, 10), (10, 0)]
        assert order_corners(shuffled).tolist() == [[0, 0], [10, 0], [10, 10], [0, 10]]

    def test_returns_float32(self):
        assert order_corners(SQUARE).dtype == np.float32

    def test_wrong_point_count(self):
        with pytest.raises(InvalidCornersError):
            order_corners([(0, 0), (1, 0), (1, 1)])

    def test_side_lengths(self):
        top, bottom, left, right = side_lengths([(0, 0), (30, 0), (40, 20), (0, 20)])
        assert top == pytest.approx(30.0)
        assert bottom == pytest.approx(40.0)
        assert left == pytest.approx(20.0)
        assert right == pytest.approx(math.hypot(10, 20))


class TestScoring:
    """Tests for the quadrilateral metrics and scores"""

    def test_aspect_ratio(self):
        assert aspect_ratio([(0, 0), (200, 0), (200, 100), (0, 100)]) == pytest.approx(2.0)

    def test_convexity_of_concave_quad(self):
        dart = [(0, 0), (10, 5), (20, 0), (10, 20)]
        assert convexity(dart) == pytest.approx(0.75)
        assert convexity(SQUARE) == pytest.approx(1.0)

    @pytest.mark.parametrize("ratio, expected", [
        (0.5, 1.0), (0.2, 0.85), (0.9, 0.85), (0.12, 0.52), (0.05, 0.2), (0.99, 0.2),
    ])
    def test_area_score(self, ratio, expected):
        assert area_score(ratio) == pytest.approx(expected)

    @pytest.mark.parametrize("ratio, expected", [
        (1.0, 1.0), (0.6, 0.7), (1.8, 0.7), (0.4, 0.4), (2.5, 0.4), (5.0, 0.1), (0.1, 0.1),
    ])
    def test_aspect_score(self, ratio, expected):
        assert aspect_score(ratio) == pytest.approx(expected)

    @pytest.mark.parametrize("value, expected", [(0.99, 1.0), (0.92, 0.8), (0.85, 0.5), (0.5, 0.2)])
    def test_convexity_score(self, value, expected):
        assert convexity_score(value) == pytest.approx(expected)

    def test_perfect_quad_scores_one(self):
        assert quad_score(0.5, 1.0, 1.0) == pytest.approx(1.0)

    def test_score_grows_towards_preferred_area(self):
        ratios = np.linspace(0.10, 0.25, 16)
        scores = [quad_score(r, 1.0, 1.0) for r in ratios]
        assert all(b >= a - 1e-9 for a, b in zip(scores, scores[1:]))

    def test_score_grows_with_convexity(self):
        values = np.linspace(0.7, 0.96, 27)
        scores = [quad_score(0.4, 1.2, v) for v in values]
        assert all(b >= a for a, b in zip(scores, scores[1:]))

    def test_score_within_bounds(self):
        for ratio in np.linspace(0.0, 1.0, 21):
            for aspect in (0.1, 0.6, 1.0, 2.5, 4.0):
                for convex in (0.5, 0.85, 0.92, 1.0):
                    assert 0.0 < quad_score(ratio, aspect, convex) <= 1.0 + 1e-9


class TestQuadCandidate:
    """Tests for QuadCandidate, select_best and default_corners"""

    def test_build(self):
        quad = [(100, 100), (700, 100), (700, 700), (100, 700)]
        candidate = QuadCandidate.build(quad, 800 * 800)
        assert candidate.area == pytest.approx(360000.0)
        assert candidate.area_ratio == pytest.approx(0.5625)
        assert candidate.aspect_ratio == pytest.approx(1.0)
        assert candidate.convexity == pytest.approx(1.0)
        assert candidate.score == pytest.approx(1.0)

    def test_select_best_empty(self):
        assert select_best([]) is None

    def test_select_best_first_wins_ties(self):
        first = QuadCandidate.build(SQUARE, 400)
        second = QuadCandidate.build([(0, 0), (10, 0), (10, 10), (0, 10)], 400)
        assert select_best([first, second]) is first

    def test_select_best_highest_score(self):
        weak = QuadCandidate.build([(0, 0), (100, 0), (100, 5), (0, 5)], 10000)
        strong = QuadCandidate.build([(0, 0), (60, 0), (60, 60), (0, 60)], 10000)
        assert select_best([weak, strong]) is strong

    def test_default_corners(self):
        corners = default_corners(400, 300)
        np.testing.assert_allclose(corners, [[20, 15], [380, 15], [380, 285], [20, 285]])
        assert corners.dtype == np.float32


class TestIsDegenerate:
    """Tests for is_degenerate"""

    def test_square_is_fine(self):
        assert not is_degenerate(SQUARE)

    def test_collinear_triple(self):
        assert is_degenerate([(0, 0), (10, 0), (20, 0), (10, 10)])

    def test_zero_area(self):
        assert is_degenerate([(5, 5)] * 4)

    def test_wrong_count(self):
        assert is_degenerate([(0, 0), (1, 0), (1, 1)])

    def test_non_finite(self):
        assert is_degenerate([(0, 0), (10, 0), (10, np.nan), (0, 10)])

    def test_corner_near_opposite_diagonal(self):
        assert is_degenerate([(0, 0), (100, 0.5), (200, 0), (100, 150)])

    def test_thin_sliver(self):
        assert is_degenerate([(0, 0), (1000, 500), (1000, 503), (0, 3)], min_corner_distance=0.0)

    def test_slightly_bent_edge_is_fine(self):
        assert not is_degenerate([(0, 0), (100, 3), (200, 0), (100, 150)])
