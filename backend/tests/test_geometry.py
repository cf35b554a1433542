from __future__ import annotations

import math

import pytest

from route_finder.geometry import (
    EARTH_RADIUS_M,
    BBox,
    bbox_contains_point,
    bbox_intersects,
    coord_in_any_obstacle,
    haversine_distance,
    nearest_point_on_segment,
    orientation,
    point_in_polygon,
    point_segment_distance,
    round_coord_key,
    segment_intersects_polygon,
    segments_intersect,
)

UNIT_SQUARE = [[(0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0), (0.0, 0.0)]]


def test_haversine_one_degree_of_latitude() -> None:
    d = haversine_distance((0.0, 0.0), (0.0, 1.0))
    assert d == pytest.approx(math.pi * EARTH_RADIUS_M / 180.0, rel=1e-9)


def test_haversine_is_symmetric_and_zero_on_same_point() -> None:
    a, b = (10.0, 50.0), (10.01, 50.02)
    assert haversine_distance(a, b) == pytest.approx(haversine_distance(b, a))
    assert haversine_distance(a, a) == 0.0


def test_orientation_signs() -> None:
    assert orientation((0, 0), (1, 0), (2, 0)) == 0
    assert orientation((0, 0), (1, 0), (1, 1)) == -1
    assert orientation((0, 0), (1, 0), (1, -1)) == 1


@pytest.mark.parametrize(
    "a, b, c, d, expected",
    [
        ((0, 0), (1, 1), (0, 1), (1, 0), True),  # proper crossing
        ((0, 0), (1, 0), (0, 1), (1, 1), False),  # parallel
        ((0, 0), (1, 0), (1, 0), (2, 1), True),  # shared endpoint
        ((0, 0), (2, 0), (1, 0), (3, 0), True),  # collinear overlap
        ((0, 0), (1, 0), (2, 0), (3, 0), False),  # collinear, disjoint
        ((0, 0), (1, 0), (0.5, 0), (0.5, 1), True),  # T junction
    ],
)
def test_segments_intersect(a, b, c, d, expected) -> None:
    assert segments_intersect(a, b, c, d) is expected
    assert segments_intersect(c, d, a, b) is expected


def test_point_in_polygon_square() -> None:
    assert point_in_polygon(0.5, 0.5, UNIT_SQUARE)
    assert not point_in_polygon(1.5, 0.5, UNIT_SQUARE)
    assert not point_in_polygon(-0.1, 0.5, UNIT_SQUARE)


def test_point_inside_hole_still_counts_as_inside() -> None:
    outer = [(0.0, 0.0), (4.0, 0.0), (4.0, 4.0), (0.0, 4.0), (0.0, 0.0)]
    hole = [(1.0, 1.0), (3.0, 1.0), (3.0, 3.0), (1.0, 3.0), (1.0, 1.0)]
    assert point_in_polygon(2.0, 2.0, [outer, hole])


def test_point_segment_distance() -> None:
    assert point_segment_distance((0, 1), (-1, 0), (1, 0)) == pytest.approx(1.0)
    assert point_segment_distance((3, 0), (-1, 0), (1, 0)) == pytest.approx(2.0)
    # Degenerate segment
    assert point_segment_distance((3, 4), (0, 0), (0, 0)) == pytest.approx(5.0)


def test_nearest_point_on_segment_projects_and_clamps() -> None:
    t, x, y, dist2 = nearest_point_on_segment(0.5, 1.0, 0.0, 0.0, 1.0, 0.0)
    assert (t, x, y) == (0.5, 0.5, 0.0)
    assert dist2 == pytest.approx(1.0)

    t, x, y, _ = nearest_point_on_segment(2.0, 0.0, 0.0, 0.0, 1.0, 0.0)
    assert (t, x, y) == (1.0, 1.0, 0.0)


def test_segment_intersects_polygon() -> None:
    assert segment_intersects_polygon((-1.0, 0.5), (2.0, 0.5), UNIT_SQUARE)
    assert segment_intersects_polygon((0.5, 0.5), (0.6, 0.6), UNIT_SQUARE)  # fully inside
    assert not segment_intersects_polygon((-1.0, 2.0), (2.0, 2.0), UNIT_SQUARE)


def test_coord_in_any_obstacle() -> None:
    assert coord_in_any_obstacle((0.5, 0.5), [UNIT_SQUARE])
    assert not coord_in_any_obstacle((5.0, 5.0), [UNIT_SQUARE])
    assert not coord_in_any_obstacle((0.5, 0.5), None)


def test_round_coord_key() -> None:
    assert round_coord_key((1.23456789, 2.0)) == "1.234568,2.000000"
    assert round_coord_key((1.23456789, 2.0), precision=2) == "1.23,2.00"


def test_bbox_helpers() -> None:
    box = BBox.of_polygon(UNIT_SQUARE)
    assert box == BBox(0.0, 0.0, 1.0, 1.0)
    assert bbox_contains_point(box, 1.0, 1.0)
    assert not bbox_contains_point(box, 1.0001, 0.5)
    assert bbox_intersects(box, BBox(1.0, 1.0, 2.0, 2.0))  # touching
    assert not bbox_intersects(box, BBox(1.5, 1.5, 2.0, 2.0))
    assert not BBox.of_points([]).is_finite()
    assert box.to_dict() == {"minLon": 0.0, "minLat": 0.0, "maxLon": 1.0, "maxLat": 1.0}
