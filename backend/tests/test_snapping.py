from __future__ import annotations

import pytest

from route_finder.graph import build_graph
from route_finder.pathfinding import a_star
from route_finder.snapping import (
    SnapConfig,
    SnapError,
    make_runtime_graph_with_snap,
    snap_to_nearest_edge,
)

from conftest import feature, square


@pytest.fixture
def segment_graph():
    return build_graph({
        "type": "FeatureCollection",
        "features": [
            feature("LineString", [[0, 0], [1, 0]]),
            feature("Polygon", [square(2, 2, 1)], type="obstacle"),
        ],
    })


def test_snap_to_nearest_edge(segment_graph) -> None:
    snap = snap_to_nearest_edge(segment_graph, 0.5, 0.1)
    assert (snap.a_id, snap.b_id) == (0, 1)
    assert snap.t == pytest.approx(0.5)
    assert snap.point == pytest.approx((0.5, 0.0))
    assert snap.dist2 == pytest.approx(0.01)


def test_snap_splits_edge_and_attaches_query_points(segment_graph) -> None:
    result = make_runtime_graph_with_snap(segment_graph, (0.5, 0.1), (1.2, 0.0))
    assert result.ok
    runtime = result.graph

    # start: split node + clicked node; end: reuses node 1 + clicked node
    assert runtime.node_count == 5
    assert runtime.nodes[2].key.startswith("snap:")
    assert runtime.nodes[result.start_id].key.startswith("clicked:")
    assert runtime.nodes[result.end_id].coord == (1.2, 0.0)

    path = a_star(runtime, result.start_id, result.end_id)
    assert path.path_ids == [result.start_id, 2, 1, result.end_id]


def test_base_graph_is_untouched(segment_graph) -> None:
    before = segment_graph.to_dict()
    make_runtime_graph_with_snap(segment_graph, (0.5, 0.1), (0.7, -0.1))
    assert segment_graph.to_dict() == before
    assert segment_graph.node_count == 2


def test_both_points_on_the_same_edge(segment_graph) -> None:
    result = make_runtime_graph_with_snap(segment_graph, (0.25, 0.1), (0.75, 0.1))
    assert result.ok
    path = a_star(result.graph, result.start_id, result.end_id)
    assert path.found
    assert path.path_ids[0] == result.start_id
    assert path.path_ids[-1] == result.end_id


def test_projection_near_an_endpoint_reuses_it(segment_graph) -> None:
    result = make_runtime_graph_with_snap(segment_graph, (-0.5, 0.0), (1.5, 0.0))
    # only the two clicked nodes are added
    assert result.graph.node_count == 4


def test_point_inside_obstacle_is_rejected(segment_graph) -> None:
    result = make_runtime_graph_with_snap(segment_graph, (2.5, 2.5), (0.5, 0.1))
    assert not result.ok
    assert result.error == SnapError.POINT_IN_OBSTACLE
    assert result.start_id == -1
    assert result.end_id >= 0


def test_graph_without_edges() -> None:
    empty = build_graph({"type": "FeatureCollection", "features": []})
    result = make_runtime_graph_with_snap(empty, (0.5, 0.5), (1.0, 1.0))
    assert result.error == SnapError.NO_NEARBY_EDGE
    assert snap_to_nearest_edge(empty, 0.5, 0.5) is None


def test_invalid_epsilon() -> None:
    with pytest.raises(ValueError):
        SnapConfig(epsilon=0.5)


def test_snap_inside_square_obstacle_graph() -> None:
    graph = build_graph({
        "type": "FeatureCollection",
        "features": [
            feature("LineString", [[-1, 1], [3, 1]]),
            feature("LineString", [[-1, 3], [3, 3]]),
            feature("Polygon", [[[0, 0], [0, 2], [2, 2], [2, 0], [0, 0]]], type="obstacle"),
        ],
    })
    result = make_runtime_graph_with_snap(graph, (1, 1), (0, 3))
    assert not result.ok
    assert result.error == SnapError.POINT_IN_OBSTACLE
    assert result.start_id == -1
