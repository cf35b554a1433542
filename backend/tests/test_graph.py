from __future__ import annotations

import pytest

from route_finder.geometry import haversine_distance, point_in_polygon, segment_intersects_polygon
from route_finder.graph import GraphBuildConfig, GraphBuilder, build_graph

from conftest import feature, square


def _fc(*features):
    return {"type": "FeatureCollection", "features": list(features)}


def _assert_symmetric(graph) -> None:
    for a_id, edges in enumerate(graph.adjacency):
        for edge in edges:
            back = [e.w for e in graph.adjacency[edge.to] if e.to == a_id]
            assert edge.w in back


def test_shared_endpoints_are_deduplicated() -> None:
    graph = build_graph(_fc(
        feature("LineString", [[0, 0], [1, 0]]),
        feature("LineString", [[1, 0], [1, 1]]),
    ))
    assert graph.node_count == 3
    assert graph.edge_count == 2
    assert graph.node_by_key["1.000000,0.000000"] == 1


def test_precision_merges_nearby_coordinates() -> None:
    fc = _fc(
        feature("LineString", [[0, 0], [1, 0]]),
        feature("LineString", [[1.00000001, 0], [2, 0]]),
    )
    assert build_graph(fc).node_count == 3
    assert build_graph(fc, GraphBuildConfig(precision=9)).node_count == 4


def test_multilinestring_and_non_line_features() -> None:
    graph = build_graph(_fc(
        feature("MultiLineString", [[[0, 0], [1, 0]], [[5, 5], [6, 5]]]),
        feature("Point", [3, 3]),
        {"type": "Feature", "geometry": None, "properties": {}},
    ))
    assert graph.node_count == 4
    assert graph.edge_count == 2


def test_self_loops_are_ignored() -> None:
    graph = build_graph(_fc(feature("LineString", [[0, 0], [0, 0], [1, 0]])))
    assert graph.node_count == 2
    assert graph.edge_count == 1


def test_edge_weights_are_haversine_meters() -> None:
    graph = build_graph(_fc(feature("LineString", [[10, 50], [10.01, 50]])))
    assert graph.edge_weight(0, 1) == pytest.approx(haversine_distance((10, 50), (10.01, 50)))
    assert graph.total_weight() == pytest.approx(graph.edge_weight(0, 1))
    assert graph.edge_weight(0, 0) is None


def test_adjacency_is_symmetric() -> None:
    graph = build_graph(_fc(
        feature("LineString", [[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]),
        feature("LineString", [[0, 0], [1, 1]]),
        feature("Polygon", [square(0.4, 0.6, 0.1)], type="obstacle"),
    ))
    _assert_symmetric(graph)


def test_square_obstacle_blocks_inner_node_and_crossing_edges() -> None:
    graph = build_graph(_fc(
        feature("LineString", [[-1, 0.5], [0.5, 0.5], [2, 0.5]]),  # vertex inside
        feature("LineString", [[-1, 0.2], [2, 0.2]]),  # crosses without a vertex inside
        feature("LineString", [[-1, 2], [2, 2]]),  # clear of the obstacle
        feature("Polygon", [square(0, 0, 1)], type="obstacle"),
    ))
    inner = graph.node_by_key["0.500000,0.500000"]
    assert inner in graph.blocked
    assert graph.adjacency[inner] == []
    assert graph.edge_count == 1

    kept = list(graph.iter_edges())
    a_id, b_id, _ = kept[0]
    assert {graph.nodes[a_id].coord, graph.nodes[b_id].coord} == {(-1.0, 2.0), (2.0, 2.0)}


def test_filter_can_be_disabled() -> None:
    fc = _fc(
        feature("LineString", [[-1, 0.5], [2, 0.5]]),
        feature("Polygon", [square(0, 0, 1)], type="obstacle"),
    )
    graph = build_graph(fc, GraphBuildConfig(filter_obstacles=False))
    assert graph.edge_count == 1
    assert len(graph.obstacles) == 1
    assert graph.blocked == set()


def test_rebuild_is_idempotent() -> None:
    fc = _fc(
        feature("LineString", [[0, 0], [1, 0], [1, 1]]),
        feature("LineString", [[1, 1], [0, 1], [0, 0]]),
        feature("Polygon", [square(0.4, 0.4, 0.2)], type="obstacle"),
    )
    assert build_graph(fc).to_dict() == build_graph(fc).to_dict()


def test_to_dict_contract() -> None:
    graph = build_graph(_fc(
        feature("LineString", [[0, 0], [1, 0]]),
        feature("Polygon", [square(5, 5, 1)], walkable=False),
    ))
    out = graph.to_dict()
    assert set(out) == {"nodes", "adjacency", "obstacles"}
    assert out["nodes"][0] == {"id": 0, "lon": 0.0, "lat": 0.0}
    assert out["adjacency"][0][0]["to"] == 1
    assert out["obstacles"][0][0][0] == [5.0, 5.0]


def test_copy_does_not_touch_the_base_graph() -> None:
    graph = build_graph(_fc(feature("LineString", [[0, 0], [1, 0]])))
    runtime = graph.copy()
    new_id = runtime.add_node(0.5, 0.5, "snap:0.5,0.5")
    runtime.add_undirected_edge(new_id, 0, 10.0)

    assert graph.node_count == 2
    assert len(graph.adjacency[0]) == 1
    assert runtime.node_count == 3
    assert len(runtime.adjacency[0]) == 2


def test_builder_ignores_non_finite_weights() -> None:
    builder = GraphBuilder()
    a = builder.add_node((0, 0))
    b = builder.add_node((1, 0))
    builder.add_edge(a, b, float("nan"))
    assert builder.build().edge_count == 0


def test_invalid_precision_raises() -> None:
    with pytest.raises(ValueError):
        GraphBuildConfig(precision=-1)


def test_line_through_square_obstacle_keeps_no_crossing_edge() -> None:
    obstacle = [[0, 0], [0, 2], [2, 2], [2, 0], [0, 0]]
    graph = build_graph(_fc(
        feature("LineString", [[-1, 1], [3, 1]]),
        feature("Polygon", [obstacle], type="obstacle"),
    ))
    rings = graph.obstacles[0]
    assert point_in_polygon(1, 1, rings)
    assert not point_in_polygon(-1, 1, rings)
    assert graph.node_count == 2
    for a_id, b_id, _ in graph.iter_edges():
        assert not segment_intersects_polygon(graph.nodes[a_id].coord, graph.nodes[b_id].coord, rings)
    assert graph.edge_count == 0
    _assert_symmetric(graph)
