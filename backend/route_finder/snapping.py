"""
Edge snapping for arbitrary query coordinates.

A query point is projected onto the closest graph edge. The projection
becomes an anchor (an existing endpoint, or a new node splitting the edge)
and the query point itself is attached to the anchor. All insertions happen
on a private copy; the shared base graph is never touched.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple

from .geometry import coord_in_any_obstacle, haversine_distance, nearest_point_on_segment
from .graph import Graph

logger = logging.getLogger(__name__)


class SnapError(str, Enum):
    POINT_IN_OBSTACLE = "point_in_obstacle"
    NO_NEARBY_EDGE = "no_nearby_edge"


@dataclass
class SnapConfig:
    epsilon: float = 1e-6  # Projection parameter tolerance for reusing an endpoint

    def __post_init__(self):
        if not 0 <= self.epsilon < 0.5:
            raise ValueError(f"epsilon must be in [0, 0.5), got {self.epsilon!r}")


@dataclass(frozen=True)
class EdgeSnap:
    """Closest point on the closest edge."""
    a_id: int
    b_id: int
    t: float
    point: Tuple[float, float]
    dist2: float


@dataclass
class SnapResult:
    graph: Graph
    start_id: int
    end_id: int
    error: Optional[SnapError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def snap_to_nearest_edge(graph: Graph, lon: float, lat: float) -> Optional[EdgeSnap]:
    """Global nearest edge by squared planar distance; None if the graph has no edges."""
    best: Optional[EdgeSnap] = None
    best_dist2 = math.inf
    for a_id, b_id, _ in graph.iter_edges():
        a = graph.nodes[a_id]
        b = graph.nodes[b_id]
        t, x, y, dist2 = nearest_point_on_segment(lon, lat, a.lon, a.lat, b.lon, b.lat)
        if dist2 < best_dist2:
            best_dist2 = dist2
            best = EdgeSnap(a_id, b_id, t, (x, y), dist2)
    return best


def _ensure_edge_anchor(graph: Graph, snap: EdgeSnap, epsilon: float) -> int:
    """Reuse an endpoint when the projection is at the end, else split the edge."""
    if snap.t <= epsilon:
        return snap.a_id
    if 1 - snap.t <= epsilon:
        return snap.b_id

    lon, lat = snap.point
    anchor_id = graph.add_node(lon, lat, f"snap:{lon},{lat}")
    a = graph.nodes[snap.a_id]
    b = graph.nodes[snap.b_id]
    graph.add_undirected_edge(anchor_id, snap.a_id, haversine_distance(a.coord, snap.point))
    graph.add_undirected_edge(anchor_id, snap.b_id, haversine_distance(snap.point, b.coord))
    return anchor_id


def _insert_query_coord(
    graph: Graph,
    base: Graph,
    coord: Sequence[float],
    epsilon: float
) -> Tuple[int, Optional[SnapError]]:
    if coord_in_any_obstacle(coord, base.obstacles):
        return -1, SnapError.POINT_IN_OBSTACLE

    # Candidates come from the base graph only, never from edges added for the other endpoint
    snap = snap_to_nearest_edge(base, coord[0], coord[1])
    if snap is None:
        return -1, SnapError.NO_NEARBY_EDGE

    anchor_id = _ensure_edge_anchor(graph, snap, epsilon)
    coord_id = graph.add_node(float(coord[0]), float(coord[1]), f"clicked:{coord[0]},{coord[1]}")
    graph.add_undirected_edge(coord_id, anchor_id, haversine_distance(coord, snap.point))
    return coord_id, None


def make_runtime_graph_with_snap(
    graph: Graph,
    start: Sequence[float],
    end: Sequence[float],
    config: Optional[SnapConfig] = None
) -> SnapResult:
    """
    Copy the base graph and attach the start/end coordinates to it.

    Returns:
        SnapResult with the runtime graph and query node ids. On failure the
        failing endpoint id is -1 and `error` holds the first error (start
        before end).
    """
    config = config or SnapConfig()
    runtime = graph.copy()

    start_id, start_error = _insert_query_coord(runtime, graph, start, config.epsilon)
    end_id, end_error = _insert_query_coord(runtime, graph, end, config.epsilon)
    error = start_error or end_error
    if error is not None:
        logger.info("[Snap] Query rejected: %s", error.value)

    return SnapResult(graph=runtime, start_id=start_id, end_id=end_id, error=error)
