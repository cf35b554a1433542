"""
Topology Graph Builder

Turns LineString/MultiLineString features into an undirected node/edge graph:
- Nodes are deduplicated by a rounded coordinate key
- Edges are weighted by great-circle distance (meters) and stored once per endpoint
- Optional obstacle filtering removes edges touching blocked nodes or crossing obstacles

The built graph is treated as read-only. Anything that needs extra nodes
(snapping) works on Graph.copy().
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from .geometry import (
    BBox,
    Coordinate,
    Polygon,
    bbox_contains_point,
    bbox_from_nodes,
    bbox_intersects,
    haversine_distance,
    point_in_polygon,
    round_coord_key,
    segment_intersects_polygon,
)
from .obstacles import ObstacleClassifier, extract_obstacles

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class GraphBuildConfig:
    """Configuration for graph construction."""
    precision: int = 6  # Decimal places of the dedup key
    filter_obstacles: bool = True  # Drop nodes/edges inside or across obstacles
    is_obstacle: Optional[ObstacleClassifier] = None  # None = default classifier

    def __post_init__(self):
        if not isinstance(self.precision, int) or not 0 <= self.precision <= 15:
            raise ValueError(f"precision must be an int in [0, 15], got {self.precision!r}")


# =============================================================================
# GRAPH TYPES
# =============================================================================

@dataclass(frozen=True)
class GraphNode:
    id: int
    lon: float
    lat: float
    key: str

    @property
    def coord(self) -> Coordinate:
        return (self.lon, self.lat)


@dataclass(frozen=True)
class Edge:
    to: int
    w: float  # meters


@dataclass
class Graph:
    """
    Node array plus adjacency lists indexed by node id.

    `obstacles` travels with the graph so snapping can reject query points
    inside blocked regions. `blocked` holds ids of nodes that fell inside an
    obstacle; they keep their id but have no edges.
    """
    nodes: List[GraphNode]
    adjacency: List[List[Edge]]
    obstacles: List[Polygon] = field(default_factory=list)
    node_by_key: Dict[str, int] = field(default_factory=dict)
    blocked: Set[int] = field(default_factory=set)

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def edge_count(self) -> int:
        """Number of undirected edges."""
        return sum(len(edges) for edges in self.adjacency) // 2

    def total_weight(self) -> float:
        """Sum of undirected edge weights."""
        return sum(e.w for edges in self.adjacency for e in edges) / 2.0

    def bbox(self) -> BBox:
        return bbox_from_nodes(self.nodes)

    def edge_weight(self, a: int, b: int) -> Optional[float]:
        """Lightest edge between a and b (parallel edges can differ after key rounding)."""
        weights = [edge.w for edge in self.adjacency[a] if edge.to == b]
        return min(weights) if weights else None

    def iter_edges(self):
        """Yield each undirected edge once as (a_id, b_id, w)."""
        for a_id, edges in enumerate(self.adjacency):
            for edge in edges:
                if edge.to > a_id:
                    yield a_id, edge.to, edge.w

    def copy(self) -> 'Graph':
        """Full copy of the node array and adjacency lists (obstacles shared, read-only)."""
        return Graph(
            nodes=list(self.nodes),
            adjacency=[list(edges) for edges in self.adjacency],
            obstacles=self.obstacles,
            node_by_key=dict(self.node_by_key),
            blocked=set(self.blocked),
        )

    def add_node(self, lon: float, lat: float, key: str) -> int:
        """Append an ephemeral node (used on copies only)."""
        node_id = len(self.nodes)
        self.nodes.append(GraphNode(node_id, lon, lat, key))
        self.adjacency.append([])
        return node_id

    def add_undirected_edge(self, a: int, b: int, w: float) -> None:
        if a == b or not math.isfinite(w):
            return
        self.adjacency[a].append(Edge(b, w))
        self.adjacency[b].append(Edge(a, w))

    def to_dict(self) -> Dict[str, Any]:
        """Graph output contract for rendering/UI collaborators."""
        return {
            "nodes": [{"id": n.id, "lon": n.lon, "lat": n.lat} for n in self.nodes],
            "adjacency": [[{"to": e.to, "w": e.w} for e in edges] for edges in self.adjacency],
            "obstacles": [[[list(p) for p in ring] for ring in rings] for rings in self.obstacles],
        }


# =============================================================================
# BUILDER
# =============================================================================

class GraphBuilder:
    """Owns the node-dedup map and adjacency while a graph is being built."""

    def __init__(self, precision: int = 6):
        self.precision = precision
        self.node_by_key: Dict[str, int] = {}
        self.nodes: List[GraphNode] = []
        self.adjacency: List[List[Edge]] = []

    def add_node(self, coord: Sequence[float]) -> int:
        key = round_coord_key(coord, self.precision)
        node_id = self.node_by_key.get(key)
        if node_id is None:
            node_id = len(self.nodes)
            self.node_by_key[key] = node_id
            self.nodes.append(GraphNode(node_id, float(coord[0]), float(coord[1]), key))
            self.adjacency.append([])
        return node_id

    def add_edge(self, a_id: int, b_id: int, w: float) -> None:
        """Add an undirected edge. Self-loops and non-finite weights are ignored."""
        if a_id == b_id or not math.isfinite(w):
            return
        self.adjacency[a_id].append(Edge(b_id, w))
        self.adjacency[b_id].append(Edge(a_id, w))

    def add_line(self, coords: Sequence[Sequence[float]]) -> None:
        for i in range(len(coords) - 1):
            a_id = self.add_node(coords[i])
            b_id = self.add_node(coords[i + 1])
            self.add_edge(a_id, b_id, haversine_distance(coords[i], coords[i + 1]))

    def build(self, obstacles: Optional[List[Polygon]] = None) -> Graph:
        return Graph(
            nodes=self.nodes,
            adjacency=self.adjacency,
            obstacles=obstacles or [],
            node_by_key=self.node_by_key,
        )


def filter_graph_by_obstacles(graph: Graph, obstacles: List[Polygon]) -> Graph:
    """
    Remove everything the obstacles block.

    Nodes inside any obstacle are marked blocked; an edge is dropped when
    either endpoint is blocked or its segment intersects an obstacle. Each
    undirected edge is decided once so both stored directions agree.
    """
    if not obstacles:
        return graph

    boxes = [BBox.of_polygon(rings) for rings in obstacles]
    blocked: Set[int] = set()
    for node in graph.nodes:
        for rings, box in zip(obstacles, boxes):
            if not bbox_contains_point(box, node.lon, node.lat):
                continue
            if point_in_polygon(node.lon, node.lat, rings):
                blocked.add(node.id)
                break

    decisions: Dict[Tuple[int, int], bool] = {}

    def crosses(a_id: int, b_id: int) -> bool:
        pair = (a_id, b_id) if a_id < b_id else (b_id, a_id)
        cached = decisions.get(pair)
        if cached is not None:
            return cached
        a = graph.nodes[pair[0]].coord
        b = graph.nodes[pair[1]].coord
        seg_box = BBox.of_segment(a, b)
        hit = False
        for rings, box in zip(obstacles, boxes):
            if not bbox_intersects(seg_box, box):
                continue
            if segment_intersects_polygon(a, b, rings):
                hit = True
                break
        decisions[pair] = hit
        return hit

    adjacency: List[List[Edge]] = []
    dropped = 0
    for a_id, edges in enumerate(graph.adjacency):
        kept: List[Edge] = []
        for edge in edges:
            if a_id in blocked or edge.to in blocked or crosses(a_id, edge.to):
                dropped += 1
                continue
            kept.append(edge)
        adjacency.append(kept)

    logger.info(
        "[Graph] Obstacle filter: %d blocked nodes, %d directed edges dropped",
        len(blocked), dropped
    )
    return Graph(
        nodes=graph.nodes,
        adjacency=adjacency,
        obstacles=obstacles,
        node_by_key=graph.node_by_key,
        blocked=blocked,
    )


def build_graph(
    feature_collection: Optional[Dict[str, Any]],
    config: Optional[GraphBuildConfig] = None
) -> Graph:
    """
    Build the base topology graph from a feature collection.

    Args:
        feature_collection: GeoJSON FeatureCollection dict
        config: Build options (precision, obstacle filtering, classifier)

    Returns:
        Graph carrying the extracted obstacles
    """
    config = config or GraphBuildConfig()
    builder = GraphBuilder(precision=config.precision)

    for feature in (feature_collection or {}).get("features") or []:
        geometry = (feature or {}).get("geometry")
        if not geometry:
            continue
        if geometry.get("type") == "LineString":
            builder.add_line(geometry.get("coordinates") or [])
        elif geometry.get("type") == "MultiLineString":
            for line in geometry.get("coordinates") or []:
                builder.add_line(line)

    obstacles = extract_obstacles(feature_collection, config.is_obstacle)
    graph = builder.build(obstacles)
    logger.info(
        "[Graph] Built %d nodes, %d edges, %d obstacles",
        graph.node_count, graph.edge_count, len(obstacles)
    )

    if config.filter_obstacles:
        graph = filter_graph_by_obstacles(graph, obstacles)
    return graph
