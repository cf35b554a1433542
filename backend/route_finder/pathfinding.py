"""
Graph Pathfinding

A* over the topology graph (optionally a snapped runtime copy) with two cost
strategies:
- SHORTEST: edge cost = edge weight (meters)
- FEWEST_TURNS: edge weight plus a penalty proportional to the heading change
  at the current node, applied when the turn reaches min_turn_angle

The heuristic is the great-circle distance to the goal. Edge weights are
great-circle distances too, so the heuristic is admissible and consistent and
SHORTEST results are optimal. Dijkstra is kept as an independent validator.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from .geometry import Coordinate, haversine_distance
from .graph import Graph
from .priority_queue import PriorityQueue

logger = logging.getLogger(__name__)


class RouteStrategy(str, Enum):
    SHORTEST = "shortest"
    FEWEST_TURNS = "fewest_turns"


@dataclass
class PathfindingConfig:
    """Configuration for graph A*."""
    strategy: RouteStrategy = RouteStrategy.SHORTEST
    turn_penalty: float = 15.0  # Meters of extra cost per radian of turn
    min_turn_angle: float = math.pi / 12  # ~15 degrees; smaller turns are free

    def __post_init__(self):
        self.strategy = RouteStrategy(self.strategy)
        if self.turn_penalty < 0:
            raise ValueError(f"turn_penalty must be >= 0, got {self.turn_penalty!r}")
        if not 0 <= self.min_turn_angle <= math.pi:
            raise ValueError(f"min_turn_angle must be in [0, pi], got {self.min_turn_angle!r}")


@dataclass
class GraphPath:
    """Result of a graph search. An empty path with infinite length means unreachable."""
    path_ids: List[int] = field(default_factory=list)
    path_coords: List[Coordinate] = field(default_factory=list)
    length: float = math.inf
    nodes_expanded: int = 0

    @property
    def found(self) -> bool:
        return bool(self.path_ids)


# =============================================================================
# TURN GEOMETRY
# =============================================================================

def turn_angle(a: Sequence[float], b: Sequence[float], c: Sequence[float]) -> float:
    """Heading change at b (radians, 0..pi) between a->b and b->c."""
    v1x, v1y = b[0] - a[0], b[1] - a[1]
    v2x, v2y = c[0] - b[0], c[1] - b[1]
    n1 = math.hypot(v1x, v1y)
    n2 = math.hypot(v2x, v2y)
    if not n1 or not n2:
        return 0.0
    cos = (v1x * v2x + v1y * v2y) / (n1 * n2)
    return math.acos(min(1.0, max(-1.0, cos)))


def count_turns(coords: Sequence[Sequence[float]], threshold: float = math.pi / 12) -> int:
    """Number of interior vertices whose turn angle exceeds `threshold`."""
    if not coords or len(coords) < 3:
        return 0
    return sum(
        1 for i in range(1, len(coords) - 1)
        if turn_angle(coords[i - 1], coords[i], coords[i + 1]) > threshold
    )


def _turn_cost(graph: Graph, prev_id: int, current_id: int, to_id: int, config: PathfindingConfig) -> float:
    if prev_id == -1 or prev_id == current_id:
        return 0.0
    angle = turn_angle(graph.nodes[prev_id].coord, graph.nodes[current_id].coord, graph.nodes[to_id].coord)
    if angle < config.min_turn_angle:
        return 0.0
    return config.turn_penalty * angle


# =============================================================================
# SEARCH
# =============================================================================

def _reconstruct_path(
    graph: Graph,
    came_from: Dict[int, int],
    current: int,
    known_length: Optional[float] = None
) -> Tuple[List[int], List[Coordinate], float]:
    ids = [current]
    while current in came_from:
        current = came_from[current]
        ids.append(current)
    ids.reverse()
    coords = [graph.nodes[i].coord for i in ids]

    if known_length is not None:
        return ids, coords, known_length

    # Sum real edge weights; g-scores include turn penalties
    length = 0.0
    for a, b in zip(ids, ids[1:]):
        w = graph.edge_weight(a, b)
        length += w if w is not None else haversine_distance(graph.nodes[a].coord, graph.nodes[b].coord)
    return ids, coords, length


def _valid_endpoints(graph: Graph, start_id: int, goal_id: int) -> bool:
    n = graph.node_count
    return 0 <= start_id < n and 0 <= goal_id < n


def a_star(
    graph: Graph,
    start_id: int,
    goal_id: int,
    config: Optional[PathfindingConfig] = None
) -> GraphPath:
    """
    A* from start_id to goal_id.

    Returns:
        GraphPath; empty with length=inf when the goal is unreachable or an
        endpoint id is invalid (for example -1 from a failed snap).
    """
    config = config or PathfindingConfig()
    if not _valid_endpoints(graph, start_id, goal_id):
        return GraphPath()

    goal = graph.nodes[goal_id]
    use_turns = config.strategy == RouteStrategy.FEWEST_TURNS

    def heuristic(node_id: int) -> float:
        return haversine_distance(graph.nodes[node_id].coord, goal.coord)

    g_score: Dict[int, float] = {start_id: 0.0}
    came_from: Dict[int, int] = {}
    closed = set()
    open_set: PriorityQueue[int] = PriorityQueue()
    open_set.push(start_id, heuristic(start_id))
    nodes_expanded = 0

    while open_set:
        current = open_set.pop()
        if current == goal_id:
            ids, coords, length = _reconstruct_path(graph, came_from, current)
            return GraphPath(ids, coords, length, nodes_expanded)
        closed.add(current)
        nodes_expanded += 1

        prev = came_from.get(current, -1)
        for edge in graph.adjacency[current]:
            if edge.to in closed:
                continue
            extra = _turn_cost(graph, prev, current, edge.to, config) if use_turns else 0.0
            tentative = g_score[current] + edge.w + extra
            if tentative < g_score.get(edge.to, math.inf):
                came_from[edge.to] = current
                g_score[edge.to] = tentative
                open_set.push(edge.to, tentative + heuristic(edge.to))

    logger.debug("[Pathfinder] A* exhausted after %d expansions, no path %d -> %d", nodes_expanded, start_id, goal_id)
    return GraphPath(nodes_expanded=nodes_expanded)


def dijkstra(graph: Graph, start_id: int, goal_id: int) -> GraphPath:
    """Plain Dijkstra on edge weights; used to validate A* results."""
    if not _valid_endpoints(graph, start_id, goal_id):
        return GraphPath()

    dist: Dict[int, float] = {start_id: 0.0}
    came_from: Dict[int, int] = {}
    closed = set()
    open_set: PriorityQueue[int] = PriorityQueue()
    open_set.push(start_id, 0.0)
    nodes_expanded = 0

    while open_set:
        current = open_set.pop()
        if current == goal_id:
            ids, coords, length = _reconstruct_path(graph, came_from, current, dist[current])
            return GraphPath(ids, coords, length, nodes_expanded)
        closed.add(current)
        nodes_expanded += 1

        for edge in graph.adjacency[current]:
            if edge.to in closed:
                continue
            tentative = dist[current] + edge.w
            if tentative < dist.get(edge.to, math.inf):
                came_from[edge.to] = current
                dist[edge.to] = tentative
                open_set.push(edge.to, tentative)

    return GraphPath(nodes_expanded=nodes_expanded)
