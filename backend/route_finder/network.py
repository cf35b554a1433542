"""
Route Network Snapshot

One loaded FeatureCollection turned into everything a route query needs:
the obstacle-filtered topology graph, a spatial index over its usable nodes
and the grid settings for queries the graph cannot serve.

Routing is graph-first:
1. Snap start/end onto the graph (private copy) and run A*
2. If no edge is near enough or no path exists and the caller allows it, plan
   on an occupancy grid around the snapshot's obstacles instead

A query point inside an obstacle is rejected outright, never handed to the grid.
Grids are built per request; nothing is cached on the snapshot.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .geometry import BBox, Coordinate, haversine_distance
from .graph import Graph, GraphBuildConfig, build_graph
from .grid_planner import GridCache, GridConfig, GridPathPlanner, PlanQuery
from .pathfinding import PathfindingConfig, RouteStrategy, a_star, count_turns, dijkstra
from .snapping import SnapConfig, SnapError, make_runtime_graph_with_snap
from .spatial_index import SpatialIndex

logger = logging.getLogger(__name__)


@dataclass
class RouteOptions:
    strategy: RouteStrategy = RouteStrategy.SHORTEST
    turn_penalty: float = 15.0
    fallback_to_grid: bool = False
    validate: bool = False  # Cross-check SHORTEST routes against Dijkstra


@dataclass
class RouteOutcome:
    ok: bool
    source: str  # "graph" or "grid"
    coords: List[Coordinate] = field(default_factory=list)
    length_m: float = math.inf
    turns: int = 0
    partial: bool = False
    error: Optional[str] = None
    stats: Dict[str, Any] = field(default_factory=dict)


def path_length_m(coords: Sequence[Sequence[float]]) -> float:
    return sum(haversine_distance(a, b) for a, b in zip(coords, coords[1:]))


class RouteNetwork:
    """Immutable routing snapshot; safe to share between concurrent queries."""

    def __init__(
        self,
        feature_collection: Dict[str, Any],
        graph_config: Optional[GraphBuildConfig] = None,
        cell_deg: float = 0.01,
        grid_config: Optional[GridConfig] = None,
        snap_config: Optional[SnapConfig] = None
    ):
        self.graph: Graph = build_graph(feature_collection, graph_config)
        usable = [n for n in self.graph.nodes if n.id not in self.graph.blocked]
        self.index = SpatialIndex(usable, cell_deg=cell_deg)
        bbox = self.graph.bbox()
        self.bbox: Optional[BBox] = bbox if bbox.is_finite() else None
        self.snap_config = snap_config or SnapConfig()
        self.grid_config = grid_config or GridConfig()
        logger.info(
            "[Network] Snapshot ready: %d nodes (%d usable), %d edges, %d obstacles",
            self.graph.node_count, len(usable), self.graph.edge_count, len(self.graph.obstacles)
        )

    @property
    def obstacles(self):
        return self.graph.obstacles

    def nearest(self, lon: float, lat: float, expand_max: int = 10) -> int:
        return self.index.nearest(lon, lat, expand_max)

    def summary(self) -> Dict[str, Any]:
        return {
            "nodes": self.graph.node_count,
            "edges": self.graph.edge_count,
            "blocked_nodes": len(self.graph.blocked),
            "obstacles": len(self.graph.obstacles),
            "bbox": self.bbox.to_dict() if self.bbox else None,
        }

    def route(self, start: Coordinate, end: Coordinate, options: Optional[RouteOptions] = None) -> RouteOutcome:
        """
        Route between two arbitrary coordinates.

        Returns:
            RouteOutcome; `error` holds the snap error, "no-path", or the grid
            planner's error code when the fallback ran and failed too
        """
        options = options or RouteOptions()
        snap = make_runtime_graph_with_snap(self.graph, start, end, self.snap_config)

        if snap.ok:
            config = PathfindingConfig(strategy=options.strategy, turn_penalty=options.turn_penalty)
            path = a_star(snap.graph, snap.start_id, snap.end_id, config)
            if path.found:
                stats: Dict[str, Any] = {"nodes_expanded": path.nodes_expanded, "points": len(path.path_coords)}
                if options.validate and options.strategy == RouteStrategy.SHORTEST:
                    check = dijkstra(snap.graph, snap.start_id, snap.end_id)
                    stats["dijkstra_length_m"] = check.length
                    if not math.isclose(check.length, path.length, rel_tol=1e-9, abs_tol=1e-6):
                        logger.warning(
                            "[Network] A* length %.3f differs from Dijkstra %.3f",
                            path.length, check.length
                        )
                return RouteOutcome(
                    ok=True,
                    source="graph",
                    coords=path.path_coords,
                    length_m=path.length,
                    turns=count_turns(path.path_coords),
                    stats=stats,
                )
            error = "no-path"
        elif snap.error is SnapError.POINT_IN_OBSTACLE:
            return RouteOutcome(ok=False, source="graph", error=snap.error.value)
        else:
            error = snap.error.value

        if not options.fallback_to_grid:
            return RouteOutcome(ok=False, source="graph", error=error)

        logger.info("[Network] Graph route failed (%s), falling back to grid planner", error)
        cache = GridCache()
        planner = GridPathPlanner(self.grid_config, cache=cache)
        result = planner.plan(PlanQuery(
            start_lon=start[0],
            start_lat=start[1],
            end_lon=end[0],
            end_lat=end[1],
            obstacles=self.graph.obstacles,
            bbox_nodes=self.bbox,
        ))
        stats = {
            "graph_error": error,
            "iterations": result.iterations,
            "retried": result.retried,
            "grid_cache_hits": cache.hits,
        }
        if not result.ok:
            return RouteOutcome(ok=False, source="grid", error=result.error.value, stats=stats)
        return RouteOutcome(
            ok=True,
            source="grid",
            coords=result.path,
            length_m=path_length_m(result.path),
            turns=count_turns(result.path),
            partial=result.partial,
            stats=stats,
        )
