"""
Occupancy-Grid Path Planner

Self-contained planner used when the topology graph cannot serve a query:
1. Size a lattice over the start/end span (padded), density scaled by distance
2. Block lattice points inside obstacles or too close to walls
3. Connect 8-neighbours whose connecting segment is collision free
4. Snap start/end to the nearest free lattice points
5. Bounded-iteration A*; on budget exhaustion return the partial route
   that got closest to the goal
6. If nothing was found, retry once on a wider, coarser grid
7. Prune near-collinear points and pin the ends to the query coordinates

Every grid is built per query and discarded afterwards.
"""

import logging
import math
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.ndimage import label

from .geometry import (
    BBox,
    Coordinate,
    Polygon,
    bbox_contains_point,
    bbox_intersects,
    point_in_polygon,
    point_segment_distance,
    segment_intersects_polygon,
    segments_intersect,
)
from .priority_queue import PriorityQueue

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Dict[str, Any]], None]
Wall = Tuple[Coordinate, Coordinate]

# 8-connectivity (row_delta, col_delta)
DIRECTIONS = [
    (0, 1), (1, 0), (0, -1), (-1, 0),
    (1, 1), (1, -1), (-1, 1), (-1, -1),
]


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class GridConfig:
    """
    Configuration for the occupancy-grid planner.

    Column count grows with the query diagonal:
        cols = base_cols + diagonal / base_resolution * 10
    clamped to [min_cols, max_cols]; rows follow the aspect ratio and are
    clamped to [min_rows, max_rows].
    """

    # === Grid Size ===
    min_cols: int = 40
    max_cols: int = 200
    min_rows: int = 30
    max_rows: int = 200
    base_cols: int = 60
    base_resolution: float = 0.0001  # Degrees

    # === Bounding Box ===
    padding_factor: float = 0.3  # Fraction of the start/end span added on each side
    padding_margin: float = 1e-4  # Degrees added on top of the proportional padding

    # === Retry Grid ===
    retry_padding_factor: float = 0.5
    retry_density: float = 0.7  # Retry columns = base_cols * retry_density

    # === Collision ===
    wall_clearance: float = 0.3  # Fraction of the smaller cell side

    # === Search ===
    search_radius: int = 5  # Window (cells) for locating the nearest free point
    iteration_factor: int = 2  # Iteration budget = node_count * iteration_factor
    checkpoint_interval: int = 1000

    # === Post-processing ===
    collinear_cosine: float = 0.995  # Interior points at or above this |cos| are dropped

    def __post_init__(self):
        if not 1 <= self.min_cols <= self.max_cols:
            raise ValueError(f"need 1 <= min_cols <= max_cols, got {self.min_cols}, {self.max_cols}")
        if not 1 <= self.min_rows <= self.max_rows:
            raise ValueError(f"need 1 <= min_rows <= max_rows, got {self.min_rows}, {self.max_rows}")
        if self.base_resolution <= 0:
            raise ValueError("base_resolution must be positive")
        if self.padding_factor < 0 or self.retry_padding_factor < 0 or self.padding_margin < 0:
            raise ValueError("padding values must be >= 0")
        if not 0 < self.retry_density <= 1:
            raise ValueError("retry_density must be in (0, 1]")
        if self.wall_clearance < 0:
            raise ValueError("wall_clearance must be >= 0")
        if self.search_radius < 0 or self.iteration_factor < 1 or self.checkpoint_interval < 1:
            raise ValueError("search_radius, iteration_factor and checkpoint_interval out of range")
        if not 0 < self.collinear_cosine <= 1:
            raise ValueError("collinear_cosine must be in (0, 1]")


class PlanError(str, Enum):
    INVALID_COORDINATES = "invalid-coordinates"
    ZERO_COORDINATES = "zero-coordinates"
    NEARBY_GRID_FAIL = "nearby-grid-fail"
    NO_PATH = "no-path"


# =============================================================================
# QUERY / RESULT
# =============================================================================

@dataclass
class PlanQuery:
    start_lon: float
    start_lat: float
    end_lon: float
    end_lat: float
    obstacles: List[Polygon] = field(default_factory=list)
    walls: List[Wall] = field(default_factory=list)
    bbox_nodes: Optional[BBox] = None  # Outer clamp for the grid bounds


@dataclass
class PlanResult:
    """
    Outcome of a grid planning query.

    `partial` is True when the iteration budget ran out and `path` ends at
    the explored point closest to the goal instead of the goal itself. The
    path is still returned with ok=True.
    """
    ok: bool
    path: List[Coordinate] = field(default_factory=list)
    error: Optional[PlanError] = None
    partial: bool = False
    iterations: int = 0
    retried: bool = False

    def to_response(self) -> Dict[str, Any]:
        if not self.ok:
            return {"ok": False, "error": self.error.value if self.error else "no-path"}
        return {
            "ok": True,
            "path": [{"lon": lon, "lat": lat} for lon, lat in self.path],
            "partial": self.partial,
        }


@dataclass(frozen=True)
class ObstacleMeta:
    rings: Polygon
    bbox: BBox


@dataclass(frozen=True)
class WallMeta:
    a: Coordinate
    b: Coordinate
    bbox: BBox


def build_obstacle_meta(obstacles: Optional[List[Polygon]]) -> List[ObstacleMeta]:
    return [ObstacleMeta(rings, BBox.of_polygon(rings)) for rings in obstacles or [] if rings]


def build_wall_meta(walls: Optional[Sequence[Sequence[Sequence[float]]]]) -> List[WallMeta]:
    out = []
    for wall in walls or []:
        a = (float(wall[0][0]), float(wall[0][1]))
        b = (float(wall[1][0]), float(wall[1][1]))
        out.append(WallMeta(a, b, BBox.of_segment(a, b)))
    return out


# =============================================================================
# OCCUPANCY GRID
# =============================================================================

@dataclass
class OccupancyGrid:
    """
    Lattice of (rows + 1) x (cols + 1) points over `bounds`.

    Point (r, c) sits at (min_lon + c * cell_lon, min_lat + r * cell_lat)
    and has flat index r * (cols + 1) + c.
    """
    bounds: BBox
    cols: int
    rows: int
    cell_lon: float
    cell_lat: float
    node_lon: np.ndarray  # float64, flat
    node_lat: np.ndarray
    blocked: np.ndarray  # bool, shape (rows + 1, cols + 1)
    adjacency: List[List[Tuple[int, float]]]

    @property
    def node_count(self) -> int:
        return (self.rows + 1) * (self.cols + 1)

    @property
    def free(self) -> np.ndarray:
        """Flat mask of points with at least one usable edge."""
        return np.fromiter((bool(edges) for edges in self.adjacency), dtype=bool, count=self.node_count)

    def index(self, row: int, col: int) -> int:
        return row * (self.cols + 1) + col

    def coord(self, idx: int) -> Coordinate:
        return (float(self.node_lon[idx]), float(self.node_lat[idx]))


def _js_round(value: float) -> int:
    """Round half up (not Python's banker's rounding)."""
    return int(math.floor(value + 0.5))


def grid_bounds(
    start: Coordinate,
    end: Coordinate,
    bbox_nodes: Optional[BBox],
    padding_factor: float,
    padding_margin: float
) -> BBox:
    """Padded start/end span, clamped to bbox_nodes when provided."""
    min_lon, max_lon = min(start[0], end[0]), max(start[0], end[0])
    min_lat, max_lat = min(start[1], end[1]), max(start[1], end[1])

    if not all(math.isfinite(v) for v in (min_lon, min_lat, max_lon, max_lat)):
        if bbox_nodes is None:
            raise ValueError("non-finite query span and no bbox_nodes to fall back on")
        min_lon, min_lat, max_lon, max_lat = (
            bbox_nodes.min_lon, bbox_nodes.min_lat, bbox_nodes.max_lon, bbox_nodes.max_lat
        )

    pad_lon = (max_lon - min_lon) * padding_factor + padding_margin
    pad_lat = (max_lat - min_lat) * padding_factor + padding_margin
    min_lon -= pad_lon
    max_lon += pad_lon
    min_lat -= pad_lat
    max_lat += pad_lat

    if bbox_nodes is not None:
        min_lon = max(bbox_nodes.min_lon, min_lon)
        max_lon = min(bbox_nodes.max_lon, max_lon)
        min_lat = max(bbox_nodes.min_lat, min_lat)
        max_lat = min(bbox_nodes.max_lat, max_lat)

    return BBox(min_lon, min_lat, max_lon, max_lat)


def grid_dimensions(bounds: BBox, config: GridConfig, cols: Optional[int] = None) -> Tuple[int, int]:
    """(cols, rows) for a grid over `bounds`; `cols` overrides the distance-based density."""
    lon_span = max(bounds.max_lon - bounds.min_lon, 1e-6)
    lat_span = max(bounds.max_lat - bounds.min_lat, 1e-6)

    if cols is None:
        diagonal = math.hypot(lon_span, lat_span)
        cols = _js_round(min(config.base_cols + (diagonal / config.base_resolution) * 10, config.max_cols))
    cols = max(config.min_cols, min(cols, config.max_cols))

    rows = _js_round((lat_span / lon_span) * cols)
    rows = max(config.min_rows, min(rows, config.max_rows))
    return cols, rows


def _segment_blocked(
    a: Coordinate, b: Coordinate,
    obstacles: List[ObstacleMeta],
    walls: List[WallMeta]
) -> bool:
    seg_box = BBox.of_segment(a, b)
    for om in obstacles:
        if bbox_intersects(seg_box, om.bbox) and segment_intersects_polygon(a, b, om.rings):
            return True
    for wm in walls:
        if bbox_intersects(seg_box, wm.bbox) and segments_intersect(a, b, wm.a, wm.b):
            return True
    return False


def build_grid(
    bounds: BBox,
    cols: int,
    rows: int,
    obstacles: List[ObstacleMeta],
    walls: List[WallMeta],
    wall_clearance: float = 0.3
) -> OccupancyGrid:
    """Classify lattice points and connect collision-free 8-neighbours."""
    lon_span = max(bounds.max_lon - bounds.min_lon, 1e-6)
    lat_span = max(bounds.max_lat - bounds.min_lat, 1e-6)
    cell_lon = lon_span / cols
    cell_lat = lat_span / rows
    clearance = min(cell_lon, cell_lat) * wall_clearance

    lons = bounds.min_lon + np.arange(cols + 1, dtype=np.float64) * cell_lon
    lats = bounds.min_lat + np.arange(rows + 1, dtype=np.float64) * cell_lat
    node_lon = np.tile(lons, rows + 1)
    node_lat = np.repeat(lats, cols + 1)

    blocked = np.zeros((rows + 1, cols + 1), dtype=bool)
    for r in range(rows + 1):
        lat = float(lats[r])
        for c in range(cols + 1):
            lon = float(lons[c])
            inside = False
            for om in obstacles:
                if bbox_contains_point(om.bbox, lon, lat) and point_in_polygon(lon, lat, om.rings):
                    inside = True
                    break
            if not inside:
                for wm in walls:
                    if point_segment_distance((lon, lat), wm.a, wm.b) <= clearance:
                        inside = True
                        break
            blocked[r, c] = inside

    n_cols = cols + 1
    adjacency: List[List[Tuple[int, float]]] = [[] for _ in range((rows + 1) * n_cols)]
    # Each undirected pair is tested once; the decision applies to both ends
    decided: Dict[Tuple[int, int], bool] = {}
    for r in range(rows + 1):
        for c in range(cols + 1):
            if blocked[r, c]:
                continue
            idx = r * n_cols + c
            a = (float(lons[c]), float(lats[r]))
            for dr, dc in DIRECTIONS:
                nr, nc = r + dr, c + dc
                if nr < 0 or nr > rows or nc < 0 or nc > cols:
                    continue
                if blocked[nr, nc]:
                    continue
                j = nr * n_cols + nc
                pair = (idx, j) if idx < j else (j, idx)
                crosses = decided.get(pair)
                if crosses is None:
                    b = (float(lons[nc]), float(lats[nr]))
                    crosses = _segment_blocked(a, b, obstacles, walls)
                    decided[pair] = crosses
                if not crosses:
                    adjacency[idx].append((j, math.hypot(float(lons[c] - lons[nc]), float(lats[r] - lats[nr]))))

    grid = OccupancyGrid(
        bounds=BBox(bounds.min_lon, bounds.min_lat, bounds.min_lon + lon_span, bounds.min_lat + lat_span),
        cols=cols,
        rows=rows,
        cell_lon=cell_lon,
        cell_lat=cell_lat,
        node_lon=node_lon,
        node_lat=node_lat,
        blocked=blocked,
        adjacency=adjacency,
    )
    logger.debug(
        "[Grid] Built %dx%d lattice, %d blocked points (%.1f%%)",
        cols + 1, rows + 1, int(blocked.sum()), 100.0 * blocked.sum() / blocked.size
    )
    return grid


# =============================================================================
# ENDPOINT LOCATION
# =============================================================================

def _nearest_free_scan(grid: OccupancyGrid, lon: float, lat: float) -> int:
    free = grid.free
    if not free.any():
        return -1
    d2 = (grid.node_lon - lon) ** 2 + (grid.node_lat - lat) ** 2
    d2 = np.where(free, d2, np.inf)
    return int(np.argmin(d2))


def nearest_free_grid_index(grid: OccupancyGrid, lon: float, lat: float, search_radius: int = 5) -> int:
    """
    Index of the closest lattice point that has edges, or -1.

    Searches a small window around the estimated cell first and falls back
    to scanning the whole grid.
    """
    col = math.floor((lon - grid.bounds.min_lon) / grid.cell_lon)
    row = math.floor((lat - grid.bounds.min_lat) / grid.cell_lat)
    radius = min(search_radius, int(math.floor(math.sqrt(grid.node_count) / 2)))

    best_idx = -1
    best_d2 = math.inf
    for dr in range(-radius, radius + 1):
        for dc in range(-radius, radius + 1):
            r, c = row + dr, col + dc
            if r < 0 or r > grid.rows or c < 0 or c > grid.cols:
                continue
            idx = grid.index(r, c)
            if not grid.adjacency[idx]:
                continue
            dx = float(grid.node_lon[idx]) - lon
            dy = float(grid.node_lat[idx]) - lat
            d2 = dx * dx + dy * dy
            if d2 < best_d2:
                best_d2 = d2
                best_idx = idx

    if best_idx == -1:
        best_idx = _nearest_free_scan(grid, lon, lat)
    return best_idx


def find_any_valid_node(grid: OccupancyGrid) -> int:
    """First lattice point with a non-empty adjacency list, or -1."""
    free = np.flatnonzero(grid.free)
    return int(free[0]) if free.size else -1


# =============================================================================
# SEARCH
# =============================================================================

@dataclass
class GridSearchResult:
    path: List[int]
    partial: bool
    iterations: int

    @property
    def found(self) -> bool:
        return bool(self.path)


def _follow_predecessors(came_from: Dict[int, int], idx: int) -> List[int]:
    path = [idx]
    while idx in came_from:
        idx = came_from[idx]
        path.append(idx)
    path.reverse()
    return path


def a_star_grid(
    grid: OccupancyGrid,
    start_idx: int,
    goal_idx: int,
    iteration_factor: int = 2,
    checkpoint_interval: int = 1000,
    on_checkpoint: Optional[Callable[[int], None]] = None,
    max_iterations: Optional[int] = None
) -> GridSearchResult:
    """
    Bounded A* over the grid adjacency.

    The heuristic is the squared planar distance to the goal. It is not
    admissible, so routes are not guaranteed shortest; improved g-scores
    reopen nodes. The search stops after node_count * iteration_factor
    iterations (or `max_iterations` when given); in that case the reached
    point with the smallest heuristic is returned as a partial path.
    `on_checkpoint` runs every `checkpoint_interval` iterations and must not
    block; the search does not yield control.
    """
    n = grid.node_count
    h = (grid.node_lon - grid.node_lon[goal_idx]) ** 2 + (grid.node_lat - grid.node_lat[goal_idx]) ** 2
    g = np.full(n, np.inf, dtype=np.float64)
    g[start_idx] = 0.0
    came_from: Dict[int, int] = {}

    open_set: PriorityQueue[int] = PriorityQueue()
    open_set.push(start_idx, float(h[start_idx]))

    if max_iterations is None:
        max_iterations = n * iteration_factor
    iterations = 0
    while open_set and iterations < max_iterations:
        current = open_set.pop()
        if current == goal_idx:
            return GridSearchResult(_follow_predecessors(came_from, current), False, iterations)

        g_current = g[current]
        for to, w in grid.adjacency[current]:
            tentative = g_current + w
            if tentative < g[to]:
                came_from[to] = current
                g[to] = tentative
                open_set.push(to, float(tentative + h[to]))

        iterations += 1
        if on_checkpoint is not None and iterations % checkpoint_interval == 0:
            on_checkpoint(iterations)

    if iterations >= max_iterations:
        logger.warning("[Grid] A* hit the iteration cap (%d)", max_iterations)
        reached = np.where(np.isfinite(g), h, np.inf)
        closest = int(np.argmin(reached))
        if math.isfinite(reached[closest]):
            path = _follow_predecessors(came_from, closest)
            logger.info("[Grid] Returning partial path of %d points", len(path))
            return GridSearchResult(path, True, iterations)

    return GridSearchResult([], False, iterations)


def diagnose_connectivity(grid: OccupancyGrid, start_idx: int, goal_idx: int) -> Dict[str, Any]:
    """Free-space components of the grid and whether start and goal share one."""
    components, count = label(~grid.blocked, structure=np.ones((3, 3), dtype=int))
    flat = components.ravel()
    return {
        "components": int(count),
        "start_component": int(flat[start_idx]),
        "goal_component": int(flat[goal_idx]),
        "same_component": bool(flat[start_idx] and flat[start_idx] == flat[goal_idx]),
    }


# =============================================================================
# POST-PROCESSING
# =============================================================================

def optimize_path(path: List[Coordinate], collinear_cosine: float = 0.995) -> List[Coordinate]:
    """
    Drop interior points that continue the previous heading.

    A point is kept when |cos| of the angle between (last kept -> point) and
    (point -> next) is below `collinear_cosine`. Zero-length legs drop the point.
    """
    if not path or len(path) <= 2:
        return path

    optimized = [path[0]]
    prev = path[0]
    for i in range(1, len(path) - 1):
        current = path[i]
        nxt = path[i + 1]
        dx1 = current[0] - prev[0]
        dy1 = current[1] - prev[1]
        dx2 = nxt[0] - current[0]
        dy2 = nxt[1] - current[1]
        mag1 = dx1 * dx1 + dy1 * dy1
        mag2 = dx2 * dx2 + dy2 * dy2
        if mag1 > 0 and mag2 > 0:
            cosine = (dx1 * dx2 + dy1 * dy2) / math.sqrt(mag1 * mag2)
            if abs(cosine) < collinear_cosine:
                optimized.append(current)
                prev = current
    optimized.append(path[-1])
    return optimized


def adjust_path_ends(path: List[Coordinate], start: Coordinate, end: Coordinate) -> List[Coordinate]:
    """Replace the first and last points with the exact query coordinates."""
    if not path or len(path) < 2:
        return path
    adjusted = list(path)
    adjusted[0] = (start[0], start[1])
    adjusted[-1] = (end[0], end[1])
    return adjusted


# =============================================================================
# PLANNER
# =============================================================================

class GridCache:
    """
    Small LRU of built grids keyed by bounds, dimensions and obstacle set.

    Only identical inputs hit; any change to the obstacles or walls produces a
    different key.
    """

    def __init__(self, max_entries: int = 8):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self._grids: "OrderedDict[tuple, OccupancyGrid]" = OrderedDict()
        self.hits = 0
        self.misses = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._grids)

    @staticmethod
    def make_key(
        bounds: BBox, cols: int, rows: int,
        obstacles: List[ObstacleMeta], walls: List[WallMeta]
    ) -> tuple:
        obstacle_key = tuple(
            tuple(tuple((float(p[0]), float(p[1])) for p in ring) for ring in om.rings)
            for om in obstacles
        )
        wall_key = tuple((wm.a, wm.b) for wm in walls)
        return (bounds, cols, rows, obstacle_key, wall_key)

    def get(self, key: tuple) -> Optional[OccupancyGrid]:
        with self._lock:
            grid = self._grids.get(key)
            if grid is None:
                self.misses += 1
                return None
            self._grids.move_to_end(key)
            self.hits += 1
            return grid

    def put(self, key: tuple, grid: OccupancyGrid) -> None:
        with self._lock:
            self._grids[key] = grid
            self._grids.move_to_end(key)
            while len(self._grids) > self.max_entries:
                self._grids.popitem(last=False)


class GridPathPlanner:
    """
    Runs the full grid planning pipeline for one query at a time.

    The planner holds configuration and an optional GridCache. A cache is
    meant to live for one request; without one every grid lives for a
    single call.
    """

    def __init__(self, config: Optional[GridConfig] = None, cache: Optional[GridCache] = None):
        self.config = config or GridConfig()
        self.cache = cache

    def build_query_grid(
        self,
        query: PlanQuery,
        obstacles: List[ObstacleMeta],
        walls: List[WallMeta],
        retry: bool = False
    ) -> OccupancyGrid:
        cfg = self.config
        start = (query.start_lon, query.start_lat)
        end = (query.end_lon, query.end_lat)
        if retry:
            bounds = grid_bounds(start, end, query.bbox_nodes, cfg.retry_padding_factor, cfg.padding_margin)
            cols, rows = grid_dimensions(bounds, cfg, cols=_js_round(cfg.base_cols * cfg.retry_density))
        else:
            bounds = grid_bounds(start, end, query.bbox_nodes, cfg.padding_factor, cfg.padding_margin)
            cols, rows = grid_dimensions(bounds, cfg)
        if self.cache is None:
            return build_grid(bounds, cols, rows, obstacles, walls, cfg.wall_clearance)

        key = GridCache.make_key(bounds, cols, rows, obstacles, walls)
        grid = self.cache.get(key)
        if grid is None:
            grid = build_grid(bounds, cols, rows, obstacles, walls, cfg.wall_clearance)
            self.cache.put(key, grid)
        return grid

    def _search(self, grid: OccupancyGrid, start_idx: int, goal_idx: int) -> GridSearchResult:
        def checkpoint(iterations: int) -> None:
            logger.debug("[Grid] %d iterations", iterations)

        return a_star_grid(
            grid, start_idx, goal_idx,
            iteration_factor=self.config.iteration_factor,
            checkpoint_interval=self.config.checkpoint_interval,
            on_checkpoint=checkpoint,
        )

    def plan(self, query: PlanQuery, on_progress: Optional[ProgressCallback] = None) -> PlanResult:
        """
        Plan a route from start to end around obstacles and walls.

        Args:
            query: Start/end coordinates, obstacles, walls and optional outer bbox
            on_progress: Receives {"type": "extending_computation", ...} before a retry

        Returns:
            PlanResult; failures carry a PlanError code instead of raising
        """
        coords = (query.start_lon, query.start_lat, query.end_lon, query.end_lat)
        if not all(math.isfinite(v) for v in coords):
            return PlanResult(ok=False, error=PlanError.INVALID_COORDINATES)
        # (0, 0) marks an unset point
        if (query.start_lon == 0 and query.start_lat == 0) or (query.end_lon == 0 and query.end_lat == 0):
            return PlanResult(ok=False, error=PlanError.ZERO_COORDINATES)

        cfg = self.config
        obstacles = build_obstacle_meta(query.obstacles)
        walls = build_wall_meta(query.walls)

        grid = self.build_query_grid(query, obstacles, walls)
        start_idx = nearest_free_grid_index(grid, query.start_lon, query.start_lat, cfg.search_radius)
        end_idx = nearest_free_grid_index(grid, query.end_lon, query.end_lat, cfg.search_radius)
        if start_idx < 0:
            logger.warning("[Grid] No free point near start, trying any valid point")
            start_idx = find_any_valid_node(grid)
        if end_idx < 0:
            logger.warning("[Grid] No free point near end, trying any valid point")
            end_idx = find_any_valid_node(grid)
        if start_idx < 0 or end_idx < 0:
            return PlanResult(ok=False, error=PlanError.NEARBY_GRID_FAIL)

        result = self._search(grid, start_idx, end_idx)
        iterations = result.iterations
        retried = False

        if not result.found:
            logger.warning("[Grid] First search found no path, retrying on a coarser grid")
            logger.info("[Grid] Connectivity: %s", diagnose_connectivity(grid, start_idx, end_idx))
            if on_progress is not None:
                on_progress({
                    "type": "extending_computation",
                    "message": "No path on the first grid, retrying with a wider coarser grid",
                })
            retried = True
            grid = self.build_query_grid(query, obstacles, walls, retry=True)
            start_idx = nearest_free_grid_index(grid, query.start_lon, query.start_lat, cfg.search_radius)
            end_idx = nearest_free_grid_index(grid, query.end_lon, query.end_lat, cfg.search_radius)
            if start_idx >= 0 and end_idx >= 0:
                result = self._search(grid, start_idx, end_idx)
                iterations += result.iterations

        if not result.found:
            logger.warning("[Grid] No path after %d iterations", iterations)
            return PlanResult(ok=False, error=PlanError.NO_PATH, iterations=iterations, retried=retried)

        path = [grid.coord(idx) for idx in result.path]
        path = optimize_path(path, cfg.collinear_cosine)
        path = adjust_path_ends(path, (query.start_lon, query.start_lat), (query.end_lon, query.end_lat))
        logger.info(
            "[Grid] Path found: %d points, %d iterations%s",
            len(path), iterations, " (partial)" if result.partial else ""
        )
        return PlanResult(
            ok=True,
            path=path,
            partial=result.partial,
            iterations=iterations,
            retried=retried,
        )


def compute_path(
    start_lon: float, start_lat: float,
    end_lon: float, end_lat: float,
    obstacles: Optional[List[Polygon]] = None,
    walls: Optional[List[Wall]] = None,
    bbox_nodes: Optional[BBox] = None,
    config: Optional[GridConfig] = None,
    on_progress: Optional[ProgressCallback] = None
) -> PlanResult:
    """Functional entry point around GridPathPlanner.plan()."""
    query = PlanQuery(
        start_lon=start_lon,
        start_lat=start_lat,
        end_lon=end_lon,
        end_lat=end_lat,
        obstacles=obstacles or [],
        walls=walls or [],
        bbox_nodes=bbox_nodes,
    )
    return GridPathPlanner(config).plan(query, on_progress=on_progress)
