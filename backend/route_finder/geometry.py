"""
Geometry Kernel

Pure numeric primitives shared by the graph builder, the edge snapper and the
grid planner:
- Great-circle (haversine) distance for edge weights
- Orientation test and segment/segment intersection
- Ray casting point-in-polygon over obstacle rings
- Point-to-segment distance and projection
- Axis-aligned bounding boxes used as O(1) pre-filters

Coordinates are (lon, lat) tuples in WGS84 degrees. Planar tests treat
lon/lat as x/y.
"""

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple


Coordinate = Tuple[float, float]
Ring = List[Coordinate]
Polygon = List[Ring]

EARTH_RADIUS_M = 6371000.0
COLLINEAR_EPS = 1e-12


# =============================================================================
# DISTANCES
# =============================================================================

def haversine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Great-circle distance in meters between two (lon, lat) points."""
    lon1, lat1 = a[0], a[1]
    lon2, lat2 = b[0], b[1]
    to_rad = math.pi / 180.0

    phi1 = lat1 * to_rad
    phi2 = lat2 * to_rad
    d_phi = (lat2 - lat1) * to_rad
    d_lambda = (lon2 - lon1) * to_rad

    s = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # min() keeps sqrt(s) <= 1 under rounding
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(s)))


def nearest_point_on_segment(
    px: float, py: float,
    ax: float, ay: float,
    bx: float, by: float
) -> Tuple[float, float, float, float]:
    """
    Project P onto segment AB in the lon/lat plane.

    Returns:
        (t, x, y, dist2) where t in [0, 1] is the clamped projection
        parameter, (x, y) the projected point and dist2 the squared distance.
    """
    vx = bx - ax
    vy = by - ay
    wx = px - ax
    wy = py - ay
    denom = vx * vx + vy * vy
    t = 0.0
    if denom > 0:
        t = (wx * vx + wy * vy) / denom
    t = max(0.0, min(1.0, t))
    x = ax + t * vx
    y = ay + t * vy
    dx = x - px
    dy = y - py
    return t, x, y, dx * dx + dy * dy


def point_segment_distance(p: Sequence[float], a: Sequence[float], b: Sequence[float]) -> float:
    """Euclidean distance from p to the closest point of segment ab."""
    vx = b[0] - a[0]
    vy = b[1] - a[1]
    wx = p[0] - a[0]
    wy = p[1] - a[1]
    c1 = vx * wx + vy * wy
    c2 = vx * vx + vy * vy or COLLINEAR_EPS
    t = max(0.0, min(1.0, c1 / c2))
    dx = p[0] - (a[0] + t * vx)
    dy = p[1] - (a[1] + t * vy)
    return math.hypot(dx, dy)


def round_coord_key(coord: Sequence[float], precision: int = 6) -> str:
    """Dedup key: coordinate rounded to `precision` decimals, "lon,lat"."""
    return f"{coord[0]:.{precision}f},{coord[1]:.{precision}f}"


# =============================================================================
# BOUNDING BOXES
# =============================================================================

@dataclass(frozen=True)
class BBox:
    """Axis-aligned lon/lat bounding box."""
    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    @classmethod
    def of_points(cls, points: Iterable[Sequence[float]]) -> 'BBox':
        min_lon = min_lat = math.inf
        max_lon = max_lat = -math.inf
        for p in points:
            if p[0] < min_lon:
                min_lon = p[0]
            if p[0] > max_lon:
                max_lon = p[0]
            if p[1] < min_lat:
                min_lat = p[1]
            if p[1] > max_lat:
                max_lat = p[1]
        return cls(min_lon, min_lat, max_lon, max_lat)

    @classmethod
    def of_segment(cls, a: Sequence[float], b: Sequence[float]) -> 'BBox':
        return cls(
            min(a[0], b[0]), min(a[1], b[1]),
            max(a[0], b[0]), max(a[1], b[1])
        )

    @classmethod
    def of_polygon(cls, rings: Polygon) -> 'BBox':
        return cls.of_points(p for ring in rings for p in ring)

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.min_lon, self.min_lat, self.max_lon, self.max_lat))

    def to_dict(self) -> dict:
        return {
            "minLon": self.min_lon,
            "minLat": self.min_lat,
            "maxLon": self.max_lon,
            "maxLat": self.max_lat,
        }


def bbox_intersects(a: BBox, b: BBox) -> bool:
    """Axis-aligned overlap test (touching boxes overlap)."""
    return not (
        a.min_lon > b.max_lon or
        a.max_lon < b.min_lon or
        a.min_lat > b.max_lat or
        a.max_lat < b.min_lat
    )


def bbox_contains_point(box: BBox, lon: float, lat: float) -> bool:
    return box.min_lon <= lon <= box.max_lon and box.min_lat <= lat <= box.max_lat


def bbox_from_nodes(nodes: Iterable) -> BBox:
    """Bounding box of anything with .lon/.lat attributes (graph nodes)."""
    return BBox.of_points((n.lon, n.lat) for n in nodes)


# =============================================================================
# ORIENTATION & INTERSECTION
# =============================================================================

def orientation(a: Sequence[float], b: Sequence[float], c: Sequence[float]) -> int:
    """
    Turn direction of a -> b -> c.

    Uses the cross product (b - a) x (c - b). Returns 0 when the three points
    are collinear within 1e-12, otherwise 1 or -1.
    """
    val = (b[1] - a[1]) * (c[0] - b[0]) - (b[0] - a[0]) * (c[1] - b[1])
    if abs(val) < COLLINEAR_EPS:
        return 0
    return 1 if val > 0 else -1


def _on_segment(a: Sequence[float], c: Sequence[float], b: Sequence[float]) -> bool:
    """True if c lies within the bounding range of segment ab."""
    return (
        min(a[0], b[0]) - COLLINEAR_EPS <= c[0] <= max(a[0], b[0]) + COLLINEAR_EPS and
        min(a[1], b[1]) - COLLINEAR_EPS <= c[1] <= max(a[1], b[1]) + COLLINEAR_EPS
    )


def segments_intersect(
    a: Sequence[float], b: Sequence[float],
    c: Sequence[float], d: Sequence[float]
) -> bool:
    """True if segments ab and cd cross or touch."""
    o1 = orientation(a, b, c)
    o2 = orientation(a, b, d)
    o3 = orientation(c, d, a)
    o4 = orientation(c, d, b)

    if o1 != o2 and o3 != o4:
        return True

    # Collinear endpoint lying on the other segment
    if o1 == 0 and _on_segment(a, c, b):
        return True
    if o2 == 0 and _on_segment(a, d, b):
        return True
    if o3 == 0 and _on_segment(c, a, d):
        return True
    if o4 == 0 and _on_segment(c, b, d):
        return True

    return False


# =============================================================================
# POLYGONS
# =============================================================================

def point_in_ring(lon: float, lat: float, ring: Sequence[Sequence[float]]) -> bool:
    """Ray casting test against a single ring."""
    inside = False
    n = len(ring)
    j = n - 1
    for i in range(n):
        xi, yi = ring[i][0], ring[i][1]
        xj, yj = ring[j][0], ring[j][1]
        dy = (yj - yi) or COLLINEAR_EPS
        if ((yi > lat) != (yj > lat)) and (lon < (xj - xi) * (lat - yi) / dy + xi):
            inside = not inside
        j = i
    return inside


def point_in_polygon(lon: float, lat: float, rings: Polygon) -> bool:
    """
    True if the point lies inside ANY ring of the polygon.

    Rings are not XORed against each other: a point inside a hole is still
    inside the obstacle.
    """
    for ring in rings:
        if point_in_ring(lon, lat, ring):
            return True
    return False


def segment_intersects_polygon(a: Sequence[float], b: Sequence[float], rings: Polygon) -> bool:
    """True if either endpoint is inside the polygon or ab crosses a ring edge."""
    if point_in_polygon(a[0], a[1], rings) or point_in_polygon(b[0], b[1], rings):
        return True
    for ring in rings:
        for i in range(len(ring) - 1):
            if segments_intersect(a, b, ring[i], ring[i + 1]):
                return True
    return False


def segment_intersects_any_obstacle(
    a: Sequence[float], b: Sequence[float],
    obstacles: Optional[List[Polygon]]
) -> bool:
    for rings in obstacles or []:
        if segment_intersects_polygon(a, b, rings):
            return True
    return False


def coord_in_any_obstacle(coord: Sequence[float], obstacles: Optional[List[Polygon]]) -> bool:
    for rings in obstacles or []:
        if point_in_polygon(coord[0], coord[1], rings):
            return True
    return False
