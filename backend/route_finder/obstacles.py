"""
Obstacle extraction from GeoJSON feature collections.

A feature is an obstacle when its properties mark it as not walkable:
- walkable == False
- blocked == True
- obstacle == True
- type == "obstacle" (case-insensitive)

Callers can supply their own classifier. Only Polygon and MultiPolygon
geometries produce obstacles; each polygon is a list of closed rings.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from .geometry import Polygon, Ring

logger = logging.getLogger(__name__)

ObstacleClassifier = Callable[[Dict[str, Any]], bool]


def default_obstacle_classifier(feature: Dict[str, Any]) -> bool:
    props = feature.get("properties") or {}
    kind = str(props.get("type") or "").lower()
    return (
        props.get("walkable") is False or
        props.get("blocked") is True or
        props.get("obstacle") is True or
        kind == "obstacle"
    )


def normalize_polygon_rings(coords: Optional[List[Any]]) -> Polygon:
    """
    Close open rings and drop rings with fewer than 3 points.

    Coordinates are converted to (lon, lat) float tuples.
    """
    rings: Polygon = []
    for ring in coords or []:
        if not isinstance(ring, (list, tuple)) or len(ring) < 3:
            continue
        points: Ring = [(float(p[0]), float(p[1])) for p in ring]
        if points[0] != points[-1]:
            points.append(points[0])
        rings.append(points)
    return rings


def extract_obstacles(
    feature_collection: Optional[Dict[str, Any]],
    is_obstacle: Optional[ObstacleClassifier] = None
) -> List[Polygon]:
    """
    Extract obstacle polygons from a feature collection.

    Args:
        feature_collection: GeoJSON FeatureCollection dict
        is_obstacle: Classifier predicate (default: default_obstacle_classifier)

    Returns:
        List of obstacle polygons in source order, each a list of closed rings
    """
    features = (feature_collection or {}).get("features") or []
    classify = is_obstacle or default_obstacle_classifier
    obstacles: List[Polygon] = []

    for feature in features:
        if not feature or not feature.get("geometry"):
            continue
        if not classify(feature):
            continue
        geometry = feature["geometry"]
        if geometry.get("type") == "Polygon":
            rings = normalize_polygon_rings(geometry.get("coordinates"))
            if rings:
                obstacles.append(rings)
        elif geometry.get("type") == "MultiPolygon":
            for polygon in geometry.get("coordinates") or []:
                rings = normalize_polygon_rings(polygon)
                if rings:
                    obstacles.append(rings)

    logger.debug("[Obstacles] Extracted %d obstacle polygons from %d features", len(obstacles), len(features))
    return obstacles
