"""
Grid-bucketed nearest-node index over graph nodes.
"""

import math
from typing import Dict, Iterable, List, Tuple

from .graph import GraphNode


class SpatialIndex:
    """
    Buckets nodes into fixed-size lon/lat cells for fast nearest-node lookups.

    The search expands square rings of cells around the query cell and stops
    at the first ring that yields any node, so the result is the closest node
    within that ring (not necessarily the global nearest across bucket borders).
    """

    def __init__(self, nodes: Iterable[GraphNode], cell_deg: float = 0.01):
        if not cell_deg > 0:
            raise ValueError(f"cell_deg must be positive, got {cell_deg!r}")
        self.cell_deg = cell_deg
        self.nodes: List[GraphNode] = list(nodes)
        self.buckets: Dict[Tuple[int, int], List[GraphNode]] = {}
        for node in self.nodes:
            self.buckets.setdefault(self._bucket(node.lon, node.lat), []).append(node)

    def __len__(self) -> int:
        return len(self.nodes)

    def _bucket(self, lon: float, lat: float) -> Tuple[int, int]:
        ix = math.floor((lon + 180.0) / self.cell_deg)
        iy = math.floor((lat + 90.0) / self.cell_deg)
        return ix, iy

    def _window(self, ix: int, iy: int, radius: int) -> List[GraphNode]:
        found: List[GraphNode] = []
        for dx in range(-radius, radius + 1):
            for dy in range(-radius, radius + 1):
                bucket = self.buckets.get((ix + dx, iy + dy))
                if bucket:
                    found.extend(bucket)
        return found

    def nearest(self, lon: float, lat: float, expand_max: int = 10) -> int:
        """
        Id of the nearest node to (lon, lat), or -1 if the index is empty.

        Args:
            lon, lat: Query coordinate
            expand_max: Ring expansion cap in cells (at least 30 rings are tried)
        """
        if not self.nodes:
            return -1

        ix, iy = self._bucket(lon, lat)
        best_id = -1
        best_dist = math.inf

        for radius in range(max(expand_max, 30) + 1):
            candidates = self._window(ix, iy, radius)
            if not candidates:
                continue
            for node in candidates:
                d = math.hypot(node.lon - lon, node.lat - lat)
                if d < best_dist:
                    best_dist = d
                    best_id = node.id
            if best_id != -1:
                break

        # Sparse data or a query far from everything
        if best_id == -1:
            for node in self.nodes:
                d = math.hypot(node.lon - lon, node.lat - lat)
                if d < best_dist:
                    best_dist = d
                    best_id = node.id

        return best_id
