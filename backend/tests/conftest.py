from __future__ import annotations

from typing import Any

import pytest


def feature(geometry_type: str, coordinates: Any, **properties: Any) -> dict[str, Any]:
    return {
        "type": "Feature",
        "geometry": {"type": geometry_type, "coordinates": coordinates},
        "properties": properties,
    }


def square(min_lon: float, min_lat: float, size: float) -> list[list[float]]:
    return [
        [min_lon, min_lat],
        [min_lon + size, min_lat],
        [min_lon + size, min_lat + size],
        [min_lon, min_lat + size],
        [min_lon, min_lat],
    ]


@pytest.fixture
def loop_network() -> dict[str, Any]:
    """Square walkway loop around a blocked courtyard, away from (0, 0)."""
    return {
        "type": "FeatureCollection",
        "features": [
            feature(
                "LineString",
                [
                    [10.000, 50.000],
                    [10.004, 50.000],
                    [10.004, 50.004],
                    [10.000, 50.004],
                    [10.000, 50.000],
                ],
                name="loop",
            ),
            feature("Polygon", [square(10.0015, 50.0015, 0.001)], type="obstacle"),
        ],
    }
