"""
Walkable Route Finder - Backend API
Obstacle-aware routing over a GeoJSON walkable network
"""

import logging
import math
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .graph import GraphBuildConfig
from .network import RouteNetwork, RouteOptions
from .pathfinding import RouteStrategy
from .settings import load_settings
from .sources import SourceError, load_feature_collection
from .worker import PlanningChannel, PlanResponse

settings = load_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


class ServiceState:
    """Active network snapshot plus the planning channel."""

    def __init__(self):
        self.network: Optional[RouteNetwork] = None
        self.channel = PlanningChannel(max_workers=settings.plan_workers, timeout_s=settings.plan_timeout_s)


state = ServiceState()


def build_network(feature_collection: Dict[str, Any], precision: int, filter_obstacles: bool) -> RouteNetwork:
    return RouteNetwork(
        feature_collection,
        graph_config=GraphBuildConfig(precision=precision, filter_obstacles=filter_obstacles),
        cell_deg=settings.spatial_cell_deg,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.geojson_source:
        try:
            fc = await load_feature_collection(settings.geojson_source)
            state.network = await run_in_threadpool(
                build_network, fc, settings.graph_precision, True
            )
        except SourceError as e:
            logger.error("[API] Could not load %s: %s", settings.geojson_source, e)
    yield
    state.channel.close()


app = FastAPI(
    title="Walkable Route Finder",
    description="Obstacle-aware walking routes over a GeoJSON network with an occupancy-grid fallback",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class NetworkRequest(BaseModel):
    feature_collection: Optional[Dict[str, Any]] = None  # Inline GeoJSON FeatureCollection
    source: Optional[str] = None  # Or a file path / http(s) URL to load it from
    precision: int = 6  # Decimal places of the node dedup key
    filter_obstacles: bool = True


class NetworkResponse(BaseModel):
    success: bool
    message: str
    stats: Optional[dict] = None


class RouteRequest(BaseModel):
    start_lon: float
    start_lat: float
    end_lon: float
    end_lat: float
    strategy: RouteStrategy = RouteStrategy.SHORTEST
    turn_penalty: float = Field(15.0, ge=0)  # Meters of extra cost per radian of turn (fewest_turns)
    fallback_to_grid: bool = False  # Plan on an occupancy grid when the graph cannot route
    validate_with_dijkstra: bool = False


class RouteResponse(BaseModel):
    success: bool
    message: str
    route_geojson: Optional[dict] = None
    stats: Optional[dict] = None


def require_network() -> RouteNetwork:
    if state.network is None:
        raise HTTPException(status_code=404, detail="No route network loaded")
    return state.network


def valid_coordinate(lon: float, lat: float) -> bool:
    return math.isfinite(lon) and math.isfinite(lat) and -180 <= lon <= 180 and -90 <= lat <= 90


@app.get("/health")
async def health_check():
    return {"status": "healthy", "network_loaded": state.network is not None}


@app.post("/api/network", response_model=NetworkResponse)
async def load_network(request: NetworkRequest):
    """Build a new snapshot from an inline FeatureCollection or a source and make it active."""
    if request.feature_collection is None and not request.source:
        raise HTTPException(status_code=400, detail="Provide feature_collection or source")
    if not 0 <= request.precision <= 15:
        raise HTTPException(status_code=400, detail="precision must be in [0, 15]")

    if request.feature_collection is not None:
        fc = request.feature_collection
        if fc.get("type") != "FeatureCollection":
            raise HTTPException(status_code=400, detail="Expected a GeoJSON FeatureCollection")
    else:
        try:
            fc = await load_feature_collection(request.source)
        except SourceError as e:
            raise HTTPException(status_code=400, detail=str(e))

    network = await run_in_threadpool(build_network, fc, request.precision, request.filter_obstacles)
    state.network = network
    stats = network.summary()
    return NetworkResponse(
        success=True,
        message=f"Network loaded with {stats['nodes']} nodes and {stats['edges']} edges",
        stats=stats,
    )


@app.get("/api/network")
async def get_network():
    """Graph output contract of the active snapshot."""
    return require_network().graph.to_dict()


@app.get("/api/nearest")
async def get_nearest(lon: float, lat: float, expand_max: int = 10):
    network = require_network()
    if not valid_coordinate(lon, lat):
        raise HTTPException(status_code=400, detail="Invalid coordinates")
    node_id = network.nearest(lon, lat, expand_max)
    if node_id < 0:
        return {"id": -1}
    node = network.graph.nodes[node_id]
    return {"id": node_id, "lon": node.lon, "lat": node.lat}


@app.post("/api/route", response_model=RouteResponse)
async def find_route(request: RouteRequest):
    """Graph route between two points, optionally falling back to the grid planner."""
    network = require_network()
    if not valid_coordinate(request.start_lon, request.start_lat):
        raise HTTPException(status_code=400, detail="Invalid start coordinates")
    if not valid_coordinate(request.end_lon, request.end_lat):
        raise HTTPException(status_code=400, detail="Invalid end coordinates")

    options = RouteOptions(
        strategy=request.strategy,
        turn_penalty=request.turn_penalty,
        fallback_to_grid=request.fallback_to_grid,
        validate=request.validate_with_dijkstra,
    )
    outcome = await run_in_threadpool(
        network.route,
        (request.start_lon, request.start_lat),
        (request.end_lon, request.end_lat),
        options,
    )

    stats = dict(outcome.stats)
    stats["source"] = outcome.source
    if not outcome.ok:
        stats["error"] = outcome.error
        return RouteResponse(
            success=False,
            message=f"No valid route found: {outcome.error}",
            stats=stats,
        )

    geojson = {
        "type": "Feature",
        "geometry": {
            "type": "LineString",
            "coordinates": [[lon, lat] for lon, lat in outcome.coords],
        },
        "properties": {
            "source": outcome.source,
            "is_partial": outcome.partial,
        },
    }
    stats.update({
        "total_distance_m": outcome.length_m,
        "turns": outcome.turns,
        "path_length": len(outcome.coords),
    })
    return RouteResponse(
        success=True,
        message=f"Route found with {len(outcome.coords)} points via {outcome.source}",
        route_geojson=geojson,
        stats=stats,
    )


@app.post("/api/plan", response_model=PlanResponse, response_model_exclude_none=True)
async def plan(message: Dict[str, Any] = Body(...)):
    """Grid planner request/response contract, progress messages included."""
    progress = []
    response = await state.channel.request(message, on_progress=progress.append)
    return PlanResponse(**response, progress=progress)
