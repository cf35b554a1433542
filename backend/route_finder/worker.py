"""
Planning Channel

Request/response boundary around the grid planner:
- Messages use the camelCase wire contract (startLon, bboxNodes, ...)
- Each query runs on a thread pool so the event loop never blocks
- Progress messages are forwarded to the caller's loop
- A timeout answers {"ok": false, "error": "timeout"}; the late result is dropped
"""

import asyncio
import functools
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .geometry import BBox
from .grid_planner import GridConfig, GridPathPlanner, PlanQuery

logger = logging.getLogger(__name__)

TIMEOUT_ERROR = "timeout"


class BBoxModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    min_lon: float = Field(alias="minLon")
    min_lat: float = Field(alias="minLat")
    max_lon: float = Field(alias="maxLon")
    max_lat: float = Field(alias="maxLat")

    def to_bbox(self) -> BBox:
        return BBox(self.min_lon, self.min_lat, self.max_lon, self.max_lat)


class PlanRequest(BaseModel):
    """Grid planning request. Missing coordinates become NaN and fail as invalid-coordinates."""
    model_config = ConfigDict(populate_by_name=True)

    start_lon: Optional[float] = Field(default=None, alias="startLon")
    start_lat: Optional[float] = Field(default=None, alias="startLat")
    end_lon: Optional[float] = Field(default=None, alias="endLon")
    end_lat: Optional[float] = Field(default=None, alias="endLat")
    obstacles: List[List[List[List[float]]]] = []  # polygon -> ring -> [lon, lat]
    walls: List[List[List[float]]] = []  # wall -> [[lon, lat], [lon, lat]]
    bbox_nodes: Optional[BBoxModel] = Field(default=None, alias="bboxNodes")

    def to_query(self) -> PlanQuery:
        def coord(value: Optional[float]) -> float:
            return math.nan if value is None else value

        return PlanQuery(
            start_lon=coord(self.start_lon),
            start_lat=coord(self.start_lat),
            end_lon=coord(self.end_lon),
            end_lat=coord(self.end_lat),
            obstacles=[[[(p[0], p[1]) for p in ring] for ring in poly] for poly in self.obstacles],
            walls=[((w[0][0], w[0][1]), (w[1][0], w[1][1])) for w in self.walls if len(w) >= 2],
            bbox_nodes=self.bbox_nodes.to_bbox() if self.bbox_nodes else None,
        )


class LonLat(BaseModel):
    lon: float
    lat: float


class PlanResponse(BaseModel):
    ok: bool
    path: Optional[List[LonLat]] = None
    partial: Optional[bool] = None
    error: Optional[str] = None
    progress: List[Dict[str, Any]] = []


def handle_message(
    message: Dict[str, Any],
    planner: Optional[GridPathPlanner] = None,
    on_progress: Optional[Callable[[Dict[str, Any]], None]] = None
) -> Dict[str, Any]:
    """
    Answer one planning message synchronously.

    Any exception raised while parsing or planning becomes
    {"ok": False, "error": str(exc)}.
    """
    planner = planner or GridPathPlanner()
    try:
        request = PlanRequest.model_validate(message)
        result = planner.plan(request.to_query(), on_progress=on_progress)
    except ValidationError as exc:
        logger.warning("[Planner] Rejected malformed request: %s", exc.errors()[:1])
        return {"ok": False, "error": str(exc)}
    except Exception as exc:
        logger.exception("[Planner] Planning failed")
        return {"ok": False, "error": str(exc)}
    return result.to_response()


class PlanningChannel:
    """
    Async front for GridPathPlanner.

    No cancellation reaches the search: on timeout the worker thread keeps
    running until the search ends and its result is discarded.
    """

    def __init__(
        self,
        config: Optional[GridConfig] = None,
        max_workers: int = 2,
        timeout_s: float = 30.0
    ):
        if timeout_s <= 0:
            raise ValueError("timeout_s must be positive")
        self.planner = GridPathPlanner(config)
        self.timeout_s = timeout_s
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="planner")

    async def request(
        self,
        message: Dict[str, Any],
        on_progress: Optional[Callable[[Dict[str, Any]], None]] = None
    ) -> Dict[str, Any]:
        loop = asyncio.get_running_loop()

        def forward(progress: Dict[str, Any]) -> None:
            if on_progress is not None:
                loop.call_soon_threadsafe(on_progress, progress)

        job = functools.partial(handle_message, message, self.planner, forward)
        try:
            return await asyncio.wait_for(loop.run_in_executor(self._executor, job), self.timeout_s)
        except asyncio.TimeoutError:
            logger.warning("[Planner] Request timed out after %.1fs", self.timeout_s)
            return {"ok": False, "error": TIMEOUT_ERROR}

    def close(self) -> None:
        self._executor.shutdown(wait=False)
