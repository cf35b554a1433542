"""
Service settings read from the environment.

backend/.env is loaded first (python-dotenv); real environment variables win.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

ENV_PATH = Path(__file__).parent.parent / ".env"

DEFAULT_CORS_ORIGINS = ["http://localhost:5173", "http://localhost:3000", "http://localhost:3001"]


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


@dataclass
class Settings:
    geojson_source: Optional[str] = None  # Path or URL loaded at startup
    graph_precision: int = 6
    spatial_cell_deg: float = 0.01
    plan_timeout_s: float = 30.0
    plan_workers: int = 2
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    log_level: str = "INFO"

    def __post_init__(self):
        if self.spatial_cell_deg <= 0:
            raise ValueError("SPATIAL_CELL_DEG must be positive")
        if self.plan_timeout_s <= 0:
            raise ValueError("PLAN_TIMEOUT_S must be positive")
        if self.plan_workers < 1:
            raise ValueError("PLAN_WORKERS must be >= 1")


def load_settings(env_path: Optional[Path] = ENV_PATH) -> Settings:
    if env_path is not None:
        load_dotenv(env_path)

    origins = os.getenv("CORS_ORIGINS")
    return Settings(
        geojson_source=os.getenv("ROUTE_GEOJSON_SOURCE") or None,
        graph_precision=_int_env("GRAPH_PRECISION", 6),
        spatial_cell_deg=_float_env("SPATIAL_CELL_DEG", 0.01),
        plan_timeout_s=_float_env("PLAN_TIMEOUT_S", 30.0),
        plan_workers=_int_env("PLAN_WORKERS", 2),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()] if origins else list(DEFAULT_CORS_ORIGINS),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )
