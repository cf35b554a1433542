"""
Feature Collection Sources

Loads the GeoJSON FeatureCollection a network snapshot is built from:
- Local file paths are read from disk
- http(s) URLs are fetched with httpx
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict

import httpx

logger = logging.getLogger(__name__)


class SourceError(ValueError):
    """The source could not be read or did not hold a FeatureCollection."""


def is_url(source: str) -> bool:
    return source.startswith("http://") or source.startswith("https://")


def validate_feature_collection(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict) or data.get("type") != "FeatureCollection":
        raise SourceError("expected a GeoJSON FeatureCollection")
    if not isinstance(data.get("features"), list):
        raise SourceError("FeatureCollection has no 'features' list")
    return data


async def fetch_feature_collection(url: str, timeout: float = 30.0) -> Dict[str, Any]:
    logger.info("[Sources] Fetching %s", url)
    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            response = await client.get(url)
    except httpx.TimeoutException as exc:
        raise SourceError(f"timed out fetching {url}") from exc
    except httpx.HTTPError as exc:
        raise SourceError(f"error fetching {url}: {exc}") from exc

    if response.status_code != 200:
        raise SourceError(f"HTTP {response.status_code} from {url}")
    try:
        data = response.json()
    except ValueError as exc:
        raise SourceError(f"{url} did not return JSON") from exc
    return validate_feature_collection(data)


def read_feature_collection(path: Path) -> Dict[str, Any]:
    logger.info("[Sources] Reading %s", path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as exc:
        raise SourceError(f"cannot read {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise SourceError(f"{path} is not valid JSON: {exc}") from exc
    return validate_feature_collection(data)


async def load_feature_collection(source: str, timeout: float = 30.0) -> Dict[str, Any]:
    """
    Load a FeatureCollection from a file path or an http(s) URL.

    Raises:
        SourceError: unreadable source or not a FeatureCollection
    """
    if is_url(source):
        return await fetch_feature_collection(source, timeout=timeout)
    return read_feature_collection(Path(source).expanduser())
