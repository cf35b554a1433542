from __future__ import annotations

import asyncio

import pytest

from route_finder.grid_planner import GridConfig, GridPathPlanner
from route_finder.worker import PlanningChannel, PlanRequest, handle_message

SMALL = GridConfig(max_cols=60, max_rows=60)

BOX_WALLS = [
    [[10.0008, 50.0008], [10.0012, 50.0008]],
    [[10.0012, 50.0008], [10.0012, 50.0012]],
    [[10.0012, 50.0012], [10.0008, 50.0012]],
    [[10.0008, 50.0012], [10.0008, 50.0008]],
]


def _message(**overrides):
    message = {
        "startLon": 10.0,
        "startLat": 50.0,
        "endLon": 10.002,
        "endLat": 50.002,
        "obstacles": [[[
            [10.0008, 50.0008], [10.0012, 50.0008], [10.0012, 50.0012], [10.0008, 50.0012], [10.0008, 50.0008],
        ]]],
        "walls": [],
        "bboxNodes": {"minLon": 9.99, "minLat": 49.99, "maxLon": 10.01, "maxLat": 50.01},
    }
    message.update(overrides)
    return message


def test_request_parses_camel_case() -> None:
    request = PlanRequest.model_validate(_message())
    query = request.to_query()
    assert (query.start_lon, query.end_lat) == (10.0, 50.002)
    assert query.bbox_nodes.max_lon == 10.01
    assert query.obstacles[0][0][0] == (10.0008, 50.0008)


def test_handle_message_returns_path() -> None:
    response = handle_message(_message(), GridPathPlanner(SMALL))
    assert response["ok"] is True
    assert response["partial"] is False
    assert response["path"][0] == {"lon": 10.0, "lat": 50.0}
    assert response["path"][-1] == {"lon": 10.002, "lat": 50.002}


def test_missing_coordinates_are_invalid() -> None:
    message = _message()
    del message["startLon"]
    assert handle_message(message) == {"ok": False, "error": "invalid-coordinates"}


def test_zero_coordinates() -> None:
    response = handle_message(_message(endLon=0, endLat=0))
    assert response == {"ok": False, "error": "zero-coordinates"}


def test_malformed_message_becomes_error_response() -> None:
    response = handle_message(_message(obstacles="not a list"))
    assert response["ok"] is False
    assert isinstance(response["error"], str)
    assert response["error"]


def test_unexpected_exception_becomes_error_response() -> None:
    class Exploding(GridPathPlanner):
        def plan(self, query, on_progress=None):
            raise RuntimeError("boom")

    assert handle_message(_message(), Exploding()) == {"ok": False, "error": "boom"}


def test_channel_round_trip_with_progress() -> None:
    channel = PlanningChannel(config=SMALL, max_workers=1, timeout_s=60.0)
    progress = []
    message = _message(
        startLon=10.001, startLat=50.001, endLon=10.003, endLat=50.003,
        obstacles=[], walls=BOX_WALLS, bboxNodes=None,
    )
    try:
        response = asyncio.run(channel.request(message, on_progress=progress.append))
    finally:
        channel.close()
    assert response == {"ok": False, "error": "no-path"}
    assert [p["type"] for p in progress] == ["extending_computation"]


def test_channel_success() -> None:
    channel = PlanningChannel(config=SMALL, max_workers=1, timeout_s=60.0)
    try:
        response = asyncio.run(channel.request(_message()))
    finally:
        channel.close()
    assert response["ok"] is True


def test_channel_timeout() -> None:
    channel = PlanningChannel(max_workers=1, timeout_s=1e-6)
    try:
        response = asyncio.run(channel.request(_message()))
    finally:
        channel.close()
    assert response == {"ok": False, "error": "timeout"}


def test_channel_rejects_bad_timeout() -> None:
    with pytest.raises(ValueError):
        PlanningChannel(timeout_s=0)
