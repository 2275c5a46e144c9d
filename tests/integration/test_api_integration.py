"""Integration tests: tile files on disk through the HTTP endpoints."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from tilenav.api import create_app
from tilenav.resolver import PathResolver
from tilenav.tiles import load_model

MAP_ID = "000"


def _pt(x: float, y: float, z: float) -> dict[str, float]:
    return {"x": x, "y": y, "z": z}


def _client_for(base: Path) -> TestClient:
    return TestClient(create_app(PathResolver(load_model(base, MAP_ID)), map_id=MAP_ID))


def test_path_across_two_tiles(client: TestClient) -> None:
    """POST /path should return the straight walk across the tile border in caller frame."""
    res = client.post("/path", json={"start": _pt(5, 2, 0), "end": _pt(5, 18, 0)})

    assert res.status_code == 200
    assert res.headers["X-Path-Partial"] == "false"
    body = res.json()
    assert len(body) == 2
    assert body[0] == {"x": pytest.approx(5.0), "y": pytest.approx(2.0), "z": pytest.approx(0.0)}
    assert body[1] == {"x": pytest.approx(5.0), "y": pytest.approx(18.0), "z": pytest.approx(0.0)}


def test_path_is_converted_exactly_once(client: TestClient) -> None:
    """Endpoints come back in caller frame with the same coordinates that went in."""
    res = client.post("/path", json={"start": _pt(3, 4, 1.5), "end": _pt(7, 16, 0.5)})

    assert res.status_code == 200
    first, last = res.json()[0], res.json()[-1]
    assert (first["x"], first["y"], first["z"]) == (pytest.approx(3.0), pytest.approx(4.0), pytest.approx(1.5))
    assert (last["x"], last["y"], last["z"]) == (pytest.approx(7.0), pytest.approx(16.0), pytest.approx(0.5))


def test_path_outside_loaded_region_is_empty(client: TestClient) -> None:
    res = client.post("/path", json={"start": _pt(500, 500, 0), "end": _pt(5, 18, 0)})
    assert res.status_code == 200
    assert res.json() == []


def test_closest_far_point_is_not_found(client: TestClient) -> None:
    res = client.post("/closest", json=[_pt(500, 500, 0)])
    assert res.status_code == 200
    assert res.json() == [{"x": 500.0, "y": 500.0, "z": 0.0, "found": False}]


def test_closest_snaps_onto_floor(client: TestClient) -> None:
    res = client.post("/closest", json=[_pt(5, 2, 3), _pt(5, 15, -2)])
    assert res.status_code == 200
    body = res.json()
    assert [p["found"] for p in body] == [True, True]
    assert [(p["x"], p["y"], p["z"]) for p in body] == [
        (pytest.approx(5.0), pytest.approx(2.0), pytest.approx(0.0)),
        (pytest.approx(5.0), pytest.approx(15.0), pytest.approx(0.0)),
    ]


def test_disconnected_tiles_return_partial_path(disconnected_map: Path) -> None:
    """Without border links the path stops at the edge of the first tile."""
    client = _client_for(disconnected_map)
    res = client.post("/path", json={"start": _pt(5, 2, 0), "end": _pt(5, 18, 0)})

    assert res.status_code == 200
    assert res.headers["X-Path-Partial"] == "true"
    body = res.json()
    assert body[-1] == {"x": pytest.approx(5.0), "y": pytest.approx(10.0), "z": pytest.approx(0.0)}


def test_health_counts_loaded_tiles(two_tile_map: Path) -> None:
    res = _client_for(two_tile_map).get("/health")
    assert res.json()["tiles"] == 2
