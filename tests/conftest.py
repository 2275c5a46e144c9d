"""Pytest global fixtures: synthetic map files and ready-to-query services."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Sequence

import numpy as np
import pytest
from fastapi.testclient import TestClient

from tilenav.api import create_app
from tilenav.navmesh import (
    DT_EXT_LINK,
    DT_NAVMESH_MAGIC,
    DT_NAVMESH_VERSION,
    LINK_SIZE,
    MESH_HEADER_DTYPE,
    POLY_DETAIL_DTYPE,
    POLY_DTYPE,
    NavMesh,
    NavMeshParams,
)
from tilenav.resolver import PathResolver
from tilenav.tiles import MMAP_MAGIC, TileHeader, load_model

MAP_ID = "000"
TILE_SIZE = 10.0

Vertex = tuple[float, float, float]


def quad(x0: float, z0: float, x1: float, z1: float, y: float = 0.0) -> list[Vertex]:
    """Axis-aligned flat quad in model frame.

    Edge k runs from vertex k to k+1: 0 = west (x0), 1 = north (z1),
    2 = east (x1), 3 = south (z0).
    """
    return [(x0, y, z0), (x0, y, z1), (x1, y, z1), (x1, y, z0)]


def build_tile_payload(
    tile_x: int,
    tile_y: int,
    quads: Sequence[list[Vertex]],
    neis: Sequence[Sequence[int]],
    *,
    flags: int = 1,
    areas: Sequence[int] | None = None,
    magic: int = DT_NAVMESH_MAGIC,
    version: int = DT_NAVMESH_VERSION,
    walkable_climb: float = 0.9,
    layer: int = 0,
) -> bytes:
    """Serialize quads into one tile payload with a two-triangle detail mesh per quad."""
    n = len(quads)
    areas = list(areas) if areas is not None else [0] * n
    verts = np.array([v for q in quads for v in q], dtype="<f4").reshape(-1, 3)

    polys = np.zeros(n, dtype=POLY_DTYPE)
    for i in range(n):
        polys["verts"][i, :4] = np.arange(4 * i, 4 * i + 4)
        polys["neis"][i, :4] = neis[i]
    polys["flags"] = flags
    polys["vert_count"] = 4
    polys["area_and_type"] = np.asarray(areas) & 0x3F

    detail = np.zeros(n, dtype=POLY_DETAIL_DTYPE)
    detail["tri_base"] = np.arange(n) * 2
    detail["tri_count"] = 2
    tris = np.tile(np.array([[0, 1, 2, 0], [0, 2, 3, 0]], dtype="u1"), (n, 1))

    header = np.zeros(1, dtype=MESH_HEADER_DTYPE)
    header["magic"] = magic
    header["version"] = version
    header["x"] = tile_x
    header["y"] = tile_y
    header["layer"] = layer
    header["poly_count"] = n
    header["vert_count"] = len(verts)
    header["max_link_count"] = n * 4
    header["detail_mesh_count"] = n
    header["detail_tri_count"] = len(tris)
    header["walkable_height"] = 2.0
    header["walkable_radius"] = 0.6
    header["walkable_climb"] = walkable_climb
    header["bmin"] = verts.min(axis=0)
    header["bmax"] = verts.max(axis=0)

    return b"".join(
        [
            header.tobytes(),
            verts.tobytes(),
            polys.tobytes(),
            bytes(n * 4 * LINK_SIZE),
            detail.tobytes(),
            tris.tobytes(),
        ]
    )


def write_tile_file(
    path: Path,
    payload: bytes,
    *,
    magic: int = MMAP_MAGIC,
    dt_version: int = DT_NAVMESH_VERSION,
    mmap_version: int = 15,
    size: int | None = None,
    uses_liquids: bool = False,
) -> Path:
    header = TileHeader(
        mmap_magic=magic,
        dt_version=dt_version,
        mmap_version=mmap_version,
        size=len(payload) if size is None else size,
        uses_liquids=uses_liquids,
    )
    path.write_bytes(header.to_bytes() + payload)
    return path


def write_params_file(path: Path, tile_size: float = TILE_SIZE, max_tiles: int = 64, max_polys: int = 64) -> Path:
    params = NavMeshParams(
        orig=(0.0, 0.0, 0.0),
        tile_width=tile_size,
        tile_height=tile_size,
        max_tiles=max_tiles,
        max_polys=max_polys,
    )
    path.write_bytes(params.to_bytes())
    return path


def two_tile_payloads(*, connected: bool = True) -> tuple[bytes, bytes]:
    """Two adjacent 10x10 flat quads: tile A covers x 0..10, tile B x 10..20."""
    east = DT_EXT_LINK | 0 if connected else 0
    west = DT_EXT_LINK | 4 if connected else 0
    tile_a = build_tile_payload(0, 0, [quad(0, 0, 10, 10)], [[0, 0, east, 0]])
    tile_b = build_tile_payload(1, 0, [quad(10, 0, 20, 10)], [[west, 0, 0, 0]])
    return tile_a, tile_b


def strip_payload(count: int = 6, alternate_areas: bool = True) -> bytes:
    """One tile holding `count` linked 2x4 quads along +x."""
    quads = [quad(2 * i, 0, 2 * i + 2, 4) for i in range(count)]
    neis = [[i if i > 0 else 0, 0, i + 2 if i < count - 1 else 0, 0] for i in range(count)]
    areas = [i % 2 for i in range(count)] if alternate_areas else None
    return build_tile_payload(0, 0, quads, neis, areas=areas)


@pytest.fixture()
def tile_payload() -> Callable[..., bytes]:
    return build_tile_payload


@pytest.fixture()
def write_map(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a params file plus tiles `{(grid_x, grid_y): payload}` under tmp_path."""

    def _write(tiles: dict[tuple[int, int], bytes], **tile_header: object) -> Path:
        write_params_file(tmp_path / f"{MAP_ID}.mmap")
        for (gx, gy), payload in tiles.items():
            write_tile_file(tmp_path / f"{MAP_ID}{gx:02d}{gy:02d}.mmtile", payload, **tile_header)
        return tmp_path

    return _write


@pytest.fixture()
def two_tile_map(write_map: Callable[..., Path]) -> Path:
    tile_a, tile_b = two_tile_payloads()
    return write_map({(1, 1): tile_a, (2, 1): tile_b})


@pytest.fixture()
def mesh(two_tile_map: Path) -> NavMesh:
    return load_model(two_tile_map, MAP_ID)


@pytest.fixture()
def resolver(mesh: NavMesh) -> PathResolver:
    return PathResolver(mesh)


@pytest.fixture()
def client(resolver: PathResolver) -> TestClient:
    return TestClient(create_app(resolver, map_id=MAP_ID))


@pytest.fixture()
def strip_mesh() -> NavMesh:
    """Single tile of six quads in a row with alternating area ids."""
    mesh = NavMesh(NavMeshParams(orig=(0.0, 0.0, 0.0), tile_width=20.0, tile_height=20.0, max_tiles=4, max_polys=64))
    mesh.add_tile(strip_payload())
    return mesh


@pytest.fixture()
def uniform_strip_mesh() -> NavMesh:
    """Same six quads as `strip_mesh`, all in area 0."""
    mesh = NavMesh(NavMeshParams(orig=(0.0, 0.0, 0.0), tile_width=20.0, tile_height=20.0, max_tiles=4, max_polys=64))
    mesh.add_tile(strip_payload(alternate_areas=False))
    return mesh


@pytest.fixture()
def disconnected_map(write_map: Callable[..., Path]) -> Path:
    """Same two quads as `two_tile_map` but without border links between them."""
    tile_a, tile_b = two_tile_payloads(connected=False)
    return write_map({(1, 1): tile_a, (2, 1): tile_b})
