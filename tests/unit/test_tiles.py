"""Unit tests for tilenav.tiles map loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from tilenav.tiles import (
    MMAP_MAGIC,
    MMAP_TILE_HEADER_DTYPE,
    TileHeader,
    TileLayout,
    TileLoadError,
    load_model,
    read_tile,
)

MAP_ID = "000"


def _flat_tile(tile_payload, tile_x: int = 0, tile_y: int = 0, **kwargs) -> bytes:
    x0 = tile_x * 10.0
    z0 = tile_y * 10.0
    verts = [(x0, 0.0, z0), (x0, 0.0, z0 + 10), (x0 + 10, 0.0, z0 + 10), (x0 + 10, 0.0, z0)]
    return tile_payload(tile_x, tile_y, [verts], [[0, 0, 0, 0]], **kwargs)


def test_tile_header_is_20_bytes() -> None:
    assert MMAP_TILE_HEADER_DTYPE.itemsize == 20


def test_tile_layout_formats_paths(tmp_path: Path) -> None:
    layout = TileLayout()
    assert layout.params_path(tmp_path, "000").name == "000.mmap"
    assert layout.tile_path(tmp_path, "000", 1, 2).name == "0000102.mmtile"

    unpadded = TileLayout(tile_name_format="{map_id}{x}{y}")
    assert unpadded.tile_path(tmp_path, "000", 1, 12).name == "000112.mmtile"


def test_load_sparse_grid_with_two_tiles(two_tile_map: Path) -> None:
    """A handful of tiles in a mostly-empty 64x64 grid loads fine."""
    mesh = load_model(two_tile_map, MAP_ID)
    assert mesh.tile_count == 2
    assert sorted((t.x, t.y) for t in mesh.iter_tiles()) == [(0, 0), (1, 0)]


def test_load_map_without_tiles_returns_empty_model(write_map) -> None:
    mesh = load_model(write_map({}), MAP_ID)
    assert mesh.tile_count == 0


def test_missing_params_file_is_fatal(tmp_path: Path) -> None:
    with pytest.raises(TileLoadError, match="parameters file not found"):
        load_model(tmp_path, MAP_ID)


def test_short_params_file_is_fatal(tmp_path: Path) -> None:
    (tmp_path / f"{MAP_ID}.mmap").write_bytes(b"\x00" * 10)
    with pytest.raises(TileLoadError, match="short read"):
        load_model(tmp_path, MAP_ID)


def test_invalid_params_fail_model_initialization(tmp_path: Path) -> None:
    (tmp_path / f"{MAP_ID}.mmap").write_bytes(b"\x00" * 28)
    with pytest.raises(TileLoadError, match="model initialization failed"):
        load_model(tmp_path, MAP_ID)


def test_corrupt_tile_magic_is_fatal(write_map, tile_payload) -> None:
    """A bad tile is never skipped silently."""
    base = write_map({(1, 1): _flat_tile(tile_payload)}, magic=0xDEADBEEF)
    with pytest.raises(TileLoadError, match="bad tile magic"):
        load_model(base, MAP_ID)


def test_wrong_mesh_version_in_header_is_fatal(write_map, tile_payload) -> None:
    base = write_map({(1, 1): _flat_tile(tile_payload)}, dt_version=6)
    with pytest.raises(TileLoadError, match="bad mesh version"):
        load_model(base, MAP_ID)


def test_expected_format_version_is_enforced(write_map, tile_payload) -> None:
    base = write_map({(1, 1): _flat_tile(tile_payload)}, mmap_version=15)

    assert load_model(base, MAP_ID, TileLayout(expected_mmap_version=15)).tile_count == 1
    with pytest.raises(TileLoadError, match="bad tile format version"):
        load_model(base, MAP_ID, TileLayout(expected_mmap_version=16))


def test_short_payload_is_fatal(write_map, tile_payload) -> None:
    payload = _flat_tile(tile_payload)
    base = write_map({(1, 1): payload}, size=len(payload) + 64)
    with pytest.raises(TileLoadError, match="short read"):
        load_model(base, MAP_ID)


def test_truncated_tile_header_is_fatal(write_map) -> None:
    base = write_map({})
    (base / f"{MAP_ID}0101.mmtile").write_bytes(b"\x50\x41\x4d\x4d" + b"\x00" * 6)
    with pytest.raises(TileLoadError, match="short read"):
        load_model(base, MAP_ID)


def test_corrupt_mesh_payload_fails_attach(write_map, tile_payload) -> None:
    base = write_map({(1, 1): _flat_tile(tile_payload, magic=0x12345678)})
    with pytest.raises(TileLoadError, match="tile attach failed.*wrong mesh magic"):
        load_model(base, MAP_ID)


def test_duplicate_tile_location_fails_attach(write_map, tile_payload) -> None:
    payload = _flat_tile(tile_payload)
    base = write_map({(1, 1): payload, (1, 2): payload})
    with pytest.raises(TileLoadError, match="already occupied"):
        load_model(base, MAP_ID)


def test_grid_coordinate_zero_is_never_scanned(write_map, tile_payload) -> None:
    base = write_map({(0, 0): _flat_tile(tile_payload)})
    assert load_model(base, MAP_ID).tile_count == 0


def test_read_tile_returns_header_and_exact_payload(write_map, tile_payload) -> None:
    payload = _flat_tile(tile_payload)
    base = write_map({(1, 1): payload}, uses_liquids=True)

    header, data = read_tile(base / f"{MAP_ID}0101.mmtile")
    assert header.mmap_magic == MMAP_MAGIC
    assert header.size == len(payload)
    assert header.uses_liquids is True
    assert data == payload


def test_tile_header_bytes_round_trip() -> None:
    header = TileHeader(mmap_magic=MMAP_MAGIC, dt_version=7, mmap_version=15, size=1234, uses_liquids=True)
    assert TileHeader.from_bytes(header.to_bytes()) == header
