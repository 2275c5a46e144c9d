"""Map loading from on-disk tile files.

Layout of one map under `base_path`:
- `<map_id>.<params_ext>`: one mesh-parameters record.
- `<map_id><x><y>.<tile_ext>`: 20-byte tile header followed by exactly
  `header.size` payload bytes, for each populated grid cell.

Loading is all-or-nothing: any bad file aborts with `TileLoadError` so a
half-loaded map is never served.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from tilenav.navmesh import DT_NAVMESH_VERSION, NavMesh, NavMeshError, NavMeshParams, NAVMESH_PARAMS_DTYPE

logger = logging.getLogger(__name__)

MMAP_MAGIC = 0x4D4D4150  # 'MMAP'
DEFAULT_GRID_SIZE = 64

MMAP_TILE_HEADER_DTYPE = np.dtype(
    [
        ("mmap_magic", "<u4"),
        ("dt_version", "<u4"),
        ("mmap_version", "<u4"),
        ("size", "<u4"),
        ("uses_liquids", "u1"),
        ("padding", "u1", (3,)),
    ]
)


class TileLoadError(RuntimeError):
    """Raised when a map cannot be loaded completely and correctly."""


@dataclass(frozen=True, slots=True)
class TileHeader:
    """Fixed-size header in front of every tile payload."""

    mmap_magic: int
    dt_version: int
    mmap_version: int
    size: int
    uses_liquids: bool = False

    @classmethod
    def from_bytes(cls, raw: bytes) -> TileHeader:
        if len(raw) < MMAP_TILE_HEADER_DTYPE.itemsize:
            raise TileLoadError(
                f"short read: tile header needs {MMAP_TILE_HEADER_DTYPE.itemsize} bytes, got {len(raw)}"
            )
        rec = np.frombuffer(raw, dtype=MMAP_TILE_HEADER_DTYPE, count=1)[0]
        return cls(
            mmap_magic=int(rec["mmap_magic"]),
            dt_version=int(rec["dt_version"]),
            mmap_version=int(rec["mmap_version"]),
            size=int(rec["size"]),
            uses_liquids=bool(rec["uses_liquids"]),
        )

    def to_bytes(self) -> bytes:
        rec = np.zeros(1, dtype=MMAP_TILE_HEADER_DTYPE)
        rec["mmap_magic"] = self.mmap_magic
        rec["dt_version"] = self.dt_version
        rec["mmap_version"] = self.mmap_version
        rec["size"] = self.size
        rec["uses_liquids"] = 1 if self.uses_liquids else 0
        return rec.tobytes()

    def validate(self, expected_mmap_version: int | None = None) -> None:
        """Reject headers whose magic or format versions do not match."""
        if self.mmap_magic != MMAP_MAGIC:
            raise TileLoadError(f"bad tile magic 0x{self.mmap_magic:08x}, expected 0x{MMAP_MAGIC:08x}")
        if self.dt_version != DT_NAVMESH_VERSION:
            raise TileLoadError(f"bad mesh version {self.dt_version}, expected {DT_NAVMESH_VERSION}")
        if expected_mmap_version is not None and self.mmap_version != expected_mmap_version:
            raise TileLoadError(
                f"bad tile format version {self.mmap_version}, expected {expected_mmap_version}"
            )


@dataclass(frozen=True, slots=True)
class TileLayout:
    """File naming and format options for one map directory."""

    params_ext: str = "mmap"
    tile_ext: str = "mmtile"
    tile_name_format: str = "{map_id}{x:02d}{y:02d}"
    grid_size: int = DEFAULT_GRID_SIZE
    expected_mmap_version: int | None = None
    polyref64: bool = False

    def params_path(self, base_path: Path, map_id: str) -> Path:
        return Path(base_path) / f"{map_id}.{self.params_ext}"

    def tile_path(self, base_path: Path, map_id: str, x: int, y: int) -> Path:
        stem = self.tile_name_format.format(map_id=map_id, x=x, y=y)
        return Path(base_path) / f"{stem}.{self.tile_ext}"


def read_tile_parameters(path: Path) -> NavMeshParams:
    """Read the map-level mesh parameters record.

    Raises:
        TileLoadError: If the file is absent or shorter than one record.
    """
    if not path.is_file():
        raise TileLoadError(f"parameters file not found: {path}")

    with path.open("rb") as fh:
        raw = fh.read(NAVMESH_PARAMS_DTYPE.itemsize)

    try:
        return NavMeshParams.from_bytes(raw)
    except NavMeshError as exc:
        raise TileLoadError(f"{path}: short read: {exc}") from exc


def read_tile(path: Path, expected_mmap_version: int | None = None) -> tuple[TileHeader, bytes]:
    """Read and validate one tile file, returning its header and payload."""
    with path.open("rb") as fh:
        header_raw = fh.read(MMAP_TILE_HEADER_DTYPE.itemsize)
        try:
            header = TileHeader.from_bytes(header_raw)
            header.validate(expected_mmap_version)
        except TileLoadError as exc:
            raise TileLoadError(f"{path}: {exc}") from exc

        payload = fh.read(header.size)

    if len(payload) != header.size:
        raise TileLoadError(f"{path}: short read: expected {header.size} payload bytes, got {len(payload)}")
    return header, payload


def load_model(base_path: str | Path, map_id: str, layout: TileLayout | None = None) -> NavMesh:
    """Assemble the walkable-surface model of one map.

    Grid cells `1..grid_size-1` on both axes are scanned; absent tile files
    are skipped, any present but invalid tile aborts the load.

    Raises:
        TileLoadError: On a missing/short parameters file, bad tile headers,
            short payloads, or when the mesh rejects initialization or a tile.
    """
    layout = layout or TileLayout()
    base = Path(base_path)

    params_path = layout.params_path(base, map_id)
    logger.info("Loading map %s from %s", map_id, params_path, extra={"map_id": map_id})
    params = read_tile_parameters(params_path)

    try:
        mesh = NavMesh(params, polyref64=layout.polyref64)
    except NavMeshError as exc:
        raise TileLoadError(f"model initialization failed: {exc}") from exc

    liquid_tiles = 0
    for x in range(1, layout.grid_size):
        for y in range(1, layout.grid_size):
            tile_path = layout.tile_path(base, map_id, x, y)
            if not tile_path.exists():
                continue

            header, payload = read_tile(tile_path, layout.expected_mmap_version)
            try:
                mesh.add_tile(payload, 0)
            except NavMeshError as exc:
                raise TileLoadError(f"{tile_path}: tile attach failed: {exc}") from exc

            liquid_tiles += int(header.uses_liquids)
            logger.debug(
                "Attached tile %s (%d bytes)",
                tile_path.name,
                header.size,
                extra={"map_id": map_id, "tile": tile_path.name},
            )

    logger.info(
        "Loaded map %s: %d tiles (%d with liquid data)",
        map_id,
        mesh.tile_count,
        liquid_tiles,
        extra={"map_id": map_id},
    )
    return mesh
