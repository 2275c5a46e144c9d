"""Service settings read from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

from tilenav.navmesh import QueryFilter
from tilenav.navmesh_query import DT_MAX_NODES
from tilenav.resolver import (
    DEFAULT_EXCLUDE_FLAGS,
    DEFAULT_INCLUDE_FLAGS,
    DEFAULT_MAX_PATH,
    DEFAULT_SEARCH_EXTENT,
)
from tilenav.tiles import DEFAULT_GRID_SIZE, TileLayout


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name, "").strip()
    return value or default


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw, 0)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    if raw in {"1", "true", "yes", "on"}:
        return True
    if raw in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for map loading, queries and the HTTP listener."""

    mmap_dir: str = "mmaps"
    map_id: str = "000"
    params_ext: str = "mmap"
    tile_ext: str = "mmtile"
    tile_name_format: str = "{map_id}{x:02d}{y:02d}"
    grid_size: int = DEFAULT_GRID_SIZE
    mmap_version: int | None = None
    polyref64: bool = False
    include_flags: int = DEFAULT_INCLUDE_FLAGS
    exclude_flags: int = DEFAULT_EXCLUDE_FLAGS
    search_extent: float = DEFAULT_SEARCH_EXTENT
    max_path: int = DEFAULT_MAX_PATH
    max_nodes: int = DT_MAX_NODES
    host: str = "0.0.0.0"
    port: int = 8080

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from `NAV_*` and `API_*` variables.

        Raises:
            ValueError: If a variable cannot be parsed or is out of range.
        """
        settings = cls(
            mmap_dir=_env_str("NAV_MMAP_DIR", cls.mmap_dir),
            map_id=_env_str("NAV_MAP_ID", cls.map_id),
            params_ext=_env_str("NAV_PARAMS_EXT", cls.params_ext),
            tile_ext=_env_str("NAV_TILE_EXT", cls.tile_ext),
            tile_name_format=_env_str("NAV_TILE_NAME_FORMAT", cls.tile_name_format),
            grid_size=_env_int("NAV_GRID_SIZE", cls.grid_size),
            mmap_version=_env_int("NAV_MMAP_VERSION", None),
            polyref64=_env_bool("NAV_POLYREF64", cls.polyref64),
            include_flags=_env_int("NAV_INCLUDE_FLAGS", cls.include_flags),
            exclude_flags=_env_int("NAV_EXCLUDE_FLAGS", cls.exclude_flags),
            search_extent=_env_float("NAV_SEARCH_EXTENT", cls.search_extent),
            max_path=_env_int("NAV_MAX_PATH", cls.max_path),
            max_nodes=_env_int("NAV_MAX_NODES", cls.max_nodes),
            host=_env_str("API_HOST", cls.host),
            port=_env_int("API_PORT", cls.port),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.grid_size < 2:
            raise ValueError("NAV_GRID_SIZE must be >= 2")
        if self.search_extent <= 0:
            raise ValueError("NAV_SEARCH_EXTENT must be > 0")
        if self.max_path <= 0:
            raise ValueError("NAV_MAX_PATH must be > 0")
        if not 0 < self.max_nodes <= DT_MAX_NODES:
            raise ValueError(f"NAV_MAX_NODES must be in 1..{DT_MAX_NODES}")
        if not 0 < self.port < 65536:
            raise ValueError("API_PORT must be in 1..65535")

    def tile_layout(self) -> TileLayout:
        return TileLayout(
            params_ext=self.params_ext,
            tile_ext=self.tile_ext,
            tile_name_format=self.tile_name_format,
            grid_size=self.grid_size,
            expected_mmap_version=self.mmap_version,
            polyref64=self.polyref64,
        )

    def query_filter(self) -> QueryFilter:
        return QueryFilter(include_flags=self.include_flags, exclude_flags=self.exclude_flags)
