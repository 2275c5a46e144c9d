"""Tiled walkable-surface model.

Purpose:
- Decode the fixed-layout binary records of a tiled navigation mesh
  (mesh parameters and per-tile payloads).
- Assemble tiles into one `NavMesh`, linking polygons inside each tile and
  across tile borders.
- Hand out opaque polygon references that are validated on every use.

Polygon references pack `salt | tile index | poly index` into 32 bits, so a
reference only resolves while the tile it was issued for is attached.
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass, field
from typing import Iterator, Sequence

import numpy as np

from tilenav.geometry import overlap_slabs, tri_area_2d
from tilenav.utils import ilog2, next_pow2

logger = logging.getLogger(__name__)

DT_NAVMESH_MAGIC = ord("D") << 24 | ord("N") << 16 | ord("A") << 8 | ord("V")
DT_NAVMESH_VERSION = 7
DT_VERTS_PER_POLYGON = 6
DT_EXT_LINK = 0x8000
DT_NULL_LINK_SIDE = 0xFF
DT_MAX_AREAS = 64

POLYTYPE_GROUND = 0
POLYTYPE_OFFMESH_CONNECTION = 1

NAVMESH_PARAMS_DTYPE = np.dtype(
    [
        ("orig", "<f4", (3,)),
        ("tile_width", "<f4"),
        ("tile_height", "<f4"),
        ("max_tiles", "<i4"),
        ("max_polys", "<i4"),
    ]
)

MESH_HEADER_DTYPE = np.dtype(
    [
        ("magic", "<i4"),
        ("version", "<i4"),
        ("x", "<i4"),
        ("y", "<i4"),
        ("layer", "<i4"),
        ("user_id", "<u4"),
        ("poly_count", "<i4"),
        ("vert_count", "<i4"),
        ("max_link_count", "<i4"),
        ("detail_mesh_count", "<i4"),
        ("detail_vert_count", "<i4"),
        ("detail_tri_count", "<i4"),
        ("bv_node_count", "<i4"),
        ("off_mesh_con_count", "<i4"),
        ("off_mesh_base", "<i4"),
        ("walkable_height", "<f4"),
        ("walkable_radius", "<f4"),
        ("walkable_climb", "<f4"),
        ("bmin", "<f4", (3,)),
        ("bmax", "<f4", (3,)),
        ("bv_quant_factor", "<f4"),
    ]
)

POLY_DTYPE = np.dtype(
    [
        ("first_link", "<u4"),
        ("verts", "<u2", (DT_VERTS_PER_POLYGON,)),
        ("neis", "<u2", (DT_VERTS_PER_POLYGON,)),
        ("flags", "<u2"),
        ("vert_count", "u1"),
        ("area_and_type", "u1"),
    ]
)

POLY_DETAIL_DTYPE = np.dtype(
    [
        ("vert_base", "<u4"),
        ("tri_base", "<u4"),
        ("vert_count", "u1"),
        ("tri_count", "u1"),
        ("pad", "u1", (2,)),
    ]
)

LINK_SIZE = 12
LINK_SIZE_POLYREF64 = 16
BV_NODE_SIZE = 16
OFF_MESH_CON_SIZE = 36

# Tile-grid offsets for the eight border directions, indexed by side.
_SIDE_OFFSETS = ((1, 0), (1, 1), (0, 1), (-1, 1), (-1, 0), (-1, -1), (0, -1), (1, -1))


class NavMeshError(RuntimeError):
    """Raised when the walkable-surface model rejects data or a query."""


class Status(enum.IntFlag):
    """Detail flags attached to a successful query result."""

    SUCCESS = 1
    IN_PROGRESS = 2
    PARTIAL_RESULT = 4
    OUT_OF_NODES = 8
    BUFFER_TOO_SMALL = 16


def opposite_side(side: int) -> int:
    return (side + 4) & 0x7


def _align4(value: int) -> int:
    return (value + 3) & ~3


@dataclass(frozen=True, slots=True)
class NavMeshParams:
    """Map-wide mesh parameters (origin, tile size and reference budget)."""

    orig: tuple[float, float, float]
    tile_width: float
    tile_height: float
    max_tiles: int
    max_polys: int

    @classmethod
    def from_bytes(cls, raw: bytes) -> NavMeshParams:
        """Decode one little-endian parameters record."""
        if len(raw) < NAVMESH_PARAMS_DTYPE.itemsize:
            raise NavMeshError(
                f"mesh parameters need {NAVMESH_PARAMS_DTYPE.itemsize} bytes, got {len(raw)}"
            )
        rec = np.frombuffer(raw, dtype=NAVMESH_PARAMS_DTYPE, count=1)[0]
        return cls(
            orig=(float(rec["orig"][0]), float(rec["orig"][1]), float(rec["orig"][2])),
            tile_width=float(rec["tile_width"]),
            tile_height=float(rec["tile_height"]),
            max_tiles=int(rec["max_tiles"]),
            max_polys=int(rec["max_polys"]),
        )

    def to_bytes(self) -> bytes:
        rec = np.zeros(1, dtype=NAVMESH_PARAMS_DTYPE)
        rec["orig"] = self.orig
        rec["tile_width"] = self.tile_width
        rec["tile_height"] = self.tile_height
        rec["max_tiles"] = self.max_tiles
        rec["max_polys"] = self.max_polys
        return rec.tobytes()


@dataclass(frozen=True, slots=True)
class QueryFilter:
    """Traversal policy: include/exclude polygon flag masks and per-area costs."""

    include_flags: int = 0xFFFF
    exclude_flags: int = 0
    area_cost: tuple[float, ...] = (1.0,) * DT_MAX_AREAS

    def pass_filter(self, flags: int) -> bool:
        return (int(flags) & self.include_flags) != 0 and (int(flags) & self.exclude_flags) == 0

    def pass_mask(self, flags: np.ndarray) -> np.ndarray:
        """Vectorized `pass_filter` over an array of polygon flags."""
        return ((flags & self.include_flags) != 0) & ((flags & self.exclude_flags) == 0)

    def get_cost(self, pa: np.ndarray, pb: np.ndarray, area: int) -> float:
        return float(np.linalg.norm(pb - pa)) * self.area_cost[int(area)]


@dataclass(frozen=True, slots=True)
class Link:
    """Traversable connection from one polygon to a neighbour.

    `left`/`right` are the portal end points as seen when walking out of the
    owning polygon. `side` is the tile border direction, or 0xFF for links
    inside one tile.
    """

    ref: int
    edge: int
    side: int
    left: np.ndarray
    right: np.ndarray


@dataclass(slots=True)
class MeshTile:
    """One attached tile: decoded geometry plus adjacency links."""

    x: int
    y: int
    layer: int
    walkable_climb: float
    bmin: np.ndarray
    bmax: np.ndarray
    verts: np.ndarray
    poly_verts: np.ndarray
    poly_neis: np.ndarray
    poly_flags: np.ndarray
    poly_vert_count: np.ndarray
    poly_area: np.ndarray
    poly_type: np.ndarray
    detail_vert_base: np.ndarray
    detail_tri_base: np.ndarray
    detail_tri_count: np.ndarray
    detail_verts: np.ndarray
    detail_tris: np.ndarray
    off_mesh_con_count: int = 0
    salt: int = 0
    index: int = -1
    poly_bmin: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))
    poly_bmax: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))
    links: list[list[Link]] = field(default_factory=list)

    @property
    def poly_count(self) -> int:
        return int(len(self.poly_flags))

    def poly_vertices(self, ip: int) -> np.ndarray:
        """Vertex positions `(N, 3)` of polygon `ip`."""
        nv = int(self.poly_vert_count[ip])
        return self.verts[self.poly_verts[ip, :nv]]

    def poly_centroid(self, ip: int) -> np.ndarray:
        return self.poly_vertices(ip).mean(axis=0)

    def poly_triangles(self, ip: int) -> Iterator[tuple[np.ndarray, np.ndarray, np.ndarray]]:
        """Yield the height triangles of polygon `ip`.

        Uses the tile's detail mesh where present and falls back to a fan over
        the polygon outline otherwise.
        """
        nv = int(self.poly_vert_count[ip])
        tri_count = int(self.detail_tri_count[ip]) if ip < len(self.detail_tri_count) else 0

        if tri_count == 0:
            outline = self.poly_vertices(ip)
            for k in range(1, nv - 1):
                yield outline[0], outline[k], outline[k + 1]
            return

        vert_base = int(self.detail_vert_base[ip])
        tri_base = int(self.detail_tri_base[ip])
        for k in range(tri_count):
            tri = self.detail_tris[tri_base + k]
            yield tuple(self._detail_vertex(ip, int(tri[m]), nv, vert_base) for m in range(3))  # type: ignore[misc]

    def _detail_vertex(self, ip: int, index: int, nv: int, vert_base: int) -> np.ndarray:
        if index < nv:
            return self.verts[self.poly_verts[ip, index]]
        return self.detail_verts[vert_base + index - nv]


def _section(data: bytes, offset: int, dtype: np.dtype | str, count: int) -> np.ndarray:
    if count <= 0:
        return np.empty(0, dtype=dtype)
    return np.frombuffer(data, dtype=dtype, count=count, offset=offset)


def parse_tile_data(data: bytes, *, polyref64: bool = False) -> MeshTile:
    """Decode one tile payload into a detached `MeshTile`.

    Raises:
        NavMeshError: If the magic/version do not match or the payload is
            shorter than its header announces.
    """
    if len(data) < MESH_HEADER_DTYPE.itemsize:
        raise NavMeshError(f"tile payload too short for mesh header ({len(data)} bytes)")

    header = np.frombuffer(data, dtype=MESH_HEADER_DTYPE, count=1)[0]
    if int(header["magic"]) != DT_NAVMESH_MAGIC:
        raise NavMeshError(f"wrong mesh magic 0x{int(header['magic']) & 0xFFFFFFFF:08x}")
    if int(header["version"]) != DT_NAVMESH_VERSION:
        raise NavMeshError(
            f"wrong mesh version {int(header['version'])}, expected {DT_NAVMESH_VERSION}"
        )

    counts = {name: int(header[name]) for name in (
        "poly_count",
        "vert_count",
        "max_link_count",
        "detail_mesh_count",
        "detail_vert_count",
        "detail_tri_count",
        "bv_node_count",
        "off_mesh_con_count",
    )}
    if any(value < 0 for value in counts.values()):
        raise NavMeshError("negative element count in mesh header")

    link_size = LINK_SIZE_POLYREF64 if polyref64 else LINK_SIZE
    offset = _align4(MESH_HEADER_DTYPE.itemsize)
    verts_off = offset
    offset += _align4(counts["vert_count"] * 12)
    polys_off = offset
    offset += _align4(counts["poly_count"] * POLY_DTYPE.itemsize)
    offset += _align4(counts["max_link_count"] * link_size)
    detail_off = offset
    offset += _align4(counts["detail_mesh_count"] * POLY_DETAIL_DTYPE.itemsize)
    dverts_off = offset
    offset += _align4(counts["detail_vert_count"] * 12)
    dtris_off = offset
    offset += _align4(counts["detail_tri_count"] * 4)
    offset += _align4(counts["bv_node_count"] * BV_NODE_SIZE)
    offset += _align4(counts["off_mesh_con_count"] * OFF_MESH_CON_SIZE)

    if len(data) < offset:
        raise NavMeshError(f"tile payload truncated: need {offset} bytes, got {len(data)}")

    verts = _section(data, verts_off, "<f4", counts["vert_count"] * 3).reshape(-1, 3).astype(np.float64)
    polys = _section(data, polys_off, POLY_DTYPE, counts["poly_count"])
    detail = _section(data, detail_off, POLY_DETAIL_DTYPE, counts["detail_mesh_count"])
    detail_verts = (
        _section(data, dverts_off, "<f4", counts["detail_vert_count"] * 3).reshape(-1, 3).astype(np.float64)
    )
    detail_tris = _section(data, dtris_off, "u1", counts["detail_tri_count"] * 4).reshape(-1, 4).astype(np.int64)

    poly_verts = polys["verts"].astype(np.int64).reshape(-1, DT_VERTS_PER_POLYGON)
    poly_vert_count = polys["vert_count"].astype(np.int64)
    if np.any(poly_vert_count > DT_VERTS_PER_POLYGON):
        raise NavMeshError("polygon declares more than 6 vertices")
    for ip in range(len(polys)):
        if np.any(poly_verts[ip, : poly_vert_count[ip]] >= len(verts)):
            raise NavMeshError(f"polygon {ip} references a vertex outside the tile")

    area_and_type = polys["area_and_type"].astype(np.int64)

    tile = MeshTile(
        x=int(header["x"]),
        y=int(header["y"]),
        layer=int(header["layer"]),
        walkable_climb=float(header["walkable_climb"]),
        bmin=header["bmin"].astype(np.float64),
        bmax=header["bmax"].astype(np.float64),
        verts=verts,
        poly_verts=poly_verts,
        poly_neis=polys["neis"].astype(np.int64).reshape(-1, DT_VERTS_PER_POLYGON),
        poly_flags=polys["flags"].astype(np.int64),
        poly_vert_count=poly_vert_count,
        poly_area=area_and_type & 0x3F,
        poly_type=area_and_type >> 6,
        detail_vert_base=detail["vert_base"].astype(np.int64),
        detail_tri_base=detail["tri_base"].astype(np.int64),
        detail_tri_count=detail["tri_count"].astype(np.int64),
        detail_verts=detail_verts,
        detail_tris=detail_tris,
        off_mesh_con_count=counts["off_mesh_con_count"],
    )

    poly_bmin = np.zeros((tile.poly_count, 3))
    poly_bmax = np.zeros((tile.poly_count, 3))
    for ip in range(tile.poly_count):
        pv = tile.poly_vertices(ip)
        if len(pv):
            poly_bmin[ip] = pv.min(axis=0)
            poly_bmax[ip] = pv.max(axis=0)
    tile.poly_bmin = poly_bmin
    tile.poly_bmax = poly_bmax
    tile.links = [[] for _ in range(tile.poly_count)]
    return tile


def _slab_coord(v: np.ndarray, side: int) -> float:
    if side in (0, 4):
        return float(v[0])
    return float(v[2])


def _slab_end_points(
    va: np.ndarray, vb: np.ndarray, side: int
) -> tuple[tuple[float, float], tuple[float, float]]:
    """Flatten a border edge to `(along-border, height)` end points, sorted along the border."""
    axis = 2 if side in (0, 4) else 0
    a = (float(va[axis]), float(va[1]))
    b = (float(vb[axis]), float(vb[1]))
    return (a, b) if a[0] < b[0] else (b, a)


def _clip_portal(
    va: np.ndarray, vb: np.ndarray, side: int, lo: float, hi: float
) -> tuple[np.ndarray, np.ndarray]:
    """Clip border edge `va-vb` to the span `[lo, hi]` shared with the neighbour."""
    axis = 2 if side in (0, 4) else 0
    span = vb[axis] - va[axis]
    if abs(span) < 1e-9:
        return va.copy(), vb.copy()
    tmin = (lo - va[axis]) / span
    tmax = (hi - va[axis]) / span
    if tmin > tmax:
        tmin, tmax = tmax, tmin
    tmin = min(max(tmin, 0.0), 1.0)
    tmax = min(max(tmax, 0.0), 1.0)
    return va + (vb - va) * tmin, va + (vb - va) * tmax


class NavMesh:
    """In-memory tiled walkable-surface model.

    Built once (`__init__` + `add_tile` per tile) and read-only afterwards, so
    one instance may be shared by concurrent queries.
    """

    def __init__(self, params: NavMeshParams, *, polyref64: bool = False) -> None:
        if params.max_tiles <= 0:
            raise NavMeshError("max_tiles must be > 0")
        if params.max_polys <= 0:
            raise NavMeshError("max_polys must be > 0")
        if not (params.tile_width > 0 and params.tile_height > 0):
            raise NavMeshError("tile_width and tile_height must be > 0")
        if not all(math.isfinite(v) for v in params.orig):
            raise NavMeshError("mesh origin must be finite")

        self._params = params
        self._polyref64 = polyref64
        self._orig = np.asarray(params.orig, dtype=np.float64)

        self._tile_bits = ilog2(next_pow2(params.max_tiles))
        self._poly_bits = ilog2(next_pow2(params.max_polys))
        self._salt_bits = min(31, 32 - self._tile_bits - self._poly_bits)
        if self._salt_bits < 10:
            raise NavMeshError(
                f"max_tiles={params.max_tiles} and max_polys={params.max_polys} leave too few salt bits"
            )

        self._tiles: list[MeshTile | None] = [None] * params.max_tiles
        self._salts: list[int] = [1] * params.max_tiles
        self._tile_count = 0
        # (x, y) -> slot indices of every layer at that grid cell
        self._pos_lookup: dict[tuple[int, int], list[int]] = {}

    @property
    def params(self) -> NavMeshParams:
        return self._params

    @property
    def tile_count(self) -> int:
        return self._tile_count

    def iter_tiles(self) -> Iterator[MeshTile]:
        for tile in self._tiles:
            if tile is not None:
                yield tile

    # -- references -------------------------------------------------------

    def encode_poly_ref(self, salt: int, tile_index: int, poly_index: int) -> int:
        return (
            (salt << (self._poly_bits + self._tile_bits))
            | (tile_index << self._poly_bits)
            | poly_index
        )

    def decode_poly_ref(self, ref: int) -> tuple[int, int, int]:
        """Split a reference into `(salt, tile_index, poly_index)`."""
        salt_mask = (1 << self._salt_bits) - 1
        tile_mask = (1 << self._tile_bits) - 1
        poly_mask = (1 << self._poly_bits) - 1
        salt = (ref >> (self._poly_bits + self._tile_bits)) & salt_mask
        tile_index = (ref >> self._poly_bits) & tile_mask
        return salt, tile_index, ref & poly_mask

    def poly_ref_base(self, tile: MeshTile) -> int:
        return self.encode_poly_ref(tile.salt, tile.index, 0)

    def is_valid_poly_ref(self, ref: int) -> bool:
        """True when `ref` names a polygon of a tile attached to this mesh."""
        if not ref or ref < 0 or ref >= (1 << 32):
            return False
        salt, it, ip = self.decode_poly_ref(ref)
        if it >= len(self._tiles):
            return False
        tile = self._tiles[it]
        if tile is None or tile.salt != salt:
            return False
        return ip < tile.poly_count

    def get_tile_and_poly(self, ref: int) -> tuple[MeshTile, int]:
        """Resolve a reference to `(tile, poly_index)`.

        Raises:
            NavMeshError: If the reference is not valid for this mesh.
        """
        if not self.is_valid_poly_ref(ref):
            raise NavMeshError(f"invalid poly ref {ref}")
        _, it, ip = self.decode_poly_ref(ref)
        tile = self._tiles[it]
        assert tile is not None
        return tile, ip

    # -- tile table -------------------------------------------------------

    def calc_tile_loc(self, pos: Sequence[float]) -> tuple[int, int]:
        """Tile-grid coordinate containing model-frame position `pos`."""
        tx = math.floor((pos[0] - self._orig[0]) / self._params.tile_width)
        ty = math.floor((pos[2] - self._orig[2]) / self._params.tile_height)
        return int(tx), int(ty)

    def tiles_at(self, tx: int, ty: int) -> list[MeshTile]:
        """All layers attached at tile-grid coordinate `(tx, ty)`."""
        return [self._tiles[index] for index in self._pos_lookup.get((tx, ty), ())]

    def add_tile(self, data: bytes, last_ref: int = 0) -> int:
        """Attach one tile payload and link it to its neighbours.

        Args:
            data: Raw tile payload (mesh header + sections).
            last_ref: Requested tile reference, or 0 to let the mesh pick a slot.

        Returns:
            The tile reference assigned to the new tile.

        Raises:
            NavMeshError: On corrupt payloads, occupied locations or a full tile table.
        """
        tile = parse_tile_data(data, polyref64=self._polyref64)

        if tile.poly_count > (1 << self._poly_bits):
            raise NavMeshError(f"tile has {tile.poly_count} polygons, mesh allows {self._params.max_polys}")

        if any(other.layer == tile.layer for other in self.tiles_at(tile.x, tile.y)):
            raise NavMeshError(f"tile location {(tile.x, tile.y, tile.layer)} is already occupied")

        if last_ref:
            _, index, _ = self.decode_poly_ref(last_ref)
            if index >= len(self._tiles) or self._tiles[index] is not None:
                raise NavMeshError(f"tile slot {index} is not available")
        else:
            try:
                index = self._tiles.index(None)
            except ValueError as exc:
                raise NavMeshError(f"no free tile slots (max_tiles={self._params.max_tiles})") from exc

        tile.index = index
        tile.salt = self._salts[index]
        self._tiles[index] = tile
        self._pos_lookup.setdefault((tile.x, tile.y), []).append(index)
        self._tile_count += 1

        if tile.off_mesh_con_count:
            logger.debug(
                "Tile (%d, %d) carries %d off-mesh connections; they are not linked",
                tile.x,
                tile.y,
                tile.off_mesh_con_count,
            )

        self._connect_int_links(tile)

        for other in self.tiles_at(tile.x, tile.y):
            if other is tile:
                continue
            self._connect_ext_links(tile, other, -1)
            self._connect_ext_links(other, tile, -1)

        for side, (dx, dy) in enumerate(_SIDE_OFFSETS):
            for other in self.tiles_at(tile.x + dx, tile.y + dy):
                self._connect_ext_links(tile, other, side)
                self._connect_ext_links(other, tile, opposite_side(side))

        return self.encode_poly_ref(tile.salt, tile.index, 0)

    # -- linking ----------------------------------------------------------

    def _make_link(
        self,
        tile: MeshTile,
        ip: int,
        ref: int,
        edge: int,
        side: int,
        left: np.ndarray,
        right: np.ndarray,
    ) -> Link:
        # Portals are stored left/right relative to walking out of `ip`.
        if tri_area_2d(tile.poly_centroid(ip), left, right) < 0.0:
            left, right = right, left
        return Link(ref=ref, edge=edge, side=side, left=left, right=right)

    def _connect_int_links(self, tile: MeshTile) -> None:
        base = self.poly_ref_base(tile)
        for ip in range(tile.poly_count):
            if tile.poly_type[ip] != POLYTYPE_GROUND:
                continue
            nv = int(tile.poly_vert_count[ip])
            for j in range(nv):
                nei = int(tile.poly_neis[ip, j])
                if nei == 0 or nei & DT_EXT_LINK:
                    continue
                if nei - 1 >= tile.poly_count:
                    raise NavMeshError(f"polygon {ip} links to missing neighbour {nei - 1}")
                va = tile.verts[tile.poly_verts[ip, j]].copy()
                vb = tile.verts[tile.poly_verts[ip, (j + 1) % nv]].copy()
                tile.links[ip].append(
                    self._make_link(tile, ip, base | (nei - 1), j, DT_NULL_LINK_SIDE, va, vb)
                )

    def _connect_ext_links(self, tile: MeshTile, target: MeshTile, side: int) -> None:
        for ip in range(tile.poly_count):
            nv = int(tile.poly_vert_count[ip])
            for j in range(nv):
                nei = int(tile.poly_neis[ip, j])
                if not nei & DT_EXT_LINK:
                    continue
                direction = nei & 0xFF
                if side != -1 and direction != side:
                    continue

                va = tile.verts[tile.poly_verts[ip, j]]
                vb = tile.verts[tile.poly_verts[ip, (j + 1) % nv]]
                for ref, lo, hi in self._find_connecting_polys(va, vb, target, opposite_side(direction)):
                    left, right = _clip_portal(va, vb, direction, lo, hi)
                    tile.links[ip].append(self._make_link(tile, ip, ref, j, direction, left, right))

    def _find_connecting_polys(
        self,
        va: np.ndarray,
        vb: np.ndarray,
        target: MeshTile,
        side: int,
    ) -> list[tuple[int, float, float]]:
        """Polygons of `target` whose border edge on `side` overlaps edge `va-vb`."""
        if side % 2:
            return []

        amin, amax = _slab_end_points(va, vb, side)
        apos = _slab_coord(va, side)
        base = self.poly_ref_base(target)
        wanted = DT_EXT_LINK | side

        found: list[tuple[int, float, float]] = []
        for ip in range(target.poly_count):
            nv = int(target.poly_vert_count[ip])
            for j in range(nv):
                if int(target.poly_neis[ip, j]) != wanted:
                    continue
                vc = target.verts[target.poly_verts[ip, j]]
                vd = target.verts[target.poly_verts[ip, (j + 1) % nv]]
                if abs(apos - _slab_coord(vc, side)) > 0.01:
                    continue
                bmin, bmax = _slab_end_points(vc, vd, side)
                if not overlap_slabs(amin, amax, bmin, bmax, 0.01, target.walkable_climb):
                    continue
                found.append((base | ip, max(amin[0], bmin[0]), min(amax[0], bmax[0])))
                break
        return found
