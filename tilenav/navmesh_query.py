"""Queries over an assembled `NavMesh`.

A `NavMeshQuery` owns the scratch state of one search (node pool and open
list). Create one per request; never share an instance between threads.

Usage example:
    >>> query = NavMeshQuery(mesh, max_nodes=2048)
    >>> start_ref, start_pt = query.find_nearest_poly(start, (6, 6, 6), QueryFilter())
    >>> end_ref, end_pt = query.find_nearest_poly(end, (6, 6, 6), QueryFilter())
    >>> corridor, status = query.find_path(start_ref, end_ref, start_pt, end_pt, QueryFilter(), 256)
    >>> points, status = query.find_straight_path(start, end, corridor, 256)
"""

from __future__ import annotations

import enum
import heapq
import itertools
import math
from dataclasses import dataclass
from typing import Iterator, Sequence

import numpy as np

from tilenav.geometry import (
    closest_height_on_triangle,
    closest_point_on_polygon_edges,
    distance_pt_seg_sqr_2d,
    intersect_seg_seg_2d,
    point_in_polygon_2d,
    tri_area_2d,
    vequal,
)
from tilenav.navmesh import (
    POLYTYPE_GROUND,
    POLYTYPE_OFFMESH_CONNECTION,
    MeshTile,
    NavMesh,
    NavMeshError,
    QueryFilter,
    Status,
)

DT_MAX_NODES = 65535
H_SCALE = 0.999
PORTAL_EPSILON = 0.001

_NODE_NEW = 0
_NODE_OPEN = 1
_NODE_CLOSED = 2


class StraightPathFlags(enum.IntFlag):
    NONE = 0
    START = 1
    END = 2
    OFFMESH_CONNECTION = 4


class StraightPathOptions(enum.IntFlag):
    NONE = 0
    AREA_CROSSINGS = 1
    ALL_CROSSINGS = 2


@dataclass(frozen=True, slots=True)
class StraightPathVertex:
    """One corner of a refined path with the polygon it enters."""

    pos: np.ndarray
    flags: StraightPathFlags
    ref: int


@dataclass(slots=True)
class _Node:
    ref: int
    pos: np.ndarray
    cost: float = 0.0
    total: float = 0.0
    parent: _Node | None = None
    state: int = _NODE_NEW


def _as_vec3(value: Sequence[float], label: str) -> np.ndarray:
    vec = np.asarray(value, dtype=np.float64).reshape(-1)
    if vec.shape != (3,):
        raise NavMeshError(f"{label} must have 3 components")
    if not np.all(np.isfinite(vec)):
        raise NavMeshError(f"{label} must be finite")
    return vec


class NavMeshQuery:
    """Per-call query context over a shared, read-only `NavMesh`."""

    def __init__(self, mesh: NavMesh, max_nodes: int = DT_MAX_NODES) -> None:
        if not 0 < max_nodes <= DT_MAX_NODES:
            raise NavMeshError(f"max_nodes must be in 1..{DT_MAX_NODES}")
        self._mesh = mesh
        self._max_nodes = int(max_nodes)
        self._nodes: dict[int, _Node] = {}

    @property
    def mesh(self) -> NavMesh:
        return self._mesh

    @property
    def max_nodes(self) -> int:
        return self._max_nodes

    def _get_node(self, ref: int) -> _Node | None:
        node = self._nodes.get(ref)
        if node is None:
            if len(self._nodes) >= self._max_nodes:
                return None
            node = _Node(ref=ref, pos=np.zeros(3))
            self._nodes[ref] = node
        return node

    # -- point queries ----------------------------------------------------

    def _iter_polys_in_box(
        self,
        bmin: np.ndarray,
        bmax: np.ndarray,
        query_filter: QueryFilter,
    ) -> Iterator[tuple[MeshTile, int]]:
        tx0, ty0 = self._mesh.calc_tile_loc(bmin)
        tx1, ty1 = self._mesh.calc_tile_loc(bmax)
        for ty in range(ty0, ty1 + 1):
            for tx in range(tx0, tx1 + 1):
                for tile in self._mesh.tiles_at(tx, ty):
                    if tile.poly_count == 0:
                        continue
                    mask = (
                        np.all(tile.poly_bmin <= bmax, axis=1)
                        & np.all(tile.poly_bmax >= bmin, axis=1)
                        & (tile.poly_type == POLYTYPE_GROUND)
                        & query_filter.pass_mask(tile.poly_flags)
                    )
                    for ip in np.flatnonzero(mask):
                        yield tile, int(ip)

    def query_polygons(
        self,
        center: Sequence[float],
        half_extents: Sequence[float],
        query_filter: QueryFilter,
    ) -> list[int]:
        """References of all polygons overlapping the box around `center`."""
        c = _as_vec3(center, "center")
        ext = _as_vec3(half_extents, "half_extents")
        return [
            self._mesh.poly_ref_base(tile) | ip
            for tile, ip in self._iter_polys_in_box(c - ext, c + ext, query_filter)
        ]

    def find_nearest_poly(
        self,
        center: Sequence[float],
        half_extents: Sequence[float],
        query_filter: QueryFilter,
    ) -> tuple[int, np.ndarray]:
        """Find the polygon nearest to `center` inside the search box.

        Returns:
            `(ref, point)`; `ref` is 0 and `point` echoes `center` when no
            polygon passing `query_filter` overlaps the box.
        """
        c = _as_vec3(center, "center")
        ext = _as_vec3(half_extents, "half_extents")
        if np.any(ext < 0):
            raise NavMeshError("half_extents must be >= 0")

        nearest_ref = 0
        nearest_pt = c.copy()
        nearest_d = math.inf

        for tile, ip in self._iter_polys_in_box(c - ext, c + ext, query_filter):
            closest, over_poly = self._closest_point_on_poly(tile, ip, c)
            diff = c - closest
            if over_poly:
                # Standing above the polygon within climb height counts as on it.
                d = abs(float(diff[1])) - tile.walkable_climb
                d = d * d if d > 0 else 0.0
            else:
                d = float(np.dot(diff, diff))

            if d < nearest_d:
                nearest_d = d
                nearest_pt = closest
                nearest_ref = self._mesh.poly_ref_base(tile) | ip

        return nearest_ref, nearest_pt

    def _poly_height(self, tile: MeshTile, ip: int, pos: np.ndarray) -> float:
        for a, b, c in tile.poly_triangles(ip):
            h = closest_height_on_triangle(pos, a, b, c)
            if h is not None:
                return h
        return float(closest_point_on_polygon_edges(pos, tile.poly_vertices(ip))[1])

    def _closest_point_on_poly(self, tile: MeshTile, ip: int, pos: np.ndarray) -> tuple[np.ndarray, bool]:
        verts = tile.poly_vertices(ip)
        if point_in_polygon_2d(pos, verts):
            return np.array([pos[0], self._poly_height(tile, ip, pos), pos[2]]), True
        return closest_point_on_polygon_edges(pos, verts), False

    def closest_point_on_poly(self, ref: int, pos: Sequence[float]) -> tuple[np.ndarray, bool]:
        """Closest point on polygon `ref` and whether `pos` lies over it."""
        tile, ip = self._mesh.get_tile_and_poly(ref)
        return self._closest_point_on_poly(tile, ip, _as_vec3(pos, "pos"))

    def closest_point_on_poly_boundary(self, ref: int, pos: Sequence[float]) -> np.ndarray:
        """`pos` itself when inside polygon `ref` (XZ), else the closest boundary point."""
        tile, ip = self._mesh.get_tile_and_poly(ref)
        p = _as_vec3(pos, "pos")
        verts = tile.poly_vertices(ip)
        if point_in_polygon_2d(p, verts):
            return p.copy()
        return closest_point_on_polygon_edges(p, verts)

    def get_poly_height(self, ref: int, pos: Sequence[float]) -> float:
        tile, ip = self._mesh.get_tile_and_poly(ref)
        return self._poly_height(tile, ip, _as_vec3(pos, "pos"))

    def get_portal_points(self, from_ref: int, to_ref: int) -> tuple[np.ndarray, np.ndarray, int]:
        """Portal `(left, right, to_poly_type)` between two adjacent polygons."""
        tile, ip = self._mesh.get_tile_and_poly(from_ref)
        for link in tile.links[ip]:
            if link.ref == to_ref:
                to_tile, to_ip = self._mesh.get_tile_and_poly(to_ref)
                return link.left.copy(), link.right.copy(), int(to_tile.poly_type[to_ip])
        raise NavMeshError(f"polygons {from_ref} and {to_ref} are not adjacent")

    # -- corridor search --------------------------------------------------

    def find_path(
        self,
        start_ref: int,
        end_ref: int,
        start_pos: Sequence[float],
        end_pos: Sequence[float],
        query_filter: QueryFilter,
        max_path: int,
    ) -> tuple[list[int], Status]:
        """A* search for a polygon corridor from `start_ref` to `end_ref`.

        Node positions are portal midpoints. When the goal is unreachable, or
        the node budget runs out, the corridor leads to the explored polygon
        closest to `end_pos` and `PARTIAL_RESULT`/`OUT_OF_NODES` are set.
        Corridors longer than `max_path` keep their start-side prefix and set
        `BUFFER_TOO_SMALL`.

        Raises:
            NavMeshError: On invalid references, positions or capacity.
        """
        if not self._mesh.is_valid_poly_ref(start_ref) or not self._mesh.is_valid_poly_ref(end_ref):
            raise NavMeshError("invalid start or end poly ref")
        if max_path <= 0:
            raise NavMeshError("max_path must be > 0")
        start = _as_vec3(start_pos, "start_pos")
        end = _as_vec3(end_pos, "end_pos")

        if start_ref == end_ref:
            return [start_ref], Status.SUCCESS

        self._nodes = {}
        counter = itertools.count()

        start_node = self._get_node(start_ref)
        assert start_node is not None
        start_node.pos = start.copy()
        start_node.total = float(np.linalg.norm(start - end)) * H_SCALE
        start_node.state = _NODE_OPEN
        open_heap: list[tuple[float, int, _Node]] = [(start_node.total, next(counter), start_node)]

        last_best = start_node
        last_best_cost = start_node.total
        out_of_nodes = False

        while open_heap:
            _, _, best = heapq.heappop(open_heap)
            if best.state == _NODE_CLOSED:
                continue
            best.state = _NODE_CLOSED

            if best.ref == end_ref:
                last_best = best
                break

            tile, ip = self._mesh.get_tile_and_poly(best.ref)
            parent_ref = best.parent.ref if best.parent is not None else 0

            for link in tile.links[ip]:
                nref = link.ref
                if not nref or nref == parent_ref:
                    continue

                ntile, nip = self._mesh.get_tile_and_poly(nref)
                if not query_filter.pass_filter(ntile.poly_flags[nip]):
                    continue

                neighbour = self._get_node(nref)
                if neighbour is None:
                    out_of_nodes = True
                    continue

                if neighbour.state == _NODE_NEW:
                    neighbour.pos = (link.left + link.right) * 0.5

                if nref == end_ref:
                    cur_cost = query_filter.get_cost(best.pos, neighbour.pos, tile.poly_area[ip])
                    end_cost = query_filter.get_cost(neighbour.pos, end, ntile.poly_area[nip])
                    cost = best.cost + cur_cost + end_cost
                    heuristic = 0.0
                else:
                    cost = best.cost + query_filter.get_cost(best.pos, neighbour.pos, tile.poly_area[ip])
                    heuristic = float(np.linalg.norm(neighbour.pos - end)) * H_SCALE

                total = cost + heuristic
                if neighbour.state != _NODE_NEW and total >= neighbour.total:
                    continue

                neighbour.parent = best
                neighbour.cost = cost
                neighbour.total = total
                neighbour.state = _NODE_OPEN
                heapq.heappush(open_heap, (total, next(counter), neighbour))

                if heuristic < last_best_cost:
                    last_best_cost = heuristic
                    last_best = neighbour

        status = Status.SUCCESS
        if last_best.ref != end_ref:
            status |= Status.PARTIAL_RESULT
        if out_of_nodes:
            status |= Status.OUT_OF_NODES

        corridor: list[int] = []
        node: _Node | None = last_best
        while node is not None:
            corridor.append(node.ref)
            node = node.parent
        corridor.reverse()

        if len(corridor) > max_path:
            corridor = corridor[:max_path]
            status |= Status.BUFFER_TOO_SMALL

        return corridor, status

    # -- string pulling ---------------------------------------------------

    @staticmethod
    def _append_vertex(
        out: list[StraightPathVertex],
        pos: np.ndarray,
        flags: StraightPathFlags,
        ref: int,
        max_straight_path: int,
    ) -> Status:
        if out and vequal(out[-1].pos, pos):
            # Same spot: the later vertex's flags and polygon win.
            out[-1] = StraightPathVertex(pos=out[-1].pos, flags=flags, ref=ref)
        else:
            out.append(StraightPathVertex(pos=pos.copy(), flags=flags, ref=ref))
            if len(out) >= max_straight_path:
                return Status.SUCCESS | Status.BUFFER_TOO_SMALL

        if flags & StraightPathFlags.END:
            return Status.SUCCESS
        return Status.IN_PROGRESS

    def _append_portals(
        self,
        start_index: int,
        end_index: int,
        end_pos: np.ndarray,
        path: Sequence[int],
        out: list[StraightPathVertex],
        max_straight_path: int,
        options: StraightPathOptions,
    ) -> Status:
        start_pos = out[-1].pos
        for i in range(start_index, end_index):
            from_tile, from_ip = self._mesh.get_tile_and_poly(path[i])
            to_tile, to_ip = self._mesh.get_tile_and_poly(path[i + 1])

            if options & StraightPathOptions.AREA_CROSSINGS:
                if from_tile.poly_area[from_ip] == to_tile.poly_area[to_ip]:
                    continue

            try:
                left, right, _ = self.get_portal_points(path[i], path[i + 1])
            except NavMeshError:
                break

            hit = intersect_seg_seg_2d(start_pos, end_pos, left, right)
            if hit is None:
                continue
            t = min(max(hit[1], 0.0), 1.0)
            pt = left + (right - left) * t

            status = self._append_vertex(out, pt, StraightPathFlags.NONE, path[i + 1], max_straight_path)
            if status != Status.IN_PROGRESS:
                return status
        return Status.IN_PROGRESS

    def find_straight_path(
        self,
        start_pos: Sequence[float],
        end_pos: Sequence[float],
        path: Sequence[int],
        max_straight_path: int,
        options: StraightPathOptions = StraightPathOptions.NONE,
    ) -> tuple[list[StraightPathVertex], Status]:
        """Pull a taut polyline through polygon corridor `path` (funnel algorithm).

        Start and end are clamped onto the first and last corridor polygons.
        With crossing options, extra vertices are emitted where the path
        crosses polygon (or area) boundaries. Output stops at
        `max_straight_path` vertices with `BUFFER_TOO_SMALL` set.
        """
        if not path:
            raise NavMeshError("path must contain at least one polygon")
        if max_straight_path <= 0:
            raise NavMeshError("max_straight_path must be > 0")

        start = _as_vec3(start_pos, "start_pos")
        end = _as_vec3(end_pos, "end_pos")
        closest_start = self.closest_point_on_poly_boundary(path[0], start)
        closest_end = self.closest_point_on_poly_boundary(path[-1], end)
        crossings = bool(options & (StraightPathOptions.AREA_CROSSINGS | StraightPathOptions.ALL_CROSSINGS))

        out: list[StraightPathVertex] = []
        status = self._append_vertex(out, closest_start, StraightPathFlags.START, path[0], max_straight_path)
        if status != Status.IN_PROGRESS:
            return out, status

        n = len(path)
        if n > 1:
            portal_apex = closest_start.copy()
            portal_left = portal_apex.copy()
            portal_right = portal_apex.copy()
            apex_index = left_index = right_index = 0
            left_poly_type = right_poly_type = POLYTYPE_GROUND
            left_poly_ref = right_poly_ref = path[0]

            i = 0
            while i < n:
                if i + 1 < n:
                    try:
                        left, right, to_type = self.get_portal_points(path[i], path[i + 1])
                    except NavMeshError:
                        # Broken corridor: stop at the last reachable polygon.
                        closest_end = self.closest_point_on_poly_boundary(path[i], end)
                        if crossings:
                            self._append_portals(
                                apex_index, i, closest_end, path, out, max_straight_path, options
                            )
                        self._append_vertex(out, closest_end, StraightPathFlags.NONE, path[i], max_straight_path)
                        status = Status.SUCCESS | Status.PARTIAL_RESULT
                        if len(out) >= max_straight_path:
                            status |= Status.BUFFER_TOO_SMALL
                        return out, status

                    if i == 0:
                        d, _ = distance_pt_seg_sqr_2d(portal_apex, left, right)
                        if d < PORTAL_EPSILON * PORTAL_EPSILON:
                            i += 1
                            continue
                else:
                    left = closest_end.copy()
                    right = closest_end.copy()
                    to_type = POLYTYPE_GROUND

                # Right funnel edge.
                if tri_area_2d(portal_apex, portal_right, right) <= 0.0:
                    if vequal(portal_apex, portal_right) or tri_area_2d(portal_apex, portal_left, right) > 0.0:
                        portal_right = right.copy()
                        right_poly_ref = path[i + 1] if i + 1 < n else 0
                        right_poly_type = to_type
                        right_index = i
                    else:
                        if crossings:
                            status = self._append_portals(
                                apex_index, left_index, portal_left, path, out, max_straight_path, options
                            )
                            if status != Status.IN_PROGRESS:
                                return out, status

                        portal_apex = portal_left.copy()
                        apex_index = left_index
                        status = self._append_vertex(
                            out,
                            portal_apex,
                            self._corner_flags(left_poly_ref, left_poly_type),
                            left_poly_ref,
                            max_straight_path,
                        )
                        if status != Status.IN_PROGRESS:
                            return out, status

                        portal_left = portal_apex.copy()
                        portal_right = portal_apex.copy()
                        left_index = right_index = apex_index
                        i = apex_index + 1
                        continue

                # Left funnel edge.
                if tri_area_2d(portal_apex, portal_left, left) >= 0.0:
                    if vequal(portal_apex, portal_left) or tri_area_2d(portal_apex, portal_right, left) < 0.0:
                        portal_left = left.copy()
                        left_poly_ref = path[i + 1] if i + 1 < n else 0
                        left_poly_type = to_type
                        left_index = i
                    else:
                        if crossings:
                            status = self._append_portals(
                                apex_index, right_index, portal_right, path, out, max_straight_path, options
                            )
                            if status != Status.IN_PROGRESS:
                                return out, status

                        portal_apex = portal_right.copy()
                        apex_index = right_index
                        status = self._append_vertex(
                            out,
                            portal_apex,
                            self._corner_flags(right_poly_ref, right_poly_type),
                            right_poly_ref,
                            max_straight_path,
                        )
                        if status != Status.IN_PROGRESS:
                            return out, status

                        portal_left = portal_apex.copy()
                        portal_right = portal_apex.copy()
                        left_index = right_index = apex_index
                        i = apex_index + 1
                        continue

                i += 1

            if crossings:
                status = self._append_portals(
                    apex_index, n - 1, closest_end, path, out, max_straight_path, options
                )
                if status != Status.IN_PROGRESS:
                    return out, status

        status = self._append_vertex(out, closest_end, StraightPathFlags.END, 0, max_straight_path)
        return out, status

    @staticmethod
    def _corner_flags(poly_ref: int, poly_type: int) -> StraightPathFlags:
        if poly_ref == 0:
            return StraightPathFlags.END
        if poly_type == POLYTYPE_OFFMESH_CONNECTION:
            return StraightPathFlags.OFFMESH_CONNECTION
        return StraightPathFlags.NONE
