"""Three-stage path resolution over the walkable-surface model.

Stages:
1. Snap start and end to the nearest walkable polygon.
2. Search a polygon corridor between the snapped polygons.
3. Pull a straight polyline through the corridor.

All points are in model frame. "No walkable surface nearby" and "no
corridor" are ordinary outcomes that produce an empty path; only
`NavMeshError` from the engine signals a broken query.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from tilenav.navmesh import NavMesh, QueryFilter, Status
from tilenav.navmesh_query import DT_MAX_NODES, NavMeshQuery, StraightPathFlags, StraightPathOptions

logger = logging.getLogger(__name__)

DEFAULT_MAX_PATH = 256
DEFAULT_SEARCH_EXTENT = 6.0
DEFAULT_INCLUDE_FLAGS = 5
DEFAULT_EXCLUDE_FLAGS = 10

_INCOMPLETE = Status.PARTIAL_RESULT | Status.OUT_OF_NODES | Status.BUFFER_TOO_SMALL


@dataclass(frozen=True, slots=True)
class SnapResult:
    """A query point resolved onto the walkable surface."""

    ref: int
    point: np.ndarray


@dataclass(slots=True)
class PathResult:
    """Ordered path points; `partial` when the path stops short of the goal."""

    points: list[np.ndarray] = field(default_factory=list)
    partial: bool = False


class PathResolver:
    """Snap, corridor search and straight-path refinement with one filter policy."""

    def __init__(
        self,
        mesh: NavMesh,
        query_filter: QueryFilter | None = None,
        *,
        search_extent: float = DEFAULT_SEARCH_EXTENT,
        max_path: int = DEFAULT_MAX_PATH,
        max_nodes: int = DT_MAX_NODES,
    ) -> None:
        if search_extent <= 0:
            raise ValueError("search_extent must be > 0")
        if max_path <= 0:
            raise ValueError("max_path must be > 0")
        if not 0 < max_nodes <= DT_MAX_NODES:
            raise ValueError(f"max_nodes must be in 1..{DT_MAX_NODES}")

        self._mesh = mesh
        self._filter = query_filter or QueryFilter(
            include_flags=DEFAULT_INCLUDE_FLAGS,
            exclude_flags=DEFAULT_EXCLUDE_FLAGS,
        )
        self._extents = np.full(3, float(search_extent))
        self._max_path = int(max_path)
        self._max_nodes = int(max_nodes)

    @property
    def mesh(self) -> NavMesh:
        return self._mesh

    @property
    def query_filter(self) -> QueryFilter:
        return self._filter

    @property
    def max_path(self) -> int:
        return self._max_path

    def new_query(self) -> NavMeshQuery:
        """Fresh per-call query context; never reuse one across requests."""
        return NavMeshQuery(self._mesh, self._max_nodes)

    def snap(self, point: Sequence[float], query: NavMeshQuery | None = None) -> SnapResult | None:
        """Nearest walkable point within the search extent, or None."""
        query = query or self.new_query()
        ref, nearest = query.find_nearest_poly(point, self._extents, self._filter)
        if not ref or not self._mesh.is_valid_poly_ref(ref):
            return None
        return SnapResult(ref=ref, point=nearest)

    def find_path(self, start: Sequence[float], end: Sequence[float]) -> PathResult:
        """Walkable polyline from `start` to `end` (model frame).

        Returns an empty `PathResult` when either end has no walkable surface
        nearby or no corridor exists. At most `max_path` points are returned.

        Raises:
            NavMeshError: If the engine rejects a query unexpectedly.
        """
        query = self.new_query()

        start_snap = self.snap(start, query)
        if start_snap is None:
            logger.debug("No walkable surface near start %s", list(start))
            return PathResult()
        end_snap = self.snap(end, query)
        if end_snap is None:
            logger.debug("No walkable surface near end %s", list(end))
            return PathResult()

        corridor, corridor_status = query.find_path(
            start_snap.ref,
            end_snap.ref,
            start_snap.point,
            end_snap.point,
            self._filter,
            self._max_path,
        )
        if not corridor:
            return PathResult()

        partial = bool(corridor_status & _INCOMPLETE)
        if partial:
            logger.warning(
                "Incomplete corridor (%s, %d polygons) from %s to %s",
                corridor_status,
                len(corridor),
                list(start),
                list(end),
            )

        vertices, _ = query.find_straight_path(
            start,
            end,
            corridor,
            self._max_path,
            StraightPathOptions.AREA_CROSSINGS,
        )
        if not vertices or not vertices[-1].flags & StraightPathFlags.END:
            partial = True

        return PathResult(points=[v.pos for v in vertices], partial=partial)

    def closest_point(self, point: Sequence[float]) -> SnapResult | None:
        """Snap a single point; None when nothing walkable is in range."""
        return self.snap(point)
