"""Planar geometry helpers for walkable-surface queries.

All "2D" helpers work on the horizontal XZ plane of model-frame points
(index 0 = x, index 2 = z); index 1 is height.
"""

from __future__ import annotations

import numpy as np

EPSILON = 1e-6
VEQUAL_THRESHOLD_SQ = (1.0 / 16384.0) ** 2


def tri_area_2d(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> float:
    """Signed doubled area of triangle `abc` on the XZ plane."""
    abx = b[0] - a[0]
    abz = b[2] - a[2]
    acx = c[0] - a[0]
    acz = c[2] - a[2]
    return float(acx * abz - abx * acz)


def vequal(a: np.ndarray, b: np.ndarray) -> bool:
    """True when two points are the same up to float noise."""
    d = a - b
    return float(np.dot(d, d)) < VEQUAL_THRESHOLD_SQ


def dist_sqr_2d(a: np.ndarray, b: np.ndarray) -> float:
    dx = b[0] - a[0]
    dz = b[2] - a[2]
    return float(dx * dx + dz * dz)


def distance_pt_seg_sqr_2d(pt: np.ndarray, p: np.ndarray, q: np.ndarray) -> tuple[float, float]:
    """Squared XZ distance from `pt` to segment `pq` and the segment parameter."""
    pqx = q[0] - p[0]
    pqz = q[2] - p[2]
    dx = pt[0] - p[0]
    dz = pt[2] - p[2]
    d = pqx * pqx + pqz * pqz
    t = pqx * dx + pqz * dz
    if d > 0:
        t /= d
    t = min(max(t, 0.0), 1.0)
    dx = p[0] + t * pqx - pt[0]
    dz = p[2] + t * pqz - pt[2]
    return float(dx * dx + dz * dz), float(t)


def point_in_polygon_2d(pt: np.ndarray, verts: np.ndarray) -> bool:
    """Crossing-number test of `pt` against polygon `verts` (N, 3) on XZ."""
    inside = False
    n = len(verts)
    j = n - 1
    for i in range(n):
        vi = verts[i]
        vj = verts[j]
        if (vi[2] > pt[2]) != (vj[2] > pt[2]):
            x_cross = (vj[0] - vi[0]) * (pt[2] - vi[2]) / (vj[2] - vi[2]) + vi[0]
            if pt[0] < x_cross:
                inside = not inside
        j = i
    return inside


def closest_point_on_polygon_edges(pt: np.ndarray, verts: np.ndarray) -> np.ndarray:
    """Closest point to `pt` on the boundary of polygon `verts`, height lerped along the edge."""
    best_d = float("inf")
    best_t = 0.0
    best_edge = 0
    n = len(verts)
    j = n - 1
    for i in range(n):
        d, t = distance_pt_seg_sqr_2d(pt, verts[j], verts[i])
        if d < best_d:
            best_d = d
            best_t = t
            best_edge = j
        j = i

    va = verts[best_edge]
    vb = verts[(best_edge + 1) % n]
    return va + (vb - va) * best_t


def closest_height_on_triangle(pt: np.ndarray, a: np.ndarray, b: np.ndarray, c: np.ndarray) -> float | None:
    """Height of the triangle at `pt`'s XZ position, or None when `pt` is outside it."""
    v0 = c - a
    v1 = b - a
    v2 = pt - a

    denom = v0[0] * v1[2] - v0[2] * v1[0]
    if abs(denom) < EPSILON:
        return None

    u = v1[2] * v2[0] - v1[0] * v2[2]
    v = v0[0] * v2[2] - v0[2] * v2[0]
    if denom < 0:
        denom = -denom
        u = -u
        v = -v

    # Small tolerance so points exactly on shared edges resolve.
    tol = -EPSILON * denom
    if u >= tol and v >= tol and (u + v) <= denom - tol:
        return float(a[1] + (v0[1] * u + v1[1] * v) / denom)
    return None


def intersect_seg_seg_2d(
    ap: np.ndarray,
    aq: np.ndarray,
    bp: np.ndarray,
    bq: np.ndarray,
) -> tuple[float, float] | None:
    """Line parameters `(s, t)` where `ap-aq` crosses `bp-bq`; None when parallel."""
    u = aq - ap
    v = bq - bp
    w = ap - bp

    def perp(p: np.ndarray, q: np.ndarray) -> float:
        return float(p[2] * q[0] - p[0] * q[2])

    d = perp(u, v)
    if abs(d) < EPSILON:
        return None
    s = perp(v, w) / d
    t = perp(u, w) / d
    return s, t


def overlap_slabs(
    amin: tuple[float, float],
    amax: tuple[float, float],
    bmin: tuple[float, float],
    bmax: tuple[float, float],
    px: float,
    py: float,
) -> bool:
    """Check whether two border edges, flattened to (along, height) slabs, overlap."""
    minx = max(amin[0] + px, bmin[0] + px)
    maxx = min(amax[0] - px, bmax[0] - px)
    if minx > maxx:
        return False

    def line(lo: tuple[float, float], hi: tuple[float, float]) -> tuple[float, float]:
        span = hi[0] - lo[0]
        slope = (hi[1] - lo[1]) / span if abs(span) > EPSILON else 0.0
        return slope, lo[1] - slope * lo[0]

    ad, ak = line(amin, amax)
    bd, bk = line(bmin, bmax)
    dmin = (bd * minx + bk) - (ad * minx + ak)
    dmax = (bd * maxx + bk) - (ad * maxx + ak)

    # Edges cross each other.
    if dmin * dmax < 0:
        return True

    thr = (py * 2) ** 2
    return dmin * dmin <= thr or dmax * dmax <= thr
