"""Caller-frame <-> model-frame conversion.

Callers send points as `(x, y, z)` with `z` pointing up. The walkable-surface
model stores points with `y` up, so every point crossing the HTTP boundary is
rotated through one cyclic axis permutation:

    model  = (y, z, x)   # to_model_frame
    caller = (z, x, y)   # to_caller_frame

The permutation is exact, so `to_caller_frame(to_model_frame(p)) == p`.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

Vec3 = np.ndarray


def to_model_frame(point: Sequence[float]) -> Vec3:
    """Map a caller-frame point `(x, y, z)` to model frame `(y, z, x)`."""
    if len(point) != 3:
        raise ValueError("point must have exactly 3 components")
    return np.array([point[1], point[2], point[0]], dtype=np.float64)


def to_caller_frame(point: Sequence[float]) -> Vec3:
    """Map a model-frame point `(x, y, z)` back to caller frame `(z, x, y)`."""
    if len(point) != 3:
        raise ValueError("point must have exactly 3 components")
    return np.array([point[2], point[0], point[1]], dtype=np.float64)
