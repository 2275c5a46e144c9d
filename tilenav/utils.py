"""Utility helpers shared across service modules."""

from __future__ import annotations

from typing import Iterable

import numpy as np


def point_to_dict(point: np.ndarray) -> dict[str, float]:
    """Convert a 3-component array to a JSON-friendly `{"x","y","z"}` dict."""
    return {"x": float(point[0]), "y": float(point[1]), "z": float(point[2])}


def to_serializable_points(points: Iterable[np.ndarray]) -> list[dict[str, float]]:
    """Convert a sequence of 3-component arrays to JSON-friendly dicts."""
    return [point_to_dict(p) for p in points]


def next_pow2(value: int) -> int:
    """Smallest power of two >= `value` (1 for non-positive input)."""
    if value <= 1:
        return 1
    return 1 << (int(value) - 1).bit_length()


def ilog2(value: int) -> int:
    """Integer base-2 logarithm of a positive integer."""
    if value <= 0:
        raise ValueError("value must be > 0")
    return int(value).bit_length() - 1
