"""Unit tests for tilenav.coords."""

from __future__ import annotations

import numpy as np
import pytest

from tilenav.coords import to_caller_frame, to_model_frame


def test_to_model_frame_permutes_axes() -> None:
    """Caller (x, y, z) maps to model (y, z, x)."""
    assert to_model_frame((1.0, 2.0, 3.0)).tolist() == [2.0, 3.0, 1.0]


def test_to_caller_frame_is_inverse_permutation() -> None:
    """Model (x, y, z) maps back to caller (z, x, y)."""
    assert to_caller_frame((2.0, 3.0, 1.0)).tolist() == [1.0, 2.0, 3.0]


def test_round_trip_is_exact_for_random_points() -> None:
    """No float drift: the conversion is a pure permutation."""
    rng = np.random.default_rng(7)
    points = rng.uniform(-1e6, 1e6, size=(200, 3))
    points[0] = (-8921.09, -119.135, 82.195)
    points[1] = (1e-300, -0.0, 3.4e38)

    for p in points:
        assert np.array_equal(to_caller_frame(to_model_frame(p)), p)
        assert np.array_equal(to_model_frame(to_caller_frame(p)), p)


def test_converting_twice_does_not_round_trip() -> None:
    """Applying the same direction twice scrambles the point."""
    p = (1.0, 2.0, 3.0)
    assert to_model_frame(to_model_frame(p)).tolist() == [3.0, 1.0, 2.0]
    assert to_model_frame(to_model_frame(p)).tolist() != list(p)


def test_wrong_component_count_raises() -> None:
    with pytest.raises(ValueError, match="3 components"):
        to_model_frame((1.0, 2.0))
    with pytest.raises(ValueError, match="3 components"):
        to_caller_frame((1.0, 2.0, 3.0, 4.0))
