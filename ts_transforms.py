"""
Differencing and the log1p variance-stabilizing transform.

Order of operations in a model pipeline is fixed:
transform -> difference -> model -> undifference -> inverse transform.
"""

from __future__ import annotations

from typing import List, Sequence

import numpy as np


def difference(series: Sequence[float], d: int) -> np.ndarray:
    """Apply the first difference `d` times; each pass drops one point."""
    s = np.asarray(series, dtype=float)
    for _ in range(max(0, int(d))):
        if s.size < 2:
            return np.array([], dtype=float)
        s = np.diff(s)
    return s


def undifference(diff_series: Sequence[float], anchor: float) -> np.ndarray:
    """Running sum of `diff_series` starting from `anchor`, the true value just before it."""
    return float(anchor) + np.cumsum(np.asarray(diff_series, dtype=float))


def difference_anchors(series: Sequence[float], d: int, index: int) -> List[float]:
    """Anchors for rebuilding the values that follow `series[index]` after `d` differences.

    anchors[0] is the level `series[index]`; for d=2, anchors[1] is the first
    difference ending at `index`.
    """
    s = np.asarray(series, dtype=float)
    anchors = []
    for k in range(max(0, int(d))):
        anchors.append(float(difference(s[: index + 1], k)[-1]))
    return anchors


def integrate(diff_series: Sequence[float], anchors: Sequence[float]) -> np.ndarray:
    """Undo len(anchors) differences, innermost first."""
    out = np.asarray(diff_series, dtype=float)
    for anchor in reversed(list(anchors)):
        out = undifference(out, anchor)
    return out


def log1p_forward(values: Sequence[float]) -> np.ndarray:
    return np.log1p(np.maximum(0.0, np.asarray(values, dtype=float)))


def log1p_inverse(values: Sequence[float]) -> np.ndarray:
    return np.maximum(0.0, np.expm1(np.asarray(values, dtype=float)))
