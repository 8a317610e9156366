"""
Low-level numeric helpers shared by the buffer, filters and estimator.
"""

from __future__ import annotations

import math
from typing import Optional, Tuple

import numpy as np


def mean_std(values: np.ndarray) -> Tuple[float, float]:
    """Return ``(mean, std)`` of *values* (population standard deviation)."""
    arr = np.asarray(values, dtype=np.float64)
    if arr.size == 0:
        return 0.0, 0.0
    return float(np.mean(arr)), float(np.std(arr))


def get_fps(timestamps: np.ndarray, time_base: float) -> float:
    """
    Frame rate of a timestamp series.

    Returns 1.0 for an empty series and ``inf`` for a single sample or when
    no time has elapsed, so callers can divide by the result safely.
    """
    t = np.asarray(timestamps)
    n = t.shape[0]
    if n == 0:
        return 1.0
    if n == 1:
        return math.inf
    elapsed = float(t[-1] - t[0]) * time_base
    if elapsed == 0:
        return math.inf
    return (n - 1) / elapsed


def min_max_loc(
    values: np.ndarray, mask: Optional[np.ndarray] = None
) -> Optional[Tuple[float, float, int, int]]:
    """
    Return ``(min, max, argmin, argmax)`` of *values* restricted to *mask*.

    Indices refer to the unmasked array.  Returns ``None`` when no element
    is selected.
    """
    arr = np.asarray(values, dtype=np.float64).ravel()
    if mask is None:
        idx = np.arange(arr.size)
    else:
        sel = np.asarray(mask, dtype=bool).ravel()
        if sel.shape != arr.shape:
            raise ValueError(
                f"mask shape {sel.shape} does not match values shape {arr.shape}"
            )
        idx = np.flatnonzero(sel)
    if idx.size == 0:
        return None
    sub = arr[idx]
    i_min = int(idx[np.argmin(sub)])
    i_max = int(idx[np.argmax(sub)])
    return float(arr[i_min]), float(arr[i_max]), i_min, i_max
