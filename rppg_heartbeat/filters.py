"""
Signal filters for the rPPG pipeline.

Stages
------
1. ``denoise``        – undo level shifts caused by region re-detection.
2. ``detrend``        – smoothness-priors high-pass (Tarvainen et al.).
3. ``moving_average`` – repeated box filter (low-pass).
4. ``bandpass``       – Butterworth magnitude mask applied in the DFT domain.

Every stage passes signals shorter than three samples through unchanged.

References
----------
- Tarvainen M.P. et al., "An advanced detrending method with application
  to HRV analysis." IEEE Trans. Biomed. Eng., 2002.
"""

from __future__ import annotations

import logging

import cv2
import numpy as np
from scipy import sparse
from scipy.sparse.linalg import spsolve

logger = logging.getLogger(__name__)

MIN_FILTER_SAMPLES = 3
BUTTERWORTH_ORDER = 8


def normalize(x: np.ndarray) -> np.ndarray:
    """Subtract the mean and divide by the standard deviation."""
    a = np.asarray(x, dtype=np.float64)
    std = float(np.std(a))
    if std == 0.0:
        return np.zeros_like(a)
    return (a - np.mean(a)) / std


def normalize_unit(x: np.ndarray) -> np.ndarray:
    """Min-max rescale *x* to [0, 1].  A constant signal maps to zeros."""
    a = np.asarray(x, dtype=np.float64)
    if a.size == 0:
        return a.copy()
    lo, hi = float(np.min(a)), float(np.max(a))
    span = hi - lo
    if span == 0.0 or not np.isfinite(span):
        return np.zeros_like(a)
    return (a - lo) / span


def denoise(x: np.ndarray, markers: np.ndarray) -> np.ndarray:
    """
    Remove step discontinuities at rescan markers.

    For each index ``i`` whose marker is set, the jump ``x[i] - x[i-1]`` is
    subtracted from every sample at index ``>= i``.  A marker on the first
    sample has no preceding difference and is ignored.  2-D input is
    corrected column-wise.
    """
    a = np.array(x, dtype=np.float64, copy=True)
    m = np.asarray(markers, dtype=bool).ravel()
    if m.shape[0] != a.shape[0]:
        raise ValueError(
            f"markers length {m.shape[0]} does not match signal length {a.shape[0]}"
        )
    if a.shape[0] < 2:
        return a

    diff = np.diff(a, axis=0)
    for i in np.flatnonzero(m):
        if i == 0:
            continue
        a[i:] -= diff[i - 1]
    return a


def detrend(x: np.ndarray, lam: float) -> np.ndarray:
    """
    Smoothness-priors detrending: ``y = (I - (I + lam^2 D'D)^-1) x``.

    ``D`` is the second-order difference operator.  The system is banded,
    so it is solved with a sparse factorisation instead of a dense inverse.
    2-D input is detrended column-wise.
    """
    a = np.asarray(x, dtype=np.float64)
    if a.ndim == 2:
        return np.column_stack([detrend(a[:, k], lam) for k in range(a.shape[1])])

    n = a.shape[0]
    if n < MIN_FILTER_SAMPLES:
        return a.copy()
    if not np.isfinite(lam):
        raise ValueError(f"detrend lambda must be finite, got {lam}")

    d2 = sparse.diags([1.0, -2.0, 1.0], [0, 1, 2], shape=(n - 2, n))
    system = sparse.identity(n) + (lam * lam) * (d2.T @ d2)
    trend = spsolve(system.tocsc(), a)
    return a - trend


def moving_average(x: np.ndarray, passes: int = 3, size: int = 1) -> np.ndarray:
    """Apply a box filter of width *size* to *x*, *passes* times."""
    a = np.asarray(x, dtype=np.float64)
    n = a.shape[0]
    if n < MIN_FILTER_SAMPLES:
        return a.copy()

    size = max(1, int(size))
    col = np.ascontiguousarray(a.reshape(n, -1))
    for _ in range(passes):
        col = cv2.blur(col, (1, size))
    return col.reshape(a.shape)


def butterworth_lowpass(n: int, cutoff: float, order: int) -> np.ndarray:
    """
    Butterworth low-pass magnitude mask ``1 / (1 + (r / cutoff)^(2 order))``
    evaluated at the bin indices ``r = 0 .. n-1``.
    """
    if order < 1:
        raise ValueError(f"filter order must be >= 1, got {order}")
    if cutoff < 0:
        raise ValueError(f"cutoff must be non-negative, got {cutoff}")
    if cutoff == 0:
        return np.zeros(n, dtype=np.float64)

    radius = np.arange(n, dtype=np.float64)
    with np.errstate(over="ignore"):
        return 1.0 / (1.0 + (radius / cutoff) ** (2 * order))


def butterworth_bandpass(n: int, cutin: float, cutoff: float, order: int) -> np.ndarray:
    """Band-pass mask as the difference of two low-pass masks."""
    if cutin > cutoff:
        raise ValueError(f"cutin ({cutin}) must not exceed cutoff ({cutoff})")
    return butterworth_lowpass(n, cutoff, order) - butterworth_lowpass(n, cutin, order)


def time_to_frequency(x: np.ndarray, magnitude: bool = False) -> np.ndarray:
    """Complex DFT of a real signal, or its magnitude."""
    spectrum = np.fft.fft(np.asarray(x, dtype=np.float64).ravel())
    if magnitude:
        return np.abs(spectrum)
    return spectrum


def frequency_to_time(spectrum: np.ndarray) -> np.ndarray:
    """Inverse DFT; the real part is returned rescaled to [0, 1]."""
    return normalize_unit(np.fft.ifft(spectrum).real)


def bandpass(
    x: np.ndarray, low: float, high: float, order: int = BUTTERWORTH_ORDER
) -> np.ndarray:
    """
    Frequency-domain band-pass between bin radii *low* and *high*.

    The output is renormalised to [0, 1].
    """
    a = np.asarray(x, dtype=np.float64).ravel()
    if a.size < MIN_FILTER_SAMPLES:
        return a.copy()

    spectrum = time_to_frequency(a)
    mask = butterworth_bandpass(a.size, low, high, order)
    return frequency_to_time(spectrum * mask)
