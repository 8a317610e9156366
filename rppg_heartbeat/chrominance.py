"""
Chrominance-based pulse extraction (XMinAY).

The three colour channels are normalised and combined into two
colour-difference signals

    X = 3 R - 2 G
    Y = 1.5 R + G - 1.5 B

which are band-passed and mixed as ``S = Xf - alpha * Yf`` with
``alpha = std(Xf) / std(Yf)``.

References
----------
- De Haan G., Jeanne V., "Robust pulse rate from chrominance-based rPPG."
  IEEE Trans. Biomed. Eng., 2013.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from rppg_heartbeat.filters import bandpass, normalize
from rppg_heartbeat.numeric import mean_std

NORMALIZATION_POLICIES = ("global", "per_segment")


def normalize_channel(
    x: np.ndarray, policy: str = "global", markers: Optional[np.ndarray] = None
) -> np.ndarray:
    """
    Normalise one channel.

    ``"global"`` uses one mean/std over the whole series.  ``"per_segment"``
    recomputes them for each run of samples between rescan markers, so every
    tracked region is normalised against itself.
    """
    if policy not in NORMALIZATION_POLICIES:
        raise ValueError(f"unknown normalization policy: {policy!r}")
    a = np.asarray(x, dtype=np.float64)
    if policy == "global" or markers is None:
        return normalize(a)

    m = np.asarray(markers, dtype=bool).ravel()
    if m.shape[0] != a.shape[0]:
        raise ValueError(
            f"markers length {m.shape[0]} does not match signal length {a.shape[0]}"
        )
    starts = [0] + [int(i) for i in np.flatnonzero(m) if i > 0]
    ends = starts[1:] + [a.shape[0]]
    out = np.empty_like(a)
    for start, end in zip(starts, ends):
        out[start:end] = normalize(a[start:end])
    return out


def xminay(
    r: np.ndarray,
    g: np.ndarray,
    b: np.ndarray,
    low: float,
    high: float,
    normalization: str = "global",
    markers: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Combine three colour channels into a single pulse signal.

    Parameters
    ----------
    r, g, b:
        Per-frame channel means, all of the same length.
    low, high:
        Band-pass cut-offs in DFT bin units.
    normalization:
        ``"global"`` or ``"per_segment"``; see :func:`normalize_channel`.
    markers:
        Rescan markers, required for per-segment normalisation.
    """
    r = np.asarray(r, dtype=np.float64).ravel()
    g = np.asarray(g, dtype=np.float64).ravel()
    b = np.asarray(b, dtype=np.float64).ravel()
    if not (r.shape == g.shape == b.shape):
        raise ValueError(
            f"channel lengths differ: r={r.size} g={g.size} b={b.size}"
        )

    r_n = normalize_channel(r, normalization, markers)
    g_n = normalize_channel(g, normalization, markers)
    b_n = normalize_channel(b, normalization, markers)

    x_s = 3.0 * r_n - 2.0 * g_n
    y_s = 1.5 * r_n + g_n - 1.5 * b_n

    x_f = bandpass(x_s, low, high)
    y_f = bandpass(y_s, low, high)

    _, std_x = mean_std(x_f)
    _, std_y = mean_std(y_f)
    if std_y == 0.0:
        return np.zeros_like(x_f)
    alpha = std_x / std_y
    return x_f - alpha * y_f
