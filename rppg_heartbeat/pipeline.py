"""
Per-cycle signal extraction.

Both methods regenerate the filtered signal from the full buffer contents on
every estimation cycle and return a :class:`SignalTrace` holding each
intermediate stage (used for the per-cycle CSV trace).
"""

from __future__ import annotations

import math
from typing import NamedTuple, Tuple

import numpy as np

from rppg_heartbeat.chrominance import xminay
from rppg_heartbeat.filters import bandpass, denoise, detrend, moving_average

SEC_PER_MIN = 60.0
MOVING_AVERAGE_PASSES = 3


class SignalTrace(NamedTuple):
    raw: np.ndarray
    denoised: np.ndarray
    detrended: np.ndarray
    averaged: np.ndarray
    filtered: np.ndarray


def band_cutoffs(n: int, fps: float, low_bpm: float, high_bpm: float) -> Tuple[float, float]:
    """Convert a BPM range to DFT bin radii for an *n*-sample window."""
    if not math.isfinite(fps) or fps <= 0:
        return math.nan, math.nan
    return n * low_bpm / SEC_PER_MIN / fps, n * high_bpm / SEC_PER_MIN / fps


def extract_green(
    values: np.ndarray,
    markers: np.ndarray,
    fps: float,
    low_bpm: float,
    high_bpm: float,
) -> SignalTrace:
    """Denoise, detrend, smooth and band-pass a single-channel signal."""
    raw = np.asarray(values, dtype=np.float64)
    if raw.ndim != 1:
        raise ValueError(f"green extraction expects a 1-D signal, got shape {raw.shape}")

    denoised = denoise(raw, markers)
    if not math.isfinite(fps) or fps <= 0:
        return SignalTrace(raw, denoised, denoised, denoised, denoised.copy())

    detrended = detrend(denoised, fps)
    averaged = moving_average(
        detrended, MOVING_AVERAGE_PASSES, max(1, int(round(fps / 3.0)))
    )
    low, high = band_cutoffs(raw.size, fps, low_bpm, high_bpm)
    filtered = bandpass(averaged, low, high)
    return SignalTrace(raw, denoised, detrended, averaged, filtered)


def extract_xminay(
    values: np.ndarray,
    markers: np.ndarray,
    fps: float,
    low_bpm: float,
    high_bpm: float,
    normalization: str = "global",
    channel_order: str = "bgr",
) -> SignalTrace:
    """
    Chrominance extraction from an ``(n, 3)`` colour buffer.

    Channels are denoised first; the chrominance combination performs its
    own band-pass.  The trace's ``denoised``, ``detrended`` and ``averaged``
    fields all carry the denoised green channel.
    """
    raw = np.asarray(values, dtype=np.float64)
    if raw.ndim != 2 or raw.shape[1] != 3:
        raise ValueError(f"chrominance extraction expects shape (n, 3), got {raw.shape}")
    if channel_order not in ("bgr", "rgb"):
        raise ValueError(f"unknown channel order: {channel_order!r}")

    denoised = denoise(raw, markers)
    if channel_order == "bgr":
        b, g, r = denoised[:, 0], denoised[:, 1], denoised[:, 2]
    else:
        r, g, b = denoised[:, 0], denoised[:, 1], denoised[:, 2]

    low, high = band_cutoffs(raw.shape[0], fps, low_bpm, high_bpm)
    if math.isfinite(low) and math.isfinite(high):
        filtered = xminay(r, g, b, low, high, normalization, markers)
    else:
        filtered = np.zeros(raw.shape[0], dtype=np.float64)
    return SignalTrace(raw[:, 1], g, g, g, filtered)
