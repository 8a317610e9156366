"""
Heart-rate estimation from the filtered pulse signal.

Algorithm
---------
1. Take the magnitude of the DFT of the filtered signal.
2. Restrict the search to bins inside the physiological BPM band.
3. The strongest bin (or, optionally, the magnitude-weighted centroid of the
   band) gives one BPM estimate per cycle.
4. Every ``sampling_interval`` seconds the estimates collected since the
   last report are reduced to mean / min / max.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from rppg_heartbeat.filters import time_to_frequency
from rppg_heartbeat.numeric import min_max_loc

logger = logging.getLogger(__name__)

SEC_PER_MIN = 60.0
REFINEMENTS = ("peak", "centroid")


@dataclass(frozen=True)
class BpmResult:
    """Aggregated heart rate over one sampling interval."""

    timestamp: int
    mean: float
    min: float
    max: float


def power_spectrum(signal: np.ndarray) -> np.ndarray:
    return time_to_frequency(signal, magnitude=True)


def weighted_index(
    spectrum: np.ndarray, low: int, high: int, quartic: bool = True
) -> Optional[float]:
    """
    Magnitude-weighted mean bin index over ``[low, high)``.

    With *quartic* the magnitudes are squared twice before L1 normalisation,
    which concentrates the weight on the dominant peak.
    """
    band = np.asarray(spectrum, dtype=np.float64)[low:high]
    if band.size == 0:
        return None
    weights = band ** 4 if quartic else band
    total = float(np.sum(weights))
    if total == 0.0 or not math.isfinite(total):
        return None
    weights = weights / total
    return float(np.sum(weights * np.arange(low, low + band.size)))


class HeartRateEstimator:
    """
    Spectral peak search plus periodic aggregation.

    Parameters
    ----------
    time_base:
        Seconds per timestamp unit.
    sampling_interval:
        Seconds between aggregated results.
    low_bpm, high_bpm:
        Physiological search band (default 42 – 240 BPM).
    refinement:
        ``"peak"`` uses the strongest bin; ``"centroid"`` the quartic-weighted
        centroid of the band.
    """

    def __init__(
        self,
        time_base: float,
        sampling_interval: float = 1.0,
        low_bpm: float = 42.0,
        high_bpm: float = 240.0,
        refinement: str = "peak",
    ) -> None:
        if refinement not in REFINEMENTS:
            raise ValueError(f"unknown refinement: {refinement!r}")
        self.time_base = time_base
        self.sampling_interval = sampling_interval
        self.low_bpm = low_bpm
        self.high_bpm = high_bpm
        self.refinement = refinement

        self._bpms: List[float] = []
        self._last_sampling_time: Optional[int] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def pending(self) -> List[float]:
        """Estimates collected since the last aggregated result."""
        return list(self._bpms)

    def band_bins(self, n: int, fps: float) -> Tuple[int, int]:
        """Half-open bin range ``[low, high)`` covering the BPM band."""
        if n <= 0 or not math.isfinite(fps) or fps <= 0:
            return 0, 0
        low = int(round(n * self.low_bpm / SEC_PER_MIN / fps))
        high = int(round(n * self.high_bpm / SEC_PER_MIN / fps))
        # below ~2 * high_bpm / 60 fps the band runs past Nyquist into the
        # mirrored half of the spectrum; only the clamp to n is applied
        return min(max(low, 0), n), min(max(high, 0), n)

    def estimate(
        self, signal: np.ndarray, fps: float, spectrum: Optional[np.ndarray] = None
    ) -> Optional[float]:
        """
        Estimate BPM for one cycle and add it to the pending list.

        Returns ``None`` (and records nothing) when the spectrum or the band
        is empty.
        """
        if spectrum is None:
            spectrum = power_spectrum(signal)
        n = spectrum.shape[0]
        if n == 0:
            return None

        low, high = self.band_bins(n, fps)
        if high <= low:
            logger.debug("Empty search band (n=%d fps=%.3f)", n, fps)
            return None

        if self.refinement == "centroid":
            index = weighted_index(spectrum, low, high)
            if index is None:
                return None
        else:
            mask = np.zeros(n, dtype=bool)
            mask[low:high] = True
            loc = min_max_loc(spectrum, mask)
            if loc is None:
                return None
            index = loc[3]

        bpm = index * fps / n * SEC_PER_MIN
        self._bpms.append(bpm)
        logger.debug("FPS=%.2f Vals=%d Peak=%.2f BPM=%.1f", fps, n, index, bpm)
        return bpm

    def maybe_aggregate(self, timestamp: int) -> Optional[BpmResult]:
        """
        Reduce the pending estimates once ``sampling_interval`` has elapsed.

        Before the first report the interval counts as elapsed, so the first
        cycle that has estimates reports at once.
        """
        last = self._last_sampling_time
        if last is not None and (timestamp - last) * self.time_base < self.sampling_interval:
            return None

        self._last_sampling_time = timestamp
        if not self._bpms:
            return None

        bpms = sorted(self._bpms)
        self._bpms.clear()
        result = BpmResult(
            timestamp=timestamp,
            mean=float(np.mean(bpms)),
            min=bpms[0],
            max=bpms[-1],
        )
        logger.info("meanBPM=%.1f min=%.1f max=%.1f", result.mean, result.min, result.max)
        return result

    def reset(self) -> None:
        self._bpms.clear()
        self._last_sampling_time = None
