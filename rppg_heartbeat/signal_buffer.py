"""
Rolling sample buffer.

Timestamps, sample values and rescan markers are kept in three lockstep
deques.  Old samples are evicted from the head once the buffer covers more
than the configured time window.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Sequence, Union

import numpy as np

from rppg_heartbeat.numeric import get_fps

logger = logging.getLogger(__name__)

SampleValue = Union[float, Sequence[float], np.ndarray]


class SignalBuffer:
    """
    Lockstep buffer of ``(timestamp, value, rescan)`` samples.

    Parameters
    ----------
    time_base:
        Seconds per timestamp unit (e.g. 0.001 for millisecond clocks).
    channels:
        Number of values per sample.  1 stores scalars, 3 stores colour
        triples.
    """

    def __init__(self, time_base: float, channels: int = 1) -> None:
        if time_base <= 0:
            raise ValueError(f"time_base must be positive, got {time_base}")
        if channels < 1:
            raise ValueError(f"channels must be >= 1, got {channels}")
        self.time_base = time_base
        self.channels = channels

        self._times: Deque[int] = deque()
        self._values: Deque[np.ndarray] = deque()
        self._markers: Deque[bool] = deque()

    def __len__(self) -> int:
        return len(self._times)

    def append(self, timestamp: int, value: SampleValue, rescan: bool = False) -> None:
        """Append one sample.  Timestamps must not go backwards."""
        vec = np.atleast_1d(np.asarray(value, dtype=np.float64))
        if vec.shape != (self.channels,):
            raise ValueError(
                f"expected {self.channels} value(s) per sample, got shape {vec.shape}"
            )
        if self._times and timestamp < self._times[-1]:
            raise ValueError(
                f"timestamp {timestamp} is older than last sample {self._times[-1]}"
            )
        self._times.append(int(timestamp))
        self._values.append(vec)
        self._markers.append(bool(rescan))

    def trim_to_window(self, window_seconds: float, fps: float) -> int:
        """
        Evict head samples while the buffer spans more than *window_seconds*
        at *fps*.  Returns the number of evicted samples.
        """
        removed = 0
        while self._times and len(self._times) / fps > window_seconds:
            self._times.popleft()
            self._values.popleft()
            self._markers.popleft()
            removed += 1
        if removed:
            logger.debug("Evicted %d sample(s); %d remain", removed, len(self))
        return removed

    def estimate_fps(self) -> float:
        return get_fps(self.timestamps(), self.time_base)

    def timestamps(self) -> np.ndarray:
        return np.fromiter(self._times, dtype=np.int64, count=len(self._times))

    def values(self) -> np.ndarray:
        """
        Buffered values as an array of shape ``(n,)`` for single-channel
        buffers or ``(n, channels)`` otherwise.
        """
        if not self._values:
            shape = (0,) if self.channels == 1 else (0, self.channels)
            return np.empty(shape, dtype=np.float64)
        arr = np.vstack(self._values)
        return arr[:, 0] if self.channels == 1 else arr

    def markers(self) -> np.ndarray:
        return np.fromiter(self._markers, dtype=bool, count=len(self._markers))

    def clear(self) -> None:
        self._times.clear()
        self._values.clear()
        self._markers.clear()
