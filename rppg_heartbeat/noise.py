"""
Motion-noise classifier.

Each channel is judged on the first difference of its raw series.  A
classification only flips after two consecutive observations agree, so a
single outlier never toggles the state.
"""

from __future__ import annotations

import logging
from typing import List

import numpy as np

logger = logging.getLogger(__name__)

NOISY_FACTOR = 2.0
RECOVERED_FACTOR = 1.0
MIN_DIFFERENCES = 2


class NoiseValidator:
    """
    Hysteresis classifier with one ``possibly_noisy`` flag per channel.

    Parameters
    ----------
    channels:
        Number of signal channels.
    """

    def __init__(self, channels: int = 1) -> None:
        self.channels = channels
        self.possibly_noisy: List[bool] = [False] * channels
        self.good: List[bool] = [True] * channels

    def classify(self, channel: int, deviation: float, std: float, was_good: bool) -> bool:
        """
        Return the new classification (``True`` = good) for *channel*.

        *deviation* is the newest first difference, *std* the standard
        deviation of the earlier ones.
        """
        deviation = abs(deviation)
        if was_good and deviation > NOISY_FACTOR * std:
            if self.possibly_noisy[channel]:
                self.possibly_noisy[channel] = False
                logger.debug("Channel %d confirmed noisy", channel)
                return False
            self.possibly_noisy[channel] = True
            return True
        if not was_good and deviation <= RECOVERED_FACTOR * std:
            if self.possibly_noisy[channel]:
                self.possibly_noisy[channel] = False
                logger.debug("Channel %d recovered", channel)
                return True
            self.possibly_noisy[channel] = True
            return False
        self.possibly_noisy[channel] = False
        return was_good

    def update(self, values: np.ndarray) -> bool:
        """
        Classify the newest sample of *values* (shape ``(n,)`` or
        ``(n, channels)``) and return whether every channel is good.
        """
        arr = np.asarray(values, dtype=np.float64)
        if arr.ndim == 1:
            arr = arr[:, np.newaxis]
        if arr.shape[1] != self.channels:
            raise ValueError(
                f"expected {self.channels} channel(s), got {arr.shape[1]}"
            )
        diffs = np.diff(arr, axis=0)
        if diffs.shape[0] <= MIN_DIFFERENCES:
            return all(self.good)

        history = diffs[:-1]
        for ch in range(self.channels):
            std = float(np.std(history[:, ch]))
            self.good[ch] = self.classify(ch, float(diffs[-1, ch]), std, self.good[ch])
        return all(self.good)

    def reset(self) -> None:
        self.possibly_noisy = [False] * self.channels
        self.good = [True] * self.channels
