"""
Result sinks: where aggregated heart-rate results are delivered.

A sink is any object with ``emit(timestamp, mean, min, max)``.  It is
called synchronously from the frame loop and must return quickly.
"""

from __future__ import annotations

import logging
from typing import Callable


class CallbackSink:
    """Adapts a plain function ``fn(timestamp, mean, min, max)``."""

    def __init__(self, fn: Callable[[int, float, float, float], None]) -> None:
        self._fn = fn

    def emit(self, timestamp: int, mean_bpm: float, min_bpm: float, max_bpm: float) -> None:
        self._fn(timestamp, mean_bpm, min_bpm, max_bpm)


class LoggingSink:
    """Reports each result through the logging module."""

    def __init__(self, name: str = "rppg_heartbeat.result") -> None:
        self._logger = logging.getLogger(name)

    def emit(self, timestamp: int, mean_bpm: float, min_bpm: float, max_bpm: float) -> None:
        self._logger.info(
            "t=%d BPM=%.1f (min %.1f, max %.1f)", timestamp, mean_bpm, min_bpm, max_bpm
        )
