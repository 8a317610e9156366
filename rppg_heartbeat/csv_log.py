"""
CSV logs of a measurement session.

Files (``;``-separated, one header row each):

* ``<prefix>_bpm.csv``              – ``time;mean;min;max`` per sampling interval
* ``<prefix>_bpmDetailed.csv``      – ``time;bpm`` per estimation cycle
* ``<prefix>_signal_<time>.csv``    – ``g;g_den;g_detr;g_avg`` per buffered sample
* ``<prefix>_estimation_<time>.csv`` – ``i;powerSpectrum`` for bins ``low <= i <= high`` (the estimator band plus its upper edge)
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Optional, TextIO

import numpy as np

from rppg_heartbeat.estimator import BpmResult
from rppg_heartbeat.pipeline import SignalTrace

logger = logging.getLogger(__name__)

DELIMITER = ";"


class CsvSessionLog:
    """
    Writes the summary, detail and per-cycle CSV files for one session.

    Parameters
    ----------
    prefix:
        Path prefix shared by all files (directories must exist).
    """

    def __init__(self, prefix: str) -> None:
        self.prefix = prefix
        self._summary_file: Optional[TextIO] = None
        self._detail_file: Optional[TextIO] = None
        self._summary = None
        self._detail = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        self._summary_file = open(f"{self.prefix}_bpm.csv", "w", newline="")
        self._summary = csv.writer(self._summary_file, delimiter=DELIMITER)
        self._summary.writerow(["time", "mean", "min", "max"])

        self._detail_file = open(f"{self.prefix}_bpmDetailed.csv", "w", newline="")
        self._detail = csv.writer(self._detail_file, delimiter=DELIMITER)
        self._detail.writerow(["time", "bpm"])
        logger.info("Logging session to %s_*.csv", self.prefix)

    def close(self) -> None:
        for handle in (self._summary_file, self._detail_file):
            if handle is not None:
                handle.close()
        self._summary_file = self._detail_file = None
        self._summary = self._detail = None

    def __enter__(self) -> "CsvSessionLog":
        self.open()
        return self

    def __exit__(self, *_) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def write_result(self, result: BpmResult) -> None:
        self._require_open()
        self._summary.writerow([result.timestamp, result.mean, result.min, result.max])
        self._summary_file.flush()

    def write_estimate(self, timestamp: int, bpm: float) -> None:
        self._require_open()
        self._detail.writerow([timestamp, bpm])

    def write_signal(self, timestamp: int, trace: SignalTrace) -> Path:
        path = Path(f"{self.prefix}_signal_{timestamp}.csv")
        with open(path, "w", newline="") as fh:
            writer = csv.writer(fh, delimiter=DELIMITER)
            writer.writerow(["g", "g_den", "g_detr", "g_avg"])
            for row in zip(
                _first_channel(trace.raw),
                _first_channel(trace.denoised),
                _first_channel(trace.detrended),
                _first_channel(trace.averaged),
            ):
                writer.writerow(row)
        return path

    def write_spectrum(
        self, timestamp: int, spectrum: np.ndarray, low: int, high: int
    ) -> Path:
        path = Path(f"{self.prefix}_estimation_{timestamp}.csv")
        with open(path, "w", newline="") as fh:
            writer = csv.writer(fh, delimiter=DELIMITER)
            writer.writerow(["i", "powerSpectrum"])
            for i, value in enumerate(spectrum):
                if low <= i <= high:
                    writer.writerow([i, float(value)])
        return path

    def _require_open(self) -> None:
        if self._summary is None:
            raise RuntimeError("Session log is not open.  Call open() first.")


def _first_channel(values: np.ndarray) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float64)
    return arr[:, 0] if arr.ndim == 2 else arr
