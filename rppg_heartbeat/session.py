"""
Measurement session: owns the buffers and state for one video stream.

Per frame
---------
1. Update face tracking; nothing else happens while no face is tracked.
2. Trim the buffer to the analysis window and append the masked colour mean.
3. Once the buffer spans the full window, regenerate the filtered signal and
   estimate the heart rate.
4. After an estimate, hand the aggregated result to the sink when
   ``sampling_interval`` has passed since the last report (the first
   estimate reports at once).

Lifecycle: ``open() -> process_frame()* -> close()`` (or use it as a context
manager).  A session is not thread-safe; hosts that deliver frames from
several threads must serialise ``process_frame`` calls.
"""

from __future__ import annotations

import logging
from typing import Optional

import cv2
import numpy as np

from rppg_heartbeat.config import SessionConfig
from rppg_heartbeat.csv_log import CsvSessionLog
from rppg_heartbeat.detectors import RegionStrategy, build_strategy
from rppg_heartbeat.estimator import BpmResult, HeartRateEstimator, power_spectrum
from rppg_heartbeat.noise import NoiseValidator
from rppg_heartbeat.pipeline import SignalTrace, extract_green, extract_xminay
from rppg_heartbeat.signal_buffer import SignalBuffer
from rppg_heartbeat.tracking import FaceTracker

logger = logging.getLogger(__name__)


class RPPGSession:
    """
    Parameters
    ----------
    config:
        Session settings.
    sink:
        Receives ``emit(timestamp, mean, min, max)`` once per sampling
        interval.  Optional.
    strategy:
        Region detection strategy.  Built from the cascade files named in
        *config* when omitted.
    """

    def __init__(
        self,
        config: SessionConfig,
        sink=None,
        strategy: Optional[RegionStrategy] = None,
    ) -> None:
        self.config = config
        self.sink = sink
        self._strategy = strategy

        self._tracker: Optional[FaceTracker] = None
        self._buffer: Optional[SignalBuffer] = None
        self._estimator: Optional[HeartRateEstimator] = None
        self._noise: Optional[NoiseValidator] = None
        self._log: Optional[CsvSessionLog] = None

        self._fps: float = 1.0
        self._last_bpm: Optional[float] = None
        self._last_result: Optional[BpmResult] = None
        self._last_trace: Optional[SignalTrace] = None
        self._is_open = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        if self._is_open:
            return
        cfg = self.config
        if self._strategy is None:
            self._strategy = build_strategy(cfg)

        self._tracker = FaceTracker(self._strategy, cfg.time_base, cfg.rescan_interval)
        self._buffer = SignalBuffer(cfg.time_base, cfg.channels)
        self._estimator = HeartRateEstimator(
            cfg.time_base,
            cfg.sampling_interval,
            cfg.low_bpm,
            cfg.high_bpm,
            cfg.refinement,
        )
        if cfg.noise_validation:
            self._noise = NoiseValidator(cfg.channels)
        if cfg.log:
            self._log = CsvSessionLog(cfg.log_prefix)
            self._log.open()

        self._is_open = True
        logger.info(
            "Session opened – %dx%d method=%s tracking=%s",
            cfg.width, cfg.height, cfg.method, cfg.tracking,
        )

    def close(self) -> None:
        if not self._is_open:
            return
        if self._log is not None:
            self._log.close()
            self._log = None
        self._is_open = False
        logger.info("Session closed.")

    def __enter__(self) -> "RPPGSession":
        self.open()
        return self

    def __exit__(self, *_) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Frame processing
    # ------------------------------------------------------------------

    def process_frame(
        self, frame: np.ndarray, gray: np.ndarray, timestamp: int
    ) -> Optional[BpmResult]:
        """
        Process one video frame.

        Parameters
        ----------
        frame:
            Colour image (H × W × 3), in ``config.channel_order``.
        gray:
            Grayscale version of *frame*, used for detection and tracking.
        timestamp:
            Monotonic frame time in ``config.time_base`` units.

        Returns
        -------
        BpmResult or None
            The aggregated result emitted on this frame, if any.
        """
        if not self._is_open:
            raise RuntimeError("Session is not open.  Call open() first.")
        self._check_frame(frame)

        if not self._tracker.update(frame, gray, timestamp):
            return None

        cfg = self.config
        buffer = self._buffer
        buffer.trim_to_window(cfg.window_seconds, buffer.estimate_fps())
        buffer.append(timestamp, self._sample(frame), rescan=self._tracker.consume_rescan())
        self._fps = buffer.estimate_fps()

        clean = True
        if self._noise is not None:
            clean = self._noise.update(buffer.values())
            if not clean:
                logger.debug("Signal noisy at t=%d; skipping estimate", timestamp)

        result = None
        if clean and len(buffer) / self._fps >= cfg.window_seconds:
            self._estimate(timestamp)
            result = self._estimator.maybe_aggregate(timestamp)

        if result is not None:
            self._last_result = result
            if self.sink is not None:
                self.sink.emit(result.timestamp, result.mean, result.min, result.max)
            if self._log is not None:
                self._log.write_result(result)

        if cfg.draw:
            self.draw(frame)
        return result

    def draw(self, frame: np.ndarray) -> None:
        """Overlay hook called on valid frames when ``config.draw`` is set."""

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def valid(self) -> bool:
        return self._tracker is not None and self._tracker.valid

    @property
    def tracker(self) -> Optional[FaceTracker]:
        return self._tracker

    @property
    def buffer(self) -> Optional[SignalBuffer]:
        return self._buffer

    @property
    def fps(self) -> float:
        return self._fps

    @property
    def last_bpm(self) -> Optional[float]:
        return self._last_bpm

    @property
    def last_result(self) -> Optional[BpmResult]:
        return self._last_result

    @property
    def last_trace(self) -> Optional[SignalTrace]:
        return self._last_trace

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _check_frame(self, frame: np.ndarray) -> None:
        cfg = self.config
        if frame.ndim != 3 or frame.shape[2] < 3:
            raise ValueError(f"expected a colour frame (H × W × 3), got shape {frame.shape}")
        if frame.shape[:2] != (cfg.height, cfg.width):
            raise ValueError(
                f"frame size {frame.shape[1]}x{frame.shape[0]} does not match "
                f"configured {cfg.width}x{cfg.height}"
            )

    def _sample(self, frame: np.ndarray) -> np.ndarray:
        region = self._tracker.region
        mask = region.mask if region is not None else None
        means = cv2.mean(frame, mask=mask)
        if self.config.channels == 1:
            return np.array([means[1]])
        return np.array(means[:3])

    def _estimate(self, timestamp: int) -> None:
        cfg = self.config
        values = self._buffer.values()
        markers = self._buffer.markers()
        if cfg.method == "xminay":
            trace = extract_xminay(
                values, markers, self._fps, cfg.low_bpm, cfg.high_bpm,
                cfg.normalization, cfg.channel_order,
            )
        else:
            trace = extract_green(values, markers, self._fps, cfg.low_bpm, cfg.high_bpm)
        self._last_trace = trace

        spectrum = power_spectrum(trace.filtered)
        bpm = self._estimator.estimate(trace.filtered, self._fps, spectrum)
        if bpm is not None:
            self._last_bpm = bpm

        if self._log is not None:
            self._log.write_signal(timestamp, trace)
            if bpm is not None:
                low, high = self._estimator.band_bins(spectrum.shape[0], self._fps)
                self._log.write_spectrum(timestamp, spectrum, low, high)
                self._log.write_estimate(timestamp, bpm)
