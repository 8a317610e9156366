"""
Session configuration.

All settings are fixed when a session is opened.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

METHODS = ("green", "xminay")
NORMALIZATIONS = ("global", "per_segment")
REFINEMENTS = ("peak", "centroid")
TRACKINGS = ("cascade", "flow")
CHANNEL_ORDERS = ("bgr", "rgb")


@dataclass
class SessionConfig:
    """
    Parameters
    ----------
    width, height:
        Frame size in pixels.
    time_base:
        Seconds per timestamp unit (0.001 for millisecond timestamps).
    sampling_interval:
        Seconds between aggregated BPM results.
    rescan_interval:
        Seconds between forced face re-detections.
    window_seconds:
        Length of the signal history used for each estimate.
    low_bpm, high_bpm:
        Physiological search band.
    rel_min_face_size:
        Smallest face, as a fraction of the shorter frame side.
    face_classifier, left_eye_classifier, right_eye_classifier:
        Cascade files for the built-in detection strategies.
    method:
        ``"green"`` (green channel, denoise/detrend/average/bandpass) or
        ``"xminay"`` (chrominance combination of all three channels).
    normalization:
        Channel normalisation policy for ``"xminay"``.
    refinement:
        ``"peak"`` or ``"centroid"`` BPM read-out.
    tracking:
        ``"cascade"`` (re-detect only) or ``"flow"`` (optical-flow tracking).
    noise_validation:
        Skip estimation while the motion-noise classifier reports noise.
    log, log_prefix:
        Write CSV logs to files named ``<log_prefix>_*.csv``.
    draw:
        Call :meth:`RPPGSession.draw` on every valid frame.
    channel_order:
        Channel layout of incoming colour frames.
    """

    width: int
    height: int
    time_base: float = 0.001
    sampling_interval: float = 1.0
    rescan_interval: float = 1.0
    window_seconds: float = 10.0
    low_bpm: float = 42.0
    high_bpm: float = 240.0
    rel_min_face_size: float = 0.2
    face_classifier: Optional[str] = None
    left_eye_classifier: Optional[str] = None
    right_eye_classifier: Optional[str] = None
    method: str = "green"
    normalization: str = "global"
    refinement: str = "peak"
    tracking: str = "cascade"
    noise_validation: bool = False
    log: bool = False
    log_prefix: str = "rppg"
    draw: bool = False
    channel_order: str = "bgr"

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"frame size must be positive, got {self.width}x{self.height}")
        for name in ("time_base", "sampling_interval", "rescan_interval", "window_seconds"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if not 0 < self.low_bpm < self.high_bpm:
            raise ValueError(
                f"invalid BPM band: low={self.low_bpm} high={self.high_bpm}"
            )
        for name, allowed in (
            ("method", METHODS),
            ("normalization", NORMALIZATIONS),
            ("refinement", REFINEMENTS),
            ("tracking", TRACKINGS),
            ("channel_order", CHANNEL_ORDERS),
        ):
            value = getattr(self, name)
            if value not in allowed:
                raise ValueError(f"{name} must be one of {allowed}, got {value!r}")

    @property
    def channels(self) -> int:
        return 3 if self.method == "xminay" else 1
