"""
Face validity / rescan state machine.

While invalid, detection runs on every frame.  Once valid, the region is
re-detected every ``rescan_interval`` seconds; a successful rescan replaces
the region and flags the next sample so the level shift can be removed by
the denoise filter.  Reacquiring a face after a track loss flags the
next sample the same way.  A failed rescan keeps the previous region.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from rppg_heartbeat.detectors import RegionStrategy
from rppg_heartbeat.region import Region

logger = logging.getLogger(__name__)


class TrackingStatus(Enum):
    INVALID = "invalid"
    VALID = "valid"


@dataclass
class TrackingState:
    valid: bool = False
    last_scan_time: Optional[int] = None
    rescan_pending: bool = False
    region: Optional[Region] = None

    @property
    def status(self) -> TrackingStatus:
        return TrackingStatus.VALID if self.valid else TrackingStatus.INVALID


class FaceTracker:
    """
    Drives a :class:`~rppg_heartbeat.detectors.RegionStrategy`.

    Parameters
    ----------
    strategy:
        Detection / tracking implementation.
    time_base:
        Seconds per timestamp unit.
    rescan_interval:
        Seconds between forced re-detections while valid.
    """

    def __init__(self, strategy: RegionStrategy, time_base: float, rescan_interval: float) -> None:
        self.strategy = strategy
        self.time_base = time_base
        self.rescan_interval = rescan_interval
        self.state = TrackingState()

    @property
    def valid(self) -> bool:
        return self.state.valid

    @property
    def region(self) -> Optional[Region]:
        return self.state.region

    def update(self, frame: np.ndarray, gray: np.ndarray, timestamp: int) -> bool:
        """Advance the state machine by one frame.  Returns validity."""
        state = self.state
        if not state.valid:
            state.last_scan_time = timestamp
            region = self.strategy.detect(frame, gray, state.region)
            if region is not None:
                logger.info("Face found at %s", tuple(region.box))
                # samples before the loss sit next to this one in the buffer
                state.rescan_pending = state.region is not None
                state.region = region
                state.valid = True
        elif (timestamp - state.last_scan_time) * self.time_base >= self.rescan_interval:
            state.last_scan_time = timestamp
            region = self.strategy.detect(frame, gray, state.region)
            if region is not None:
                logger.debug("Rescan moved region to %s", tuple(region.box))
                state.region = region
                state.rescan_pending = True
            else:
                logger.debug("Rescan found no face; keeping previous region")
        else:
            region = self.strategy.track(frame, gray, state.region)
            if region is None:
                self.invalidate()
            else:
                state.region = region
        return state.valid

    def consume_rescan(self) -> bool:
        """Return and clear the pending rescan flag."""
        pending = self.state.rescan_pending
        self.state.rescan_pending = False
        return pending

    def invalidate(self) -> None:
        logger.info("Face lost")
        self.state.valid = False
        self.state.rescan_pending = False
