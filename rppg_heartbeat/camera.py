"""
Frame source for the command-line runner.

Wraps ``cv2.VideoCapture`` (webcam index or video file) and yields
``(bgr, gray, timestamp_ms)`` triples ready for
:meth:`RPPGSession.process_frame`.
"""

from __future__ import annotations

import logging
from typing import Generator, Tuple, Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)

Frame = Tuple[np.ndarray, np.ndarray, int]


class VideoSource:
    """
    Parameters
    ----------
    source:
        Camera index (int or digit string) or path to a video file.
    resolution:
        Requested (width, height) for cameras; frames are resized to it.
    flip_horizontal:
        Mirror the image left-to-right (useful for selfie-style use).
    """

    def __init__(
        self,
        source: Union[int, str] = 0,
        resolution: Tuple[int, int] = (640, 480),
        flip_horizontal: bool = False,
    ) -> None:
        if isinstance(source, str) and source.isdigit():
            source = int(source)
        self.source = source
        self.resolution = resolution
        self.flip_horizontal = flip_horizontal

        self._cap: "cv2.VideoCapture | None" = None
        self._start_tick = 0

    @property
    def is_file(self) -> bool:
        return not isinstance(self.source, int)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        cap = cv2.VideoCapture(self.source)
        if not cap.isOpened():
            raise RuntimeError(f"Cannot open video source {self.source!r}")
        if not self.is_file:
            w, h = self.resolution
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
        self._cap = cap
        self._start_tick = cv2.getTickCount()
        logger.info("Video source opened – %r resolution=%s", self.source, self.resolution)

    def close(self) -> None:
        if self._cap is None:
            return
        self._cap.release()
        self._cap = None
        logger.info("Video source closed.")

    def __enter__(self) -> "VideoSource":
        self.open()
        return self

    def __exit__(self, *_) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Frame acquisition
    # ------------------------------------------------------------------

    def read_frame(self) -> Frame | None:
        """Capture one frame, or *None* at end of stream / on failure."""
        if self._cap is None:
            raise RuntimeError("Video source is not open.  Call open() first.")

        ok, frame = self._cap.read()
        if not ok:
            return None
        if frame.shape[1] != self.resolution[0] or frame.shape[0] != self.resolution[1]:
            frame = cv2.resize(frame, self.resolution)
        if self.flip_horizontal:
            frame = cv2.flip(frame, 1)
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        return frame, gray, self._timestamp_ms()

    def frames(self) -> Generator[Frame, None, None]:
        """
        Yield frames until the stream ends or the source is closed.

        Usage::

            with VideoSource("clip.mp4") as src:
                for bgr, gray, t in src.frames():
                    session.process_frame(bgr, gray, t)
        """
        while self._cap is not None:
            item = self.read_frame()
            if item is None:
                logger.info("End of stream.")
                break
            yield item

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _timestamp_ms(self) -> int:
        if self.is_file:
            return int(round(self._cap.get(cv2.CAP_PROP_POS_MSEC)))
        ticks = cv2.getTickCount() - self._start_tick
        return int(round(ticks * 1000.0 / cv2.getTickFrequency()))
