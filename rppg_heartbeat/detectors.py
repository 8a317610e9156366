"""
Region detection strategies.

A strategy turns a frame into a :class:`~rppg_heartbeat.region.Region`.  Two
interchangeable implementations are provided:

* :class:`CascadeStrategy` – face boxes from a detector, eyes cut out of the
  sampled ellipse.  The region only changes on (re)detection.
* :class:`OpticalFlowStrategy` – face box from a detector, then Shi–Tomasi
  corners inside it followed frame-to-frame with Lucas–Kanade optical flow.

Box detectors are plain callables ``detector(gray_image) -> list[Box]``;
:class:`HaarCascadeDetector` adapts an OpenCV cascade file to that shape.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from rppg_heartbeat.region import (
    Box,
    Region,
    build_face_mask,
    eye_search_areas,
    select_nearest_box,
)

logger = logging.getLogger(__name__)

BoxDetector = Callable[[np.ndarray], Sequence[Box]]

MIN_CORNERS = 5
MAX_CORNERS = 10
QUALITY_LEVEL = 0.01
MIN_DISTANCE = 25


class HaarCascadeDetector:
    """
    Callable wrapper around ``cv2.CascadeClassifier``.

    Parameters
    ----------
    path:
        Cascade XML file.
    scale_factor, min_neighbors:
        Passed to ``detectMultiScale``.
    min_size:
        Smallest accepted box ``(w, h)``.
    """

    def __init__(
        self,
        path: Union[str, Path],
        scale_factor: float = 1.1,
        min_neighbors: int = 2,
        min_size: Tuple[int, int] = (0, 0),
    ) -> None:
        self.path = str(path)
        self.scale_factor = scale_factor
        self.min_neighbors = min_neighbors
        self.min_size = min_size
        self._classifier = cv2.CascadeClassifier()
        if not self._classifier.load(self.path):
            raise RuntimeError(f"Cannot load cascade classifier from {self.path}")

    def __call__(self, image: np.ndarray) -> List[Box]:
        boxes = self._classifier.detectMultiScale(
            image,
            scaleFactor=self.scale_factor,
            minNeighbors=self.min_neighbors,
            flags=cv2.CASCADE_SCALE_IMAGE,
            minSize=self.min_size,
        )
        return [Box(int(x), int(y), int(w), int(h)) for (x, y, w, h) in boxes]


class RegionStrategy(ABC):
    """
    Detect / track capability used by the tracking state machine.

    Parameters
    ----------
    face_detector:
        Callable returning face boxes for a grayscale frame.
    width, height:
        Frame size; masks are built at this size.
    """

    def __init__(self, face_detector: BoxDetector, width: int, height: int) -> None:
        self.face_detector = face_detector
        self.width = width
        self.height = height

    def _detect_face(self, gray: np.ndarray, previous: Optional[Region]) -> Optional[Box]:
        boxes = [b.clip(self.width, self.height) for b in self.face_detector(gray)]
        boxes = [b for b in boxes if not b.empty]
        if not boxes:
            logger.debug("Found no face")
            return None
        return select_nearest_box(boxes, previous.box if previous is not None else None)

    @abstractmethod
    def detect(
        self, frame: np.ndarray, gray: np.ndarray, previous: Optional[Region]
    ) -> Optional[Region]:
        """Full detection.  Returns ``None`` when nothing usable is found."""

    def track(self, frame: np.ndarray, gray: np.ndarray, region: Region) -> Optional[Region]:
        """Follow *region* into the current frame.  ``None`` means lost."""
        return region


class CascadeStrategy(RegionStrategy):
    """
    Face box plus optional eye exclusion.

    Parameters
    ----------
    left_eye_detector, right_eye_detector:
        Optional callables searched inside the upper face half.  The first
        box each returns is cut out of the mask.
    """

    def __init__(
        self,
        face_detector: BoxDetector,
        width: int,
        height: int,
        left_eye_detector: Optional[BoxDetector] = None,
        right_eye_detector: Optional[BoxDetector] = None,
    ) -> None:
        super().__init__(face_detector, width, height)
        self.left_eye_detector = left_eye_detector
        self.right_eye_detector = right_eye_detector

    def detect(
        self, frame: np.ndarray, gray: np.ndarray, previous: Optional[Region]
    ) -> Optional[Region]:
        face = self._detect_face(gray, previous)
        if face is None:
            return None
        eyes = self._detect_eyes(gray, face)
        mask = build_face_mask(self.width, self.height, face, eyes)
        logger.debug("Face at %s with %d eye(s) excluded", tuple(face), len(eyes))
        return Region(box=face, mask=mask, eyes=eyes)

    def _detect_eyes(self, gray: np.ndarray, face: Box) -> Tuple[Box, ...]:
        eyes = []
        areas = eye_search_areas(face)
        for detector, area in zip((self.left_eye_detector, self.right_eye_detector), areas):
            if detector is None:
                continue
            area = area.clip(self.width, self.height)
            if area.empty:
                continue
            sub = gray[area.y:area.y + area.h, area.x:area.x + area.w]
            found = detector(sub)
            if found:
                eyes.append(Box(*found[0]).offset(area.x, area.y))
        return tuple(eyes)


class OpticalFlowStrategy(RegionStrategy):
    """
    Feature-point tracking between detections.

    Parameters
    ----------
    min_corners:
        Tracking is declared lost when fewer points survive a flow step.
    max_corners, quality_level, min_distance:
        Passed to ``cv2.goodFeaturesToTrack``.
    """

    def __init__(
        self,
        face_detector: BoxDetector,
        width: int,
        height: int,
        min_corners: int = MIN_CORNERS,
        max_corners: int = MAX_CORNERS,
        quality_level: float = QUALITY_LEVEL,
        min_distance: float = MIN_DISTANCE,
    ) -> None:
        super().__init__(face_detector, width, height)
        self.min_corners = min_corners
        self.max_corners = max_corners
        self.quality_level = quality_level
        self.min_distance = min_distance
        self._last_gray: Optional[np.ndarray] = None

    def detect(
        self, frame: np.ndarray, gray: np.ndarray, previous: Optional[Region]
    ) -> Optional[Region]:
        face = self._detect_face(gray, previous)
        if face is None:
            return None
        mask = build_face_mask(self.width, self.height, face)
        corners = cv2.goodFeaturesToTrack(
            gray,
            maxCorners=self.max_corners,
            qualityLevel=self.quality_level,
            minDistance=self.min_distance,
            mask=mask,
        )
        if corners is None or len(corners) < self.min_corners:
            logger.debug("Too few corners inside face (%d)", 0 if corners is None else len(corners))
            return None
        self._last_gray = gray.copy()
        return Region(box=face, mask=mask, corners=corners.astype(np.float32))

    def track(self, frame: np.ndarray, gray: np.ndarray, region: Region) -> Optional[Region]:
        if self._last_gray is None or region.corners is None:
            self._last_gray = gray.copy()
            return region

        new_points, status, _ = cv2.calcOpticalFlowPyrLK(
            self._last_gray, gray, region.corners, None
        )
        self._last_gray = gray.copy()
        if new_points is None:
            return None

        ok = status.ravel() == 1
        old_pts = region.corners[ok]
        new_pts = new_points[ok]
        if len(new_pts) < self.min_corners:
            logger.debug("Lost track: %d point(s) left", len(new_pts))
            return None

        transform, _ = cv2.estimateAffinePartial2D(old_pts, new_pts)
        if transform is None:
            return None

        b = region.box
        outline = np.array(
            [[[b.x, b.y]], [[b.x + b.w, b.y]], [[b.x, b.y + b.h]], [[b.x + b.w, b.y + b.h]]],
            dtype=np.float32,
        )
        moved = cv2.transform(outline, transform)
        box = Box(*cv2.boundingRect(moved)).clip(self.width, self.height)
        if box.empty:
            return None
        mask = build_face_mask(self.width, self.height, box)
        return Region(box=box, mask=mask, corners=new_pts.reshape(-1, 1, 2))


def build_strategy(config) -> RegionStrategy:
    """Create the strategy named by ``config.tracking`` from cascade files."""
    side = int(min(config.width, config.height) * config.rel_min_face_size)
    if config.face_classifier is None:
        raise ValueError("face_classifier is required to build a detection strategy")
    face = HaarCascadeDetector(config.face_classifier, min_size=(side, side))

    if config.tracking == "flow":
        return OpticalFlowStrategy(face, config.width, config.height)

    left = right = None
    if config.left_eye_classifier is not None:
        left = HaarCascadeDetector(config.left_eye_classifier)
    if config.right_eye_classifier is not None:
        right = HaarCascadeDetector(config.right_eye_classifier)
    return CascadeStrategy(face, config.width, config.height, left, right)
