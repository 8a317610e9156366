"""
Region-of-interest geometry: boxes, face masks and nearest-box selection.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple, Optional, Sequence, Tuple

import cv2
import numpy as np

_WHITE = 255
_BLACK = 0


class Box(NamedTuple):
    """Axis-aligned rectangle in pixel coordinates."""

    x: int
    y: int
    w: int
    h: int

    @property
    def center(self) -> Tuple[float, float]:
        return self.x + self.w / 2.0, self.y + self.h / 2.0

    @property
    def empty(self) -> bool:
        return self.w <= 0 or self.h <= 0

    def clip(self, width: int, height: int) -> "Box":
        """Intersect with the ``width`` x ``height`` frame."""
        x0 = min(max(self.x, 0), width)
        y0 = min(max(self.y, 0), height)
        x1 = min(max(self.x + self.w, 0), width)
        y1 = min(max(self.y + self.h, 0), height)
        return Box(x0, y0, x1 - x0, y1 - y0)

    def offset(self, dx: int, dy: int) -> "Box":
        return Box(self.x + dx, self.y + dy, self.w, self.h)


@dataclass
class Region:
    """
    The pixels that contribute to a colour sample.

    ``mask`` is a uint8 image of the full frame size (non-zero = sampled).
    ``corners`` holds tracked feature points for optical-flow tracking.
    """

    box: Box
    mask: Optional[np.ndarray] = None
    eyes: Tuple[Box, ...] = ()
    corners: Optional[np.ndarray] = None


def select_nearest_box(candidates: Sequence[Box], previous: Optional[Box]) -> Box:
    """
    Pick the candidate whose centre is closest (squared distance) to
    *previous*.  Without a previous box the first candidate wins.
    """
    if not candidates:
        raise ValueError("select_nearest_box needs at least one candidate")
    if previous is None:
        return candidates[0]

    px, py = previous.center

    def _dist(box: Box) -> float:
        cx, cy = box.center
        return (cx - px) ** 2 + (cy - py) ** 2

    return min(candidates, key=_dist)


def eye_search_areas(face: Box) -> Tuple[Box, Box]:
    """Left and right sub-rectangles of *face* in which eyes are expected."""
    margin = face.w // 16
    half = (face.w - 2 * margin) // 2
    top = face.y + int(face.h / 4.5)
    height = int(face.h / 3.0)
    left = Box(face.x + margin, top, half, height)
    right = Box(face.x + margin + half, top, half, height)
    return left, right


def build_face_mask(
    width: int, height: int, face: Box, eyes: Sequence[Box] = ()
) -> np.ndarray:
    """
    Filled ellipse over *face* with a disc cut out around each eye.

    The ellipse is narrower than the box (semi-axes ``w/2.5`` and ``h/2``) to
    keep hair and background out of the sample.
    """
    mask = np.zeros((height, width), dtype=np.uint8)
    cx, cy = face.center
    cv2.ellipse(
        mask,
        (int(round(cx)), int(round(cy))),
        (int(round(face.w / 2.5)), int(round(face.h / 2.0))),
        0, 0, 360, _WHITE, cv2.FILLED,
    )
    for eye in eyes:
        ex, ey = eye.center
        radius = int(round((eye.w + eye.h) / 4.0))
        cv2.circle(mask, (int(round(ex)), int(round(ey))), radius, _BLACK, cv2.FILLED)
    return mask
