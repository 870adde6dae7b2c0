"""Trajectory estimation: turning frames into candidate ball paths.

A ``TrajectoryEstimator`` observes one frame at a time and returns the point
sequences it currently believes are moving objects. Points are normalised to
the frame size, ``(x, y)`` in [0, 1] with ``y`` growing downward (screen-up is
smaller ``y``).

Two estimators are provided:
- ``MotionTrajectoryEstimator``: classical frame differencing with OpenCV.
- ``YoloBallTrajectoryEstimator`` (see ``ball_estimator``): a learned ball
  detector.
Both feed per-frame candidate points into a ``TrackAssembler``.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from ..config.settings import MotionEstimatorConfig
from ..core.frame import Frame

Point = Tuple[float, float]
Trajectory = List[Point]


class TrajectoryEstimator(ABC):
    """Capability: ``observe(frame) -> list of candidate point sequences``."""

    @abstractmethod
    def observe(self, frame: Frame) -> List[Trajectory]:
        """Consume a frame and return current candidate trajectories."""
        pass

    @abstractmethod
    def reset(self):
        """Forget all tracking state."""
        pass


@dataclass
class _Track:
    points: Deque[Point]
    missed: int = 0
    last: Optional[Point] = field(default=None)


class TrackAssembler:
    """Associate per-frame candidate points into tracks (nearest neighbour).

    Each frame, every live track claims the closest unclaimed candidate within
    ``max_jump``; unclaimed candidates start new tracks. A track that misses
    more than ``max_missed_frames`` consecutive frames is dropped.
    """

    def __init__(
        self,
        *,
        max_track_length: int = 10,
        max_jump: float = 0.15,
        max_missed_frames: int = 3,
        min_points: int = 5,
    ):
        self.max_track_length = int(max_track_length)
        self.max_jump = float(max_jump)
        self.max_missed_frames = int(max_missed_frames)
        self.min_points = int(min_points)
        self._tracks: List[_Track] = []

    def reset(self) -> None:
        self._tracks.clear()

    def update(self, candidates: Sequence[Point]) -> List[Trajectory]:
        unclaimed = list(candidates)

        # Longer tracks pick first so an established path is not stolen by a new one.
        for track in sorted(self._tracks, key=lambda t: len(t.points), reverse=True):
            best_idx = None
            best_dist = self.max_jump
            for i, (x, y) in enumerate(unclaimed):
                d = math.hypot(x - track.last[0], y - track.last[1])
                if d <= best_dist:
                    best_idx = i
                    best_dist = d
            if best_idx is None:
                track.missed += 1
                continue
            pt = unclaimed.pop(best_idx)
            track.points.append(pt)
            track.last = pt
            track.missed = 0

        self._tracks = [t for t in self._tracks if t.missed <= self.max_missed_frames]

        for pt in unclaimed:
            self._tracks.append(
                _Track(points=deque([pt], maxlen=self.max_track_length), last=pt)
            )

        return [list(t.points) for t in self._tracks if len(t.points) >= self.min_points]


class MotionTrajectoryEstimator(TrajectoryEstimator):
    """Track small compact moving blobs using frame differencing."""

    def __init__(self, config: Optional[MotionEstimatorConfig] = None, min_points: int = 5):
        self.config = config or MotionEstimatorConfig()
        self.assembler = TrackAssembler(
            max_track_length=self.config.max_track_length,
            max_jump=self.config.max_jump,
            max_missed_frames=self.config.max_missed_frames,
            min_points=min_points,
        )
        self._prev_gray: Optional[np.ndarray] = None

    def reset(self):
        self._prev_gray = None
        self.assembler.reset()

    def observe(self, frame: Frame) -> List[Trajectory]:
        gray = self._preprocess(frame.image)

        # First frame, or the stream changed resolution.
        if self._prev_gray is None or self._prev_gray.shape != gray.shape:
            self._prev_gray = gray
            self.assembler.reset()
            return []

        candidates = self._moving_blob_centres(self._prev_gray, gray)
        self._prev_gray = gray
        return self.assembler.update(candidates)

    def _preprocess(self, image: np.ndarray) -> np.ndarray:
        img = np.asarray(image)
        if img.ndim == 3:
            gray = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
        elif img.ndim == 2:
            gray = img
        else:
            raise ValueError(f"unsupported frame shape {img.shape}")
        k = self.config.blur_kernel
        if k > 1:
            k = k if k % 2 == 1 else k + 1
            gray = cv2.GaussianBlur(gray, (k, k), 0)
        return gray

    def _moving_blob_centres(self, prev: np.ndarray, curr: np.ndarray) -> List[Point]:
        cfg = self.config
        diff = cv2.absdiff(prev, curr)
        _, mask = cv2.threshold(diff, cfg.diff_threshold, 255, cv2.THRESH_BINARY)
        if cfg.dilate_iterations > 0:
            mask = cv2.dilate(mask, None, iterations=cfg.dilate_iterations)

        contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        h, w = curr.shape[:2]
        centres: List[Point] = []
        for contour in contours:
            area = cv2.contourArea(contour)
            if area < cfg.min_blob_area_px or area > cfg.max_blob_area_px:
                continue
            perimeter = cv2.arcLength(contour, True)
            if perimeter <= 0:
                continue
            # 1.0 for a perfect circle; rejects limbs and elongated motion streaks.
            circularity = 4.0 * math.pi * area / (perimeter * perimeter)
            if circularity < cfg.min_circularity:
                continue
            m = cv2.moments(contour)
            if m["m00"] == 0:
                continue
            cx = m["m10"] / m["m00"]
            cy = m["m01"] / m["m00"]
            centres.append((float(cx) / w, float(cy) / h))
        return centres
