"""Shot attempt detection from ball trajectories.

Design goals:
- Work in real-time (one call per captured frame)
- Be robust to noise by requiring a long, rising, arcing path
- Never fire twice for one physical shot (cooldown)
- Never let a bad frame stop the stream (errors mean "no detection")
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple

from ..config.settings import DetectorConfig
from ..core.frame import Frame
from ..core.frame_buffer import FrameBuffer
from .trajectory import Point, TrajectoryEstimator

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ShotEvent:
    """A detected shot attempt and the frames around it."""

    # Capture time of the frame that triggered detection.
    timestamp: float

    # Buffer window at detection time, oldest first.
    frames: Tuple[Frame, ...]

    # Estimated frame where the ball leaves the hand.
    release_frame_index: int

    # Estimated frame where the ball reaches the hoop area (the trigger frame).
    # May equal len(frames) for a one-frame window, in which case there is no
    # impact frame.
    impact_frame_index: int

    def __post_init__(self):
        if not (0 <= self.release_frame_index < self.impact_frame_index <= len(self.frames)):
            raise ValueError(
                f"invalid frame indices release={self.release_frame_index} "
                f"impact={self.impact_frame_index} for {len(self.frames)} frames"
            )

    @property
    def release_frame(self) -> Optional[Frame]:
        if self.release_frame_index < len(self.frames):
            return self.frames[self.release_frame_index]
        return None

    @property
    def impact_frame(self) -> Optional[Frame]:
        if self.impact_frame_index < len(self.frames):
            return self.frames[self.impact_frame_index]
        return None


class DetectorState(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    COOLDOWN = "cooldown"


def path_length(points: Sequence[Point]) -> float:
    """Sum of Euclidean distances between consecutive points."""
    total = 0.0
    for (x0, y0), (x1, y1) in zip(points, points[1:]):
        total += math.hypot(x1 - x0, y1 - y0)
    return total


def has_upward_motion(points: Sequence[Point]) -> bool:
    """Ball is higher (smaller y) a third of the way in than at the start."""
    if len(points) < 3:
        return False
    return points[len(points) // 3][1] < points[0][1]


def has_parabolic_arc(points: Sequence[Point]) -> bool:
    """Midpoint is above both ends: the ball rises then falls."""
    if len(points) < 5:
        return False
    start_y = points[0][1]
    mid_y = points[len(points) // 2][1]
    end_y = points[-1][1]
    return mid_y < start_y and mid_y < end_y


def shot_window_indices(n_frames: int, release_offset: int = 5) -> Tuple[int, int]:
    """(release, impact) indices for a window of ``n_frames``.

    impact is the last frame, release ``release_offset - 1`` frames earlier,
    both clamped so that 0 <= release < impact <= n_frames.
    """
    impact = max(n_frames - 1, 1)
    release = min(max(n_frames - release_offset, 0), impact - 1)
    return release, impact


class TrajectoryShotDetector:
    """Trigger a ``ShotEvent`` when a trajectory looks like a shot.

    State machine: IDLE -> PROCESSING (trajectories being evaluated) ->
    COOLDOWN (after a trigger) -> IDLE once ``cooldown_s`` of frame time has
    elapsed. Frames arriving in PROCESSING or COOLDOWN are still passed to the
    estimator (so its tracks stay coherent) but cannot trigger.
    """

    def __init__(
        self,
        estimator: TrajectoryEstimator,
        buffer: FrameBuffer,
        config: Optional[DetectorConfig] = None,
    ):
        self.estimator = estimator
        self.buffer = buffer
        self.config = config or DetectorConfig()

        self._state = DetectorState.IDLE
        self._triggered_at: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def state(self) -> DetectorState:
        return self._state

    def reset(self) -> None:
        with self._lock:
            self._state = DetectorState.IDLE
            self._triggered_at = None
        self.estimator.reset()

    def observe(
        self,
        frame: Frame,
        on_shot: Optional[Callable[[ShotEvent], None]] = None,
    ) -> Optional[ShotEvent]:
        """Process the most recent frame (already pushed to the buffer).

        Returns:
            The ShotEvent when this frame triggers a detection, else None.
        """
        try:
            trajectories = self.estimator.observe(frame)
        except Exception as e:
            logger.warning("Trajectory estimation failed on frame %s: %s", frame.index, e)
            return None

        with self._lock:
            self._expire_cooldown(frame.timestamp)
            if self._state is not DetectorState.IDLE:
                return None
            if not trajectories:
                return None
            self._state = DetectorState.PROCESSING

        triggered = False
        event = None
        try:
            triggered = any(self._is_shot(t) for t in trajectories)
            if triggered:
                event = self._build_event(frame)
        except Exception as e:
            logger.warning("Shot evaluation failed on frame %s: %s", frame.index, e)
            triggered = False
            event = None
        finally:
            with self._lock:
                if triggered:
                    self._state = DetectorState.COOLDOWN
                    self._triggered_at = frame.timestamp
                else:
                    self._state = DetectorState.IDLE

        if event is None:
            return None

        logger.info(
            "Shot detected at t=%.2fs (window=%d frames)", event.timestamp, len(event.frames)
        )
        if on_shot is not None:
            try:
                on_shot(event)
            except Exception:
                logger.exception("Shot continuation failed")
        return event

    def _expire_cooldown(self, now: float) -> None:
        if self._state is not DetectorState.COOLDOWN or self._triggered_at is None:
            return
        elapsed = now - self._triggered_at
        # A timestamp earlier than the trigger means the stream restarted.
        if elapsed < 0 or elapsed >= self.config.cooldown_s:
            self._state = DetectorState.IDLE
            self._triggered_at = None

    def _is_shot(self, points: Sequence[Point]) -> bool:
        if len(points) < self.config.min_points:
            return False
        length = path_length(points)
        if length < self.config.min_path_length:
            return False
        if has_upward_motion(points) and has_parabolic_arc(points):
            logger.debug("Shot trajectory: %d points, length %.3f", len(points), length)
            return True
        return False

    def _build_event(self, frame: Frame) -> ShotEvent:
        frames = self.buffer.snapshot()
        if not frames:
            frames = (frame,)
        release, impact = shot_window_indices(len(frames), self.config.release_offset)
        return ShotEvent(
            timestamp=frame.timestamp,
            frames=frames,
            release_frame_index=release,
            impact_frame_index=impact,
        )
