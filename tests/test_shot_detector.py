from __future__ import annotations

from typing import List

import pytest

from shot_coach.analysis.shot_detector import (
    DetectorState,
    ShotEvent,
    TrajectoryShotDetector,
    has_parabolic_arc,
    has_upward_motion,
    path_length,
    shot_window_indices,
)
from shot_coach.analysis.trajectory import TrajectoryEstimator
from shot_coach.config.settings import DetectorConfig
from shot_coach.core.frame_buffer import FrameBuffer

from helpers import SHOT_ARC, make_frame


class ScriptedEstimator(TrajectoryEstimator):
    """Returns the same trajectories for every frame."""

    def __init__(self, trajectories):
        self.trajectories = trajectories
        self.seen = 0

    def observe(self, frame) -> List:
        self.seen += 1
        return self.trajectories

    def reset(self):
        self.seen = 0


class BrokenEstimator(TrajectoryEstimator):
    def observe(self, frame):
        raise ValueError("bad frame")

    def reset(self):
        pass


def _detector(trajectories, cooldown_s: float = 2.0, buffer=None):
    buffer = buffer if buffer is not None else FrameBuffer(30)
    est = ScriptedEstimator(trajectories)
    return TrajectoryShotDetector(est, buffer, DetectorConfig(cooldown_s=cooldown_s)), est, buffer


def test_trajectory_checks():
    assert path_length([(0.0, 0.0), (0.3, 0.4)]) == pytest.approx(0.5)
    assert has_upward_motion(SHOT_ARC)
    assert has_parabolic_arc(SHOT_ARC)

    falling = [(0.5, 0.1 * i) for i in range(7)]
    assert not has_upward_motion(falling)
    assert not has_parabolic_arc(falling)


def test_shot_arc_triggers_event_with_window():
    det, _, buf = _detector([SHOT_ARC])
    for i in range(10):
        buf.push(make_frame(timestamp=i / 30.0, index=i, width=4, height=4))
    frame = buf.latest()

    received = []
    event = det.observe(frame, on_shot=received.append)

    assert isinstance(event, ShotEvent)
    assert received == [event]
    assert len(event.frames) == 10
    assert event.impact_frame_index == 9
    assert event.release_frame_index == 5
    assert event.release_frame.index == 5
    assert det.state is DetectorState.COOLDOWN


@pytest.mark.parametrize(
    "trajectory",
    [
        SHOT_ARC[:4],                                        # too few points
        [(0.5, 0.50), (0.5, 0.49), (0.5, 0.48), (0.5, 0.49), (0.5, 0.50)],  # too short
        [(0.1 * i, 0.5) for i in range(7)],                  # flat
        [(0.5, 0.9 - 0.1 * i) for i in range(7)],            # rising only
    ],
)
def test_non_shot_trajectories_do_not_trigger(trajectory):
    det, _, buf = _detector([trajectory])
    frame = make_frame(width=4, height=4)
    buf.push(frame)
    assert det.observe(frame) is None
    assert det.state is DetectorState.IDLE


def test_cooldown_blocks_then_allows_next_shot():
    det, est, buf = _detector([SHOT_ARC], cooldown_s=2.0)

    def step(t: float):
        f = make_frame(timestamp=t, width=4, height=4)
        buf.push(f)
        return det.observe(f)

    assert step(0.0) is not None
    assert step(0.5) is None
    assert step(1.9) is None
    # The estimator still saw every frame during cooldown.
    assert est.seen == 3
    assert step(2.0) is not None


def test_cooldown_ends_when_timestamps_go_backwards():
    det, _, buf = _detector([SHOT_ARC], cooldown_s=2.0)
    f0 = make_frame(timestamp=10.0, width=4, height=4)
    buf.push(f0)
    assert det.observe(f0) is not None
    f1 = make_frame(timestamp=0.0, width=4, height=4)
    assert det.observe(f1) is not None


def test_empty_buffer_uses_current_frame_as_window():
    det, _, _ = _detector([SHOT_ARC])
    frame = make_frame(width=4, height=4)
    event = det.observe(frame)
    assert event.frames == (frame,)
    assert event.release_frame is frame
    assert event.impact_frame is None


def test_estimator_failure_is_not_a_detection():
    det = TrajectoryShotDetector(BrokenEstimator(), FrameBuffer(30))
    assert det.observe(make_frame(width=4, height=4)) is None
    assert det.state is DetectorState.IDLE


def test_failing_continuation_does_not_propagate():
    det, _, _ = _detector([SHOT_ARC])

    def boom(event):
        raise RuntimeError("ui gone")

    assert det.observe(make_frame(width=4, height=4), on_shot=boom) is not None


def test_reset_clears_cooldown():
    det, _, _ = _detector([SHOT_ARC])
    det.observe(make_frame(timestamp=0.0, width=4, height=4))
    det.reset()
    assert det.state is DetectorState.IDLE
    assert det.observe(make_frame(timestamp=0.1, width=4, height=4)) is not None


def test_window_indices_are_clamped():
    assert shot_window_indices(30) == (25, 29)
    assert shot_window_indices(3) == (0, 2)
    assert shot_window_indices(1) == (0, 1)


def test_shot_event_rejects_bad_indices():
    frames = (make_frame(width=2, height=2),)
    with pytest.raises(ValueError):
        ShotEvent(timestamp=0.0, frames=frames, release_frame_index=1, impact_frame_index=1)
