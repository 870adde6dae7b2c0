"""Shot detection and frame selection."""

from .trajectory import TrajectoryEstimator, TrackAssembler, MotionTrajectoryEstimator
from .shot_detector import (
    DetectorState,
    ShotEvent,
    TrajectoryShotDetector,
    has_parabolic_arc,
    has_upward_motion,
    path_length,
)
from .frame_selector import FrameQualitySelector

# NOTE: YoloBallTrajectoryEstimator needs ultralytics/torch; import it from
# .ball_estimator explicitly so the package stays importable without them.
