"""YOLO ball detector wrapped as a trajectory estimator."""

import logging
from pathlib import Path
from typing import List, Optional

import numpy as np
from ultralytics import YOLO

from ..config.settings import BallEstimatorConfig, MotionEstimatorConfig
from ..core.frame import Frame
from .trajectory import Point, TrackAssembler, Trajectory, TrajectoryEstimator

logger = logging.getLogger(__name__)


class YoloBallTrajectoryEstimator(TrajectoryEstimator):
    """Detect the ball with a YOLO model and assemble its centres into tracks."""

    def __init__(
        self,
        config: Optional[BallEstimatorConfig] = None,
        tracking: Optional[MotionEstimatorConfig] = None,
        min_points: int = 5,
    ):
        """
        Args:
            config: Model name, device and detection threshold
            tracking: Track assembly parameters (shared with the motion estimator)
            min_points: Minimum track length reported to the detector
        """
        self.config = config or BallEstimatorConfig()
        tracking = tracking or MotionEstimatorConfig()
        self.device = self._pick_device(self.config.device)
        self.model = YOLO(self._find_weights(self.config.model_name))
        self.assembler = TrackAssembler(
            max_track_length=tracking.max_track_length,
            max_jump=tracking.max_jump,
            max_missed_frames=tracking.max_missed_frames,
            min_points=min_points,
        )

    @staticmethod
    def _find_weights(model_name: str) -> str:
        """Local weight file if one exists, else the name (ultralytics downloads it)."""
        name = Path(str(model_name))
        repo_root = Path(__file__).resolve().parents[2]
        for candidate in (name, repo_root / name.name, repo_root / "models" / name.name):
            if candidate.is_file():
                return str(candidate)
        logger.info("No local weights for %s; ultralytics will fetch them", model_name)
        return str(model_name)

    @staticmethod
    def _pick_device(requested: str) -> str:
        if requested != "auto":
            return requested
        import torch

        if torch.cuda.is_available():
            return "cuda"
        if torch.backends.mps.is_available():
            return "mps"
        return "cpu"

    def reset(self):
        self.assembler.reset()

    def observe(self, frame: Frame) -> List[Trajectory]:
        return self.assembler.update(self.detect(frame.image))

    def detect(self, image: np.ndarray) -> List[Point]:
        """Return normalised centres of ball detections in one image."""
        results = self.model.predict(
            image,
            conf=self.config.confidence,
            classes=[self.config.ball_class_id],
            device=self.device,
            verbose=False,
        )
        return self._parse_results(results[0], image.shape[1], image.shape[0])

    def _parse_results(self, result, width: int, height: int) -> List[Point]:
        if result.boxes is None or len(result.boxes) == 0:
            return []

        centres: List[Point] = []
        for box in result.boxes.xyxy.cpu().numpy():
            x1, y1, x2, y2 = box[:4]
            centres.append((float(x1 + x2) / 2.0 / width, float(y1 + y2) / 2.0 / height))
        return centres
