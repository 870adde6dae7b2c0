"""Shot Coach: real-time shooting feedback.

Usage:
    # Replay a recorded session
    python -m shot_coach.main path/to/video.mp4 [--realtime]

    # Live webcam
    python -m shot_coach.main --camera 0 [--estimator yolo]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from typing import List, Optional

from .analysis.trajectory import MotionTrajectoryEstimator, TrajectoryEstimator
from .config.settings import ShotCoachConfig
from .core.video_processor import VideoProcessor
from .errors import SessionStartError
from .feedback.sequencer import DisplayEvent
from .pipeline import TrainingSession

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Attach a single console (and optional file) handler to the package logger."""
    root = logging.getLogger("shot_coach")
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    root.propagate = False

    if not root.handlers:
        formatter = logging.Formatter(LOG_FORMAT)
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        root.addHandler(console)
        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)
    return root


def build_estimator(name: str, config: ShotCoachConfig) -> TrajectoryEstimator:
    if name == "yolo":
        # Needs the optional ultralytics/torch extra.
        from .analysis.ball_estimator import YoloBallTrajectoryEstimator

        return YoloBallTrajectoryEstimator(config.ball, config.motion, min_points=config.detector.min_points)
    return MotionTrajectoryEstimator(config.motion, min_points=config.detector.min_points)


def print_display(event: DisplayEvent) -> None:
    print(f"[{event.makes}/{event.total_shots}] {event.outcome.value.upper():<13} {event.tip}", flush=True)


def print_connectivity(is_live: bool) -> None:
    print("Live coaching connected" if is_live else "Live coaching unavailable, using backup analysis", flush=True)


async def run(args: argparse.Namespace, config: ShotCoachConfig) -> int:
    source = args.camera if args.camera is not None else args.video
    video = VideoProcessor(source)
    logger.info("Source: %s", video.info)

    session = TrainingSession(
        config,
        estimator=build_estimator(args.estimator, config),
        on_display=print_display,
        on_connectivity=print_connectivity,
    )

    try:
        await session.start()
    except SessionStartError as e:
        print(f"Cannot start session: {e}", file=sys.stderr)
        video.release()
        return 2

    def feed() -> None:
        for frame in video.read_frames(realtime=args.realtime):
            session.push_frame(frame)

    try:
        await asyncio.to_thread(feed)
        await session.wait_idle()
    finally:
        await session.end()
        video.release()

    stats = session.stats
    print()
    print(f"Shots: {stats.total_shots}")
    print(f"Makes: {stats.makes}")
    print(f"Accuracy: {stats.accuracy:.0f}%")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Shot Coach: real-time basketball shot feedback")
    parser.add_argument("video", nargs="?", help="Video file to replay")
    parser.add_argument("--camera", type=int, default=None, help="Camera index (instead of a video file)")
    parser.add_argument("--estimator", choices=["motion", "yolo"], default="motion",
                        help="Ball trajectory estimator")
    parser.add_argument("--tips", default=None, help="Coaching tips JSON file")
    parser.add_argument("--realtime", action=argparse.BooleanOptionalAction, default=True,
                        help="Replay video files at their native frame rate")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--log-file", default=None)
    parser.add_argument("--env-file", default=None, help="Path to a .env file")
    args = parser.parse_args(argv)

    if args.video is None and args.camera is None:
        parser.error("give a video file or --camera N")

    config = ShotCoachConfig.from_env(args.env_file)
    pipeline_overrides = {}
    if args.tips:
        pipeline_overrides["tips_path"] = args.tips
    if args.log_level:
        pipeline_overrides["log_level"] = args.log_level.upper()
    if pipeline_overrides:
        config = replace(config, pipeline=replace(config.pipeline, **pipeline_overrides))

    setup_logging(config.pipeline.log_level, args.log_file)

    try:
        return asyncio.run(run(args, config))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
