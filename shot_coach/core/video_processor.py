"""Video replay source for development and offline sessions."""

import json
import logging
import subprocess
import time
from pathlib import Path
from typing import Generator, Optional, Union

import cv2
import numpy as np

from .frame import Frame

logger = logging.getLogger(__name__)

# Metadata rotation (degrees) -> cv2.rotate code that undoes it.
_QUARTER_TURNS = {
    90: cv2.ROTATE_90_COUNTERCLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_CLOCKWISE,
}


def _stream_rotation(stream: dict) -> Optional[int]:
    # Phones write rotation into display-matrix side data; older files use a tag.
    for side_data in stream.get("side_data_list", []):
        if "rotation" in side_data:
            return int(side_data["rotation"])
    tag = stream.get("tags", {}).get("rotate")
    return int(tag) if tag is not None else None


def get_video_rotation(video_path: str) -> int:
    """Rotation recorded in the container (0 when unknown or ffprobe is missing)."""
    probe = [
        "ffprobe", "-v", "quiet", "-print_format", "json",
        "-show_streams", "-select_streams", "v:0", video_path,
    ]
    try:
        proc = subprocess.run(probe, capture_output=True, text=True)
    except (FileNotFoundError, subprocess.SubprocessError) as e:
        logger.debug("ffprobe unavailable (%s); assuming no rotation", e)
        return 0
    if proc.returncode != 0:
        return 0
    try:
        streams = json.loads(proc.stdout).get("streams") or []
    except json.JSONDecodeError:
        return 0
    if not streams:
        return 0
    rotation = _stream_rotation(streams[0])
    return rotation or 0


def rotate_frame(image: np.ndarray, rotation: int) -> np.ndarray:
    """Undo a metadata rotation; non-quarter angles fall back to warpAffine."""
    rotation %= 360
    if rotation == 0:
        return image
    code = _QUARTER_TURNS.get(rotation)
    if code is not None:
        return cv2.rotate(image, code)
    h, w = image.shape[:2]
    m = cv2.getRotationMatrix2D((w / 2.0, h / 2.0), -rotation, 1.0)
    return cv2.warpAffine(image, m, (w, h))


class VideoProcessor:
    """Read frames from a video file or a camera index as ``Frame`` objects."""

    def __init__(self, source: Union[str, int], auto_rotate: bool = True):
        """
        Args:
            source: Path to a video file, or an integer camera index
            auto_rotate: Whether to correct rotation from container metadata
        """
        self.is_camera = isinstance(source, int)
        self.source = source
        if not self.is_camera and not Path(source).exists():
            raise FileNotFoundError(f"Video not found: {source}")

        self.cap = cv2.VideoCapture(source if self.is_camera else str(source))
        if not self.cap.isOpened():
            raise ValueError(f"Cannot open video source: {source}")

        self.width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self.height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        fps = self.cap.get(cv2.CAP_PROP_FPS)
        self.fps = fps if fps and fps > 0 else 30.0
        self.total_frames = 0 if self.is_camera else int(self.cap.get(cv2.CAP_PROP_FRAME_COUNT))
        self.duration = self.total_frames / self.fps

        self.rotation = 0
        if auto_rotate and not self.is_camera:
            self.rotation = get_video_rotation(str(source))
        if self.rotation % 180 == 90:
            self.width, self.height = self.height, self.width

    def __del__(self):
        self.release()

    def release(self) -> None:
        cap = getattr(self, "cap", None)
        if cap is not None:
            cap.release()
        self.cap = None

    def read_frames(self, realtime: bool = False) -> Generator[Frame, None, None]:
        """
        Yield frames in order.

        Args:
            realtime: Sleep between file frames so replay runs at the native rate
                (camera sources are always paced by the device).

        Yields:
            Frame with a stream-relative timestamp for files, monotonic time for cameras
        """
        if not self.is_camera:
            self.cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
        index = 0
        start = time.monotonic()

        while self.cap is not None:
            ok, image = self.cap.read()
            if not ok:
                logger.debug("Source %s exhausted after %d frames", self.source, index)
                return
            if self.rotation:
                image = rotate_frame(image, self.rotation)

            if self.is_camera:
                timestamp = time.monotonic() - start
            else:
                timestamp = index / self.fps
                if realtime:
                    delay = timestamp - (time.monotonic() - start)
                    if delay > 0:
                        time.sleep(delay)

            yield Frame.from_image(image, timestamp, index=index)
            index += 1

    @property
    def info(self) -> dict:
        kind = "camera" if self.is_camera else "file"
        return dict(
            source=f"{kind}:{self.source}",
            size=(self.width, self.height),
            rotation=self.rotation,
            fps=round(self.fps, 2),
            frames=self.total_frames,
            duration_s=round(self.duration, 2),
        )
