"""Frame container and image helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

from ..errors import FrameEncodingError


@dataclass(frozen=True, eq=False)
class Frame:
    """A captured video frame.

    The image is borrowed from the capture side; the pipeline treats it as
    read-only.
    """

    # BGR (H, W, 3) or grayscale (H, W), uint8.
    image: np.ndarray

    # Capture time in seconds (monotonic or stream-relative).
    timestamp: float

    width: int
    height: int

    # Optional source frame number (video replay).
    index: Optional[int] = None

    @classmethod
    def from_image(cls, image: np.ndarray, timestamp: float, index: Optional[int] = None) -> "Frame":
        h, w = image.shape[:2]
        return cls(image=image, timestamp=float(timestamp), width=int(w), height=int(h), index=index)


def mean_luminance(image: np.ndarray, sample_step: int = 10) -> float:
    """Mean luminance in [0, 1], sampled on a coarse grid.

    Uses Rec. 601 weights (0.299 R + 0.587 G + 0.114 B) on BGR input.

    Raises:
        ValueError: if the array is not a 2D or 3-channel image.
    """
    img = np.asarray(image)
    step = max(1, int(sample_step))
    if img.ndim == 2:
        sampled = img[::step, ::step].astype(np.float32)
        if sampled.size == 0:
            raise ValueError("empty image")
        return float(sampled.mean()) / 255.0

    if img.ndim != 3 or img.shape[2] < 3:
        raise ValueError(f"unsupported image shape {img.shape}")

    sampled = img[::step, ::step, :3].astype(np.float32)
    if sampled.size == 0:
        raise ValueError("empty image")
    b = sampled[..., 0]
    g = sampled[..., 1]
    r = sampled[..., 2]
    lum = 0.299 * r + 0.587 * g + 0.114 * b
    return float(lum.mean()) / 255.0


def encode_jpeg(frame: Frame, quality: int = 80) -> bytes:
    """Encode a frame as JPEG bytes for inline upload."""
    if frame.image is None or np.asarray(frame.image).size == 0:
        raise FrameEncodingError("frame has no image data")
    try:
        ok, buf = cv2.imencode(".jpg", frame.image, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    except cv2.error as e:
        raise FrameEncodingError(f"JPEG encoding failed: {e}") from e
    if not ok:
        raise FrameEncodingError("JPEG encoding failed")
    return buf.tobytes()
