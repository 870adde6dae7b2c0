from __future__ import annotations

import numpy as np

from shot_coach.core.frame import Frame

# Rises from the bottom of the frame, peaks, and falls back: a clean shot arc.
SHOT_ARC = [
    (0.20, 0.80),
    (0.25, 0.60),
    (0.30, 0.45),
    (0.35, 0.40),
    (0.40, 0.45),
    (0.45, 0.60),
    (0.50, 0.80),
]


def make_frame(
    timestamp: float = 0.0,
    index: int = 0,
    width: int = 640,
    height: int = 480,
    value: int = 128,
) -> Frame:
    image = np.full((height, width, 3), value, dtype=np.uint8)
    return Frame.from_image(image, timestamp, index=index)
