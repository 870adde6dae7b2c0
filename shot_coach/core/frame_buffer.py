"""Bounded ring buffer of recent frames."""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Deque, Optional, Tuple

from .frame import Frame

logger = logging.getLogger(__name__)


class FrameBuffer:
    """Keep the most recent ``capacity`` frames in arrival order.

    ``push`` is called from the capture thread at sensor rate, so it never
    waits on anything but a short critical section and never raises.
    """

    def __init__(self, capacity: int = 30):
        self.capacity = int(capacity)
        self._frames: Deque[Frame] = deque(maxlen=max(0, self.capacity))
        self._lock = threading.Lock()
        self._misconfig_logged = False

    def push(self, frame: Frame) -> None:
        if self.capacity <= 0:
            if not self._misconfig_logged:
                logger.error("FrameBuffer capacity is %d; frames are discarded", self.capacity)
                self._misconfig_logged = True
            return
        with self._lock:
            # deque(maxlen) evicts the oldest entry in O(1).
            self._frames.append(frame)

    def snapshot(self) -> Tuple[Frame, ...]:
        """Immutable copy of the current contents, oldest first."""
        with self._lock:
            return tuple(self._frames)

    def latest(self) -> Optional[Frame]:
        with self._lock:
            return self._frames[-1] if self._frames else None

    def clear(self) -> None:
        with self._lock:
            self._frames.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._frames)
