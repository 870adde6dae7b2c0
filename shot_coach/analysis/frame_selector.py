"""Pick the frames of a shot worth sending for analysis."""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Executor
from typing import List, Optional

from ..config.settings import SelectorConfig
from ..core.frame import Frame, mean_luminance
from .shot_detector import ShotEvent

logger = logging.getLogger(__name__)


class FrameQualitySelector:
    """Prefer the release frame (form), then the impact frame (outcome).

    Frames that are too small, too dark or too bright are dropped, unless that
    would leave nothing to analyse.
    """

    def __init__(self, config: Optional[SelectorConfig] = None):
        self.config = config or SelectorConfig()

    def select(self, shot_event: Optional[ShotEvent], fallback_frame: Optional[Frame]) -> List[Frame]:
        candidates: List[Frame] = []
        if shot_event is not None:
            if shot_event.release_frame is not None:
                candidates.append(shot_event.release_frame)
            if shot_event.impact_frame is not None:
                candidates.append(shot_event.impact_frame)
        if not candidates and fallback_frame is not None:
            candidates.append(fallback_frame)

        filtered = [f for f in candidates if self.is_good_quality(f)]
        if not filtered:
            if candidates:
                logger.debug("No frame passed the quality gate; using %d unfiltered", len(candidates))
            return candidates
        return filtered

    async def select_async(
        self,
        shot_event: Optional[ShotEvent],
        fallback_frame: Optional[Frame],
        executor: Optional[Executor] = None,
    ) -> List[Frame]:
        """Run ``select`` on a worker thread (pixel sampling is CPU bound)."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(executor, self.select, shot_event, fallback_frame)

    def is_good_quality(self, frame: Frame) -> bool:
        cfg = self.config
        if frame.width < cfg.min_width or frame.height < cfg.min_height:
            return False
        try:
            brightness = mean_luminance(frame.image, cfg.sample_step)
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning("Unreadable frame %s: %s", frame.index, e)
            return False
        return cfg.min_luminance < brightness < cfg.max_luminance
