"""Turn analysis results into user-facing feedback and running stats."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional

from ..session.models import AnalysisResult, ShotOutcome
from .tips import CoachingTips, normalize_tip

logger = logging.getLogger(__name__)


@dataclass
class SessionStats:
    makes: int = 0
    total_shots: int = 0
    last_tip: str = ""

    @property
    def misses(self) -> int:
        return self.total_shots - self.makes

    @property
    def accuracy(self) -> float:
        """Make percentage in [0, 100]; 0 before the first shot."""
        if self.total_shots == 0:
            return 0.0
        return 100.0 * self.makes / self.total_shots


@dataclass(frozen=True)
class DisplayEvent:
    """What the overlay and speech output show for one shot."""

    outcome: ShotOutcome
    tip: str
    makes: int
    total_shots: int


class FeedbackSequencer:
    """Counts shots and picks the tip to show for each result.

    Results that arrive after ``close()`` are dropped, so a response to a
    shot from an ended session never reaches the user.
    """

    def __init__(self, tips: Optional[CoachingTips] = None):
        self.tips = tips or CoachingTips()
        self._stats = SessionStats()
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def stats(self) -> SessionStats:
        return replace(self._stats)

    def begin(self) -> None:
        self._stats = SessionStats()
        self._active = True

    def close(self) -> None:
        self._active = False

    def on_result(self, result: AnalysisResult) -> Optional[DisplayEvent]:
        if not self._active:
            logger.debug("Discarding result %s: session not active", result.request_id)
            return None

        stats = self._stats
        stats.total_shots += 1
        if result.outcome is ShotOutcome.MAKE:
            stats.makes += 1

        tip = (result.tip or "").strip()
        if not tip:
            tip = self.tips.contextual(result.outcome, avoid=stats.last_tip)
        elif stats.last_tip and normalize_tip(tip) == normalize_tip(stats.last_tip):
            logger.debug("Service repeated the previous tip; substituting")
            tip = self.tips.contextual(result.outcome, avoid=stats.last_tip)

        stats.last_tip = tip
        return DisplayEvent(
            outcome=result.outcome,
            tip=tip,
            makes=stats.makes,
            total_shots=stats.total_shots,
        )
