"""Canned coaching copy used when the service returns no usable tip."""

from __future__ import annotations

import json
import logging
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union

from ..session.models import ShotOutcome

logger = logging.getLogger(__name__)

DEFAULT_TIP = "Keep practicing your form!"
DEFAULT_ENCOURAGEMENT = "Great job!"
DEFAULT_MAKE = "Great shot!"
DEFAULT_MISS = "Keep shooting!"

POOL_KEYS = ("tips", "encouragement", "makes", "misses")


def normalize_tip(tip: str) -> str:
    """Case and whitespace insensitive key for comparing tips."""
    return " ".join(tip.split()).lower()


@dataclass
class CoachingTips:
    """Pools of coaching lines, keyed by situation.

    JSON layout::

        {"tips": [...], "encouragement": [...], "makes": [...], "misses": [...]}

    Missing keys mean empty pools.
    """

    tips: List[str] = field(default_factory=list)
    encouragement: List[str] = field(default_factory=list)
    makes: List[str] = field(default_factory=list)
    misses: List[str] = field(default_factory=list)
    rng: random.Random = field(default_factory=random.Random, repr=False)

    @classmethod
    def from_json(cls, path: Union[str, Path], rng: Optional[random.Random] = None) -> "CoachingTips":
        """Load pools from a JSON file; a missing or invalid file gives empty pools."""
        rng = rng or random.Random()
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.warning("Coaching tips file not found: %s", path)
            return cls(rng=rng)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not load coaching tips from %s: %s", path, e)
            return cls(rng=rng)

        if not isinstance(data, dict):
            logger.warning("Coaching tips file %s is not a JSON object", path)
            return cls(rng=rng)

        pools = {}
        for key in POOL_KEYS:
            values = data.get(key) or []
            pools[key] = [str(v).strip() for v in values if isinstance(v, str) and v.strip()]
        logger.info(
            "Loaded coaching tips: %s",
            ", ".join(f"{k}={len(v)}" for k, v in pools.items()),
        )
        return cls(rng=rng, **pools)

    def _choose(self, pool: Sequence[str], avoid: str) -> Optional[str]:
        if not pool:
            return None
        key = normalize_tip(avoid) if avoid else None
        options = [t for t in pool if normalize_tip(t) != key] if key else list(pool)
        if not options:
            return None
        return self.rng.choice(options)

    def contextual(self, outcome: ShotOutcome, avoid: str = "") -> str:
        """A canned line for the outcome, different from ``avoid`` where possible."""
        if outcome is ShotOutcome.MAKE:
            pools = (self.makes, self.encouragement)
            defaults = (DEFAULT_MAKE, DEFAULT_ENCOURAGEMENT)
        elif outcome is ShotOutcome.MISS:
            pools = (self.misses, self.encouragement)
            defaults = (DEFAULT_MISS, DEFAULT_TIP)
        else:
            pools = (self.tips, self.encouragement)
            defaults = (DEFAULT_TIP, DEFAULT_ENCOURAGEMENT)

        for pool in pools:
            tip = self._choose(pool, avoid)
            if tip is not None:
                return tip
        avoid_key = normalize_tip(avoid)
        for tip in defaults:
            if normalize_tip(tip) != avoid_key:
                return tip
        return defaults[0]
