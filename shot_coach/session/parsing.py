"""Turn analysis-service text into an ``AnalysisResult``.

The service is only loosely contracted to return ``{"outcome", "tip"}`` JSON,
so nothing in here raises: malformed payloads degrade to a keyword heuristic
and, failing that, to a default verdict.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from .models import AnalysisResult, ShotOutcome

logger = logging.getLogger(__name__)

GENERIC_TIP = "Keep practicing your form!"

# Lines mentioning one of these are taken as the coaching tip.
TIP_KEYWORDS = ("tip", "focus", "try", "keep", "elbow", "follow")


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence if present."""
    t = text.strip()
    if t.startswith("```"):
        t = t[3:]
        if t.lower().startswith("json"):
            t = t[4:]
        if t.rstrip().endswith("```"):
            t = t.rstrip()[:-3]
    return t.strip()


def outcome_from_string(value: Any) -> ShotOutcome:
    if isinstance(value, str) and value.strip().lower() == "make":
        return ShotOutcome.MAKE
    return ShotOutcome.MISS


def try_parse_json_result(text: str, source: str = "live") -> Optional[AnalysisResult]:
    """Strict path: a JSON object with an ``outcome`` field, else None."""
    try:
        data = json.loads(strip_code_fence(text))
    except (json.JSONDecodeError, TypeError, ValueError):
        return None
    if not isinstance(data, dict) or "outcome" not in data:
        return None

    tip = data.get("tip")
    tip = tip.strip() if isinstance(tip, str) else ""
    return AnalysisResult(outcome=outcome_from_string(data["outcome"]), tip=tip, source=source)


def extract_tip(text: str) -> str:
    """First line containing a coaching keyword, from that keyword onward."""
    for line in text.splitlines():
        lower = line.lower()
        hits = [lower.find(k) for k in TIP_KEYWORDS if k in lower]
        if hits:
            tip = line[min(hits):].strip()
            if tip:
                return tip
    return GENERIC_TIP


def parse_analysis_text(text: Optional[str], source: str = "live") -> AnalysisResult:
    """Parse a model response; never raises."""
    if not text or not text.strip():
        return AnalysisResult(outcome=ShotOutcome.MISS, tip=GENERIC_TIP, source=source)

    result = try_parse_json_result(text, source=source)
    if result is not None:
        return result

    logger.debug("Response is not result JSON; using text heuristic")
    outcome = ShotOutcome.MAKE if "make" in text.lower() else ShotOutcome.MISS
    return AnalysisResult(outcome=outcome, tip=extract_tip(text), source=source)

