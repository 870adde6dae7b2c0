"""Coaching prompts sent to the analysis service."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


SYSTEM_INSTRUCTION = """\
You are Shot Coach, an AI basketball coach. Analyze each basketball shot image and give real-time feedback.

For each shot image, determine:
1. Was it a make or miss? (look for the ball going through the hoop)
2. One specific coaching tip about shooting form

Focus on: shooting elbow alignment, follow-through, knee bend, balance, arc.

Respond with valid JSON only, in this exact format:
{"outcome": "make" or "miss", "tip": "your coaching tip (max 10 words)"}

Be encouraging and specific.
"""

FALLBACK_PROMPT = """\
You are Shot Coach, an AI basketball coach with championship authority and expertise.

Analyze this basketball shot image and provide:
1. Was it a make or miss? (look for the ball going through the hoop)
2. One specific, actionable coaching tip about the player's shooting form

Focus on these key aspects:
- Shooting elbow alignment (should be under the ball)
- Follow-through (wrist snap, fingers pointing down)
- Knee bend and leg drive
- Balance and foot positioning
- Arc of the shot

Guidelines:
- Keep tips under 10 words
- Be encouraging but authoritative
- Focus on ONE specific improvement
- Avoid generic advice"""

FORMAT_INSTRUCTIONS = """

Return response as JSON only:
{
    "outcome": "make" or "miss",
    "tip": "your specific coaching tip here"
}"""

# Conservative character limit for a single prompt.
MAX_PROMPT_CHARS = 8000


def avoid_repetition_clause(last_tip: str) -> str:
    if not last_tip:
        return ""
    return f" Don't repeat: '{last_tip}'"


def build_live_prompt(last_tip: str = "", timestamp: Optional[datetime] = None) -> str:
    """Per-shot prompt sent alongside the frame on the streaming channel."""
    ts = (timestamp or datetime.now(timezone.utc)).isoformat()
    return (
        f"Analyze this basketball shot taken at {ts}.{avoid_repetition_clause(last_tip)}"
        " Respond in JSON format with outcome and tip."
    )


def build_fallback_prompt(last_tip: str = "") -> str:
    """Self-contained prompt for the stateless request (no system instruction)."""
    prompt = FALLBACK_PROMPT
    if last_tip:
        prompt += f"\n- Don't repeat this previous tip: '{last_tip}'"
    return prompt + FORMAT_INSTRUCTIONS


def validate_prompt_length(prompt: str) -> bool:
    return len(prompt) < MAX_PROMPT_CHARS
