from __future__ import annotations

from shot_coach.session.models import ShotOutcome
from shot_coach.session.parsing import (
    GENERIC_TIP,
    extract_tip,
    parse_analysis_text,
    strip_code_fence,
    try_parse_json_result,
)


def test_json_make_with_tip():
    result = parse_analysis_text('{"outcome":"MAKE","tip":"Elbow in"}')
    assert result.outcome is ShotOutcome.MAKE
    assert result.tip == "Elbow in"
    assert result.source == "live"


def test_json_miss_without_tip():
    result = parse_analysis_text('{"outcome":"miss"}', source="fallback")
    assert result.outcome is ShotOutcome.MISS
    assert result.tip == ""
    assert result.source == "fallback"


def test_unknown_outcome_is_a_miss():
    assert parse_analysis_text('{"outcome":"swish"}').outcome is ShotOutcome.MISS
    assert parse_analysis_text('{"outcome": null, "tip": 3}').tip == ""


def test_fenced_json():
    text = '```json\n{"outcome": "make", "tip": "Hold the follow-through"}\n```'
    assert strip_code_fence(text).startswith("{")
    result = parse_analysis_text(text)
    assert result.outcome is ShotOutcome.MAKE
    assert result.tip == "Hold the follow-through"


def test_heuristic_for_plain_text():
    result = parse_analysis_text("Great shot, tip: keep your elbow in")
    # No "make" in the text, so the heuristic reads it as a miss.
    assert result.outcome is ShotOutcome.MISS
    assert result.tip == "tip: keep your elbow in"

    result = parse_analysis_text("Nice make!\nFocus on your base.")
    assert result.outcome is ShotOutcome.MAKE
    assert result.tip == "Focus on your base."


def test_heuristic_without_keywords_uses_generic_tip():
    result = parse_analysis_text("Nothing useful here")
    assert result.outcome is ShotOutcome.MISS
    assert result.tip == GENERIC_TIP
    assert extract_tip("") == GENERIC_TIP


def test_json_array_is_not_a_result():
    assert try_parse_json_result('["make"]') is None
    assert try_parse_json_result('{"tip": "x"}') is None


def test_empty_text():
    result = parse_analysis_text("")
    assert result.outcome is ShotOutcome.MISS
    assert result.tip == GENERIC_TIP
    assert parse_analysis_text(None).outcome is ShotOutcome.MISS
