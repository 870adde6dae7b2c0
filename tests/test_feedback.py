from __future__ import annotations

import json
import random

from shot_coach.feedback.sequencer import FeedbackSequencer
from shot_coach.feedback.tips import DEFAULT_MAKE, DEFAULT_TIP, CoachingTips
from shot_coach.session.models import AnalysisResult, ShotOutcome


def _result(outcome: ShotOutcome, tip: str = "") -> AnalysisResult:
    return AnalysisResult(outcome=outcome, tip=tip, source="live")


def test_counts_makes_and_shots():
    seq = FeedbackSequencer()
    seq.begin()
    outcomes = [ShotOutcome.MAKE] * 6 + [ShotOutcome.MISS] * 4
    for i, outcome in enumerate(outcomes):
        event = seq.on_result(_result(outcome, f"tip {i}"))
        assert event.total_shots == i + 1

    stats = seq.stats
    assert stats.makes == 6
    assert stats.total_shots == 10
    assert stats.misses == 4
    assert stats.accuracy == 60.0
    assert stats.last_tip == "tip 9"


def test_inactive_sequencer_discards_results():
    seq = FeedbackSequencer()
    assert seq.on_result(_result(ShotOutcome.MAKE)) is None
    seq.begin()
    seq.close()
    assert seq.on_result(_result(ShotOutcome.MAKE)) is None
    assert seq.stats.total_shots == 0


def test_begin_resets_stats():
    seq = FeedbackSequencer()
    seq.begin()
    seq.on_result(_result(ShotOutcome.MAKE, "a"))
    seq.begin()
    assert seq.stats.total_shots == 0
    assert seq.stats.last_tip == ""


def test_empty_tip_uses_canned_copy_for_outcome():
    tips = CoachingTips(makes=["Money!"], misses=["Shake it off"], rng=random.Random(0))
    seq = FeedbackSequencer(tips)
    seq.begin()
    assert seq.on_result(_result(ShotOutcome.MAKE)).tip == "Money!"
    assert seq.on_result(_result(ShotOutcome.MISS)).tip == "Shake it off"


def test_repeated_tip_is_replaced():
    tips = CoachingTips(misses=["Bend your knees", "Square your feet"], rng=random.Random(1))
    seq = FeedbackSequencer(tips)
    seq.begin()
    first = seq.on_result(_result(ShotOutcome.MISS, "Bend your knees"))
    second = seq.on_result(_result(ShotOutcome.MISS, "  bend YOUR knees "))
    assert first.tip == "Bend your knees"
    assert second.tip == "Square your feet"


def test_indeterminate_counts_as_shot_with_generic_tip():
    seq = FeedbackSequencer(CoachingTips())
    seq.begin()
    event = seq.on_result(AnalysisResult(outcome=ShotOutcome.INDETERMINATE))
    assert event.makes == 0
    assert event.total_shots == 1
    assert event.tip == DEFAULT_TIP


def test_stats_are_a_copy():
    seq = FeedbackSequencer()
    seq.begin()
    snapshot = seq.stats
    seq.on_result(_result(ShotOutcome.MAKE, "x"))
    assert snapshot.total_shots == 0


def test_contextual_avoids_previous_tip_and_falls_back_to_defaults():
    tips = CoachingTips()
    assert tips.contextual(ShotOutcome.MAKE) == DEFAULT_MAKE
    assert tips.contextual(ShotOutcome.MAKE, avoid=DEFAULT_MAKE) != DEFAULT_MAKE

    only_one = CoachingTips(makes=["Splash"], encouragement=["Great job!"])
    assert only_one.contextual(ShotOutcome.MAKE, avoid="splash") == "Great job!"


def test_tips_from_json(tmp_path):
    path = tmp_path / "tips.json"
    path.write_text(json.dumps({"tips": ["Eyes on the rim"], "makes": ["Cash", ""], "misses": [1, "Again"]}))
    tips = CoachingTips.from_json(path)
    assert tips.tips == ["Eyes on the rim"]
    assert tips.makes == ["Cash"]
    assert tips.misses == ["Again"]
    assert tips.encouragement == []


def test_tips_from_missing_or_invalid_file(tmp_path):
    assert CoachingTips.from_json(tmp_path / "nope.json").tips == []
    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    assert CoachingTips.from_json(bad).makes == []
