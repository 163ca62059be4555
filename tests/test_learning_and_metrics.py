"""
Unit tests for pattern learning, metrics/quality scoring and recommendations.
"""

from __future__ import annotations

import pytest

from core.exceptions import PatternPersistenceError
from core.models import MatchResult, ProcessingMetrics
from pipeline.metrics import MetricsCollector, confidence_bucket, quality_score
from pipeline.pattern_learner import PatternLearner, extract_pattern, pattern_key
from pipeline.recommendations import (
    ENABLE_LEARNING,
    IMPROVE_DESCRIPTIONS,
    MANUAL_REVIEW,
    REVIEW_UNMATCHED,
    find_duplicate_matches,
    generate_recommendations,
)
from utils.pattern_store import InMemoryPatternStore

from fakes import RecordingPersistence, make_estimate, make_invoice


# ---------------------------------------------------------------------------
# Pattern learner
# ---------------------------------------------------------------------------


def test_extract_pattern_generalizes_numbers_and_attributes() -> None:
    assert extract_pattern("10mm Steel Rebar") == "*mm steel rebar"
    assert extract_pattern("Steel Rebar 10mm") == "steel rebar *mm"
    assert extract_pattern("Pump Model XR Type B") == "pump model * type *"
    assert extract_pattern("  Size L gloves ") == "size * gloves"


def test_learn_creates_pattern_from_high_confidence_match() -> None:
    store = InMemoryPatternStore()
    persistence = RecordingPersistence()
    invoice = make_invoice("inv1", [("i1", "10mm Steel Rebar", 500.0)], supplier="SteelCo")
    estimates = [make_estimate("e1", "Steel Rebar 10mm", trade="Structural")]

    touched = PatternLearner(store, persistence).learn(
        [MatchResult.create("i1", "e1", 0.9, "llm")], [invoice], estimates
    )

    key = pattern_key("SteelCo", "*mm steel rebar", "steel rebar *mm")
    assert key == "SteelCo:*mm steel rebar:steel rebar *mm"
    pattern = store.get(key)
    assert touched == 1
    assert pattern is not None
    assert pattern.supplier_name == "SteelCo"
    assert pattern.trade_name == "Structural"
    assert pattern.usage_count == 1
    assert pattern.success_rate == 1.0
    assert pattern.confidence == 0.9
    assert len(persistence.saves) == 1


def test_learn_reinforces_existing_pattern() -> None:
    store = InMemoryPatternStore()
    learner = PatternLearner(store, RecordingPersistence())
    invoice = make_invoice("inv1", [("i1", "10mm Steel Rebar", 500.0), ("i2", "12mm Steel Rebar", 700.0)])
    estimates = [make_estimate("e1", "Steel Rebar 10mm")]

    learner.learn([MatchResult.create("i1", "e1", 0.85, "llm")], [invoice], estimates)
    pattern = store.values()[0]
    pattern.success_rate = 0.5
    learner.learn([MatchResult.create("i2", "e1", 0.95, "llm")], [invoice], estimates)

    assert len(store) == 1
    assert pattern.confidence == 0.95
    assert pattern.usage_count == 2
    assert pattern.success_rate == 0.75


def test_learn_ignores_weak_and_unmatched_results() -> None:
    store = InMemoryPatternStore()
    persistence = RecordingPersistence()
    invoice = make_invoice("inv1", [("i1", "Sand", 50.0), ("i2", "Gravel", 60.0), ("i3", "Bricks", 70.0)])
    matches = [
        MatchResult.create("i1", "e1", 0.8, "exactly at threshold"),
        MatchResult.no_match("i2", "none"),
        MatchResult.create("i3", "missing-estimate", 0.95, "unknown estimate"),
    ]
    assert PatternLearner(store, persistence).learn(matches, [invoice], [make_estimate("e1", "Sand fill")]) == 0
    assert len(store) == 0
    assert persistence.saves == []


def test_persistence_failure_keeps_in_memory_patterns() -> None:
    class Broken(RecordingPersistence):
        def save(self, patterns):
            raise PatternPersistenceError("disk full")

    store = InMemoryPatternStore()
    invoice = make_invoice("inv1", [("i1", "Sand", 50.0)])
    PatternLearner(store, Broken()).learn(
        [MatchResult.create("i1", "e1", 0.9, "llm")], [invoice], [make_estimate("e1", "Sand fill")]
    )
    assert len(store) == 1


# ---------------------------------------------------------------------------
# Metrics & quality score
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "confidence,bucket",
    [(0.95, "high"), (0.8, "high"), (0.79, "medium"), (0.5, "medium"), (0.3, "low"), (0.29, "none"), (0.0, "none")],
)
def test_confidence_buckets(confidence: float, bucket: str) -> None:
    assert confidence_bucket(confidence) == bucket


def test_finalize_counts_buckets_and_average() -> None:
    collector = MetricsCollector(total_items=4, cache_hits=1, pattern_matches=1)
    collector.record_collaborator_call(success=True)
    collector.record_collaborator_call(success=True, cost=0.5)
    collector.record_collaborator_call(success=False)
    matches = [
        MatchResult.create("a", "e1", 0.9, "r"),
        MatchResult.create("b", "e1", 0.6, "r"),
        MatchResult.create("c", "e2", 0.4, "r"),
        MatchResult.no_match("d", "r"),
    ]
    metrics = collector.finalize(matches, processing_time_ms=12.0)
    assert (metrics.high_confidence_matches, metrics.medium_confidence_matches) == (1, 1)
    assert (metrics.low_confidence_matches, metrics.no_matches) == (1, 1)
    assert metrics.processed_items == 4
    assert metrics.average_confidence == pytest.approx(0.475)
    assert metrics.llm_calls == 3
    assert metrics.cost_estimate == pytest.approx(0.51)


def test_quality_score_formula() -> None:
    metrics = ProcessingMetrics(
        total_items=4,
        high_confidence_matches=2,
        no_matches=1,
        pattern_matches=1,
        average_confidence=0.6,
    )
    # 0.4*0.6 + 0.3*0.75 + 0.2*0.5 + 0.1*0.25 = 0.59
    assert quality_score(metrics) == 59


def test_quality_score_zero_items_is_zero() -> None:
    score = quality_score(MetricsCollector().finalize([], 0.0))
    assert score == 0
    assert isinstance(score, int)


def test_quality_score_is_bounded() -> None:
    perfect = ProcessingMetrics(total_items=2, high_confidence_matches=2, pattern_matches=2, average_confidence=1.0)
    assert quality_score(perfect) == 100


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------


def test_duplicate_estimate_usage_yields_one_warning_per_estimate() -> None:
    matches = [
        MatchResult.create("i1", "e1", 0.6, "r"),
        MatchResult.create("i2", "e1", 0.7, "r"),
        MatchResult.create("i3", "e2", 0.9, "r"),
        MatchResult.create("i4", "e2", 0.5, "r"),  # not > 0.5
    ]
    assert find_duplicate_matches(matches) == {"e1": ["i1", "i2"]}
    metrics = MetricsCollector(total_items=4, pattern_matches=4).finalize(matches, 0.0)

    recs = generate_recommendations(metrics, matches)

    duplicates = [r for r in recs if r.startswith("Estimate ")]
    assert duplicates == ["Estimate e1 matched to 2 invoice line items - review for duplicate billing"]


def test_threshold_recommendations() -> None:
    matches = [
        MatchResult.create("a", "e1", 0.35, "r"),
        MatchResult.create("b", "e2", 0.4, "r"),
        MatchResult.no_match("c", "r"),
        MatchResult.no_match("d", "r"),
    ]
    metrics = MetricsCollector(total_items=4).finalize(matches, 0.0)
    recs = generate_recommendations(metrics, matches)
    assert recs == [IMPROVE_DESCRIPTIONS, REVIEW_UNMATCHED, ENABLE_LEARNING, MANUAL_REVIEW]


def test_healthy_run_has_no_recommendations() -> None:
    matches = [MatchResult.create("a", "e1", 0.9, "r"), MatchResult.create("b", "e2", 0.9, "r")]
    metrics = MetricsCollector(total_items=2, pattern_matches=1).finalize(matches, 0.0)
    assert generate_recommendations(metrics, matches) == []


@pytest.mark.parametrize(
    "pattern_matches,average_confidence,expected",
    [
        (1, 0.0, 33),  # 0.3 + 0.025 -> 32.5
        (1, 0.55, 55),  # 0.22 + 0.3 + 0.025 -> 54.5
    ],
)
def test_quality_score_rounds_ties_up(pattern_matches: int, average_confidence: float, expected: int) -> None:
    metrics = ProcessingMetrics(
        total_items=4,
        pattern_matches=pattern_matches,
        average_confidence=average_confidence,
    )
    assert quality_score(metrics) == expected
