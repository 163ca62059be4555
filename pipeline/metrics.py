"""
Metrics & quality scoring for one bulk run.
MetricsCollector is the mutable accumulator; finalize() freezes it into ProcessingMetrics.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from core.models import (
    HIGH_CONFIDENCE,
    LOW_CONFIDENCE,
    MEDIUM_CONFIDENCE,
    MatchResult,
    ProcessingMetrics,
)

DEFAULT_BATCH_COST = 0.01

QUALITY_WEIGHTS = {
    "average_confidence": 0.4,
    "match_rate": 0.3,
    "high_confidence_rate": 0.2,
    "pattern_usage_rate": 0.1,
}


def confidence_bucket(confidence: float) -> str:
    """high (>= 0.8) | medium (>= 0.5) | low (>= 0.3) | none."""
    if confidence >= HIGH_CONFIDENCE:
        return "high"
    if confidence >= MEDIUM_CONFIDENCE:
        return "medium"
    if confidence >= LOW_CONFIDENCE:
        return "low"
    return "none"


@dataclass
class MetricsCollector:
    """Counters updated by the pipeline stages. Written from the orchestrating thread only."""

    total_items: int = 0
    cache_hits: int = 0
    llm_calls: int = 0
    pattern_matches: int = 0
    cost_estimate: float = 0.0

    def record_collaborator_call(self, success: bool, cost: float | None = None) -> None:
        self.llm_calls += 1
        if success:
            self.cost_estimate += DEFAULT_BATCH_COST if cost is None else cost

    def finalize(self, matches: Sequence[MatchResult], processing_time_ms: float) -> ProcessingMetrics:
        counts = {"high": 0, "medium": 0, "low": 0, "none": 0}
        for m in matches:
            counts[confidence_bucket(m.confidence)] += 1
        average = sum(m.confidence for m in matches) / len(matches) if matches else 0.0
        return ProcessingMetrics(
            total_items=self.total_items,
            processed_items=len(matches),
            high_confidence_matches=counts["high"],
            medium_confidence_matches=counts["medium"],
            low_confidence_matches=counts["low"],
            no_matches=counts["none"],
            average_confidence=average,
            processing_time_ms=processing_time_ms,
            cache_hits=self.cache_hits,
            llm_calls=self.llm_calls,
            pattern_matches=self.pattern_matches,
            cost_estimate=self.cost_estimate,
        )


def _rate(count: int, total: int) -> float:
    return count / total if total > 0 else 0.0


def quality_score(metrics: ProcessingMetrics) -> int:
    """
    round_half_up(100 * (0.4*avg_confidence + 0.3*match_rate + 0.2*high_rate + 0.1*pattern_rate)).
    0 when there are no items; always an int in [0, 100].
    """
    total = metrics.total_items
    if total <= 0:
        return 0
    score = (
        metrics.average_confidence * QUALITY_WEIGHTS["average_confidence"]
        + _rate(total - metrics.no_matches, total) * QUALITY_WEIGHTS["match_rate"]
        + _rate(metrics.high_confidence_matches, total) * QUALITY_WEIGHTS["high_confidence_rate"]
        + _rate(metrics.pattern_matches, total) * QUALITY_WEIGHTS["pattern_usage_rate"]
    )
    # Half-up on .5 ties; the inner round drops float noise such as 54.49999999999999.
    return max(0, min(100, math.floor(round(score * 100, 6) + 0.5)))
