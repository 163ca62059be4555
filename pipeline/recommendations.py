"""Recommendation engine: advisory strings derived from run metrics and matches. No side effects."""

from __future__ import annotations

from typing import Sequence

from core.models import MEDIUM_CONFIDENCE, MatchResult, ProcessingMetrics

LOW_CONFIDENCE_RATE_LIMIT = 0.3
NO_MATCH_RATE_LIMIT = 0.2
PATTERN_RATE_FLOOR = 0.1
AVERAGE_CONFIDENCE_FLOOR = 0.6

IMPROVE_DESCRIPTIONS = "Consider improving estimate descriptions for better matching accuracy"
REVIEW_UNMATCHED = "Review unmatchable items - they may indicate missing estimates or new project scope"
ENABLE_LEARNING = "Enable pattern learning to improve future matching performance"
MANUAL_REVIEW = "Consider manual review of matches before applying to project"
REVIEW_CONFIGURATION = "Review system configuration and try again"


def find_duplicate_matches(matches: Sequence[MatchResult]) -> dict[str, list[str]]:
    """Estimate id -> invoice line item ids, for estimates claimed (confidence > 0.5) by more than one item."""
    usage: dict[str, list[str]] = {}
    for m in matches:
        if m.estimate_line_item_id and m.confidence > MEDIUM_CONFIDENCE:
            usage.setdefault(m.estimate_line_item_id, []).append(m.invoice_line_item_id)
    return {est: ids for est, ids in usage.items() if len(ids) > 1}


def generate_recommendations(metrics: ProcessingMetrics, matches: Sequence[MatchResult]) -> list[str]:
    recommendations: list[str] = []
    total = max(metrics.total_items, 1)

    if metrics.low_confidence_matches / total > LOW_CONFIDENCE_RATE_LIMIT:
        recommendations.append(IMPROVE_DESCRIPTIONS)
    if metrics.no_matches / total > NO_MATCH_RATE_LIMIT:
        recommendations.append(REVIEW_UNMATCHED)
    if metrics.pattern_matches / total < PATTERN_RATE_FLOOR:
        recommendations.append(ENABLE_LEARNING)
    if metrics.average_confidence < AVERAGE_CONFIDENCE_FLOOR:
        recommendations.append(MANUAL_REVIEW)

    for estimate_id, invoice_ids in find_duplicate_matches(matches).items():
        recommendations.append(
            f"Estimate {estimate_id} matched to {len(invoice_ids)} invoice line items - review for duplicate billing"
        )
    return recommendations
