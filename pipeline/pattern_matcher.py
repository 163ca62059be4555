"""
Pattern matcher: resolve items against learned patterns before any cache or LLM work.
Linear scan over the store per item; fine for hundreds of patterns.
"""

from __future__ import annotations

import logging
from typing import Sequence

from core.interfaces import IPatternStore
from core.models import EstimateLineItem, MatchingPattern, MatchResult, MatchType, PrioritizedItem, utc_now
from utils.similarity import string_similarity

logger = logging.getLogger(__name__)

WILDCARD = "*"
SIMILARITY_THRESHOLD = 0.8
MAX_PATTERN_CONFIDENCE = 0.95
EXACT_PATTERN_CONFIDENCE = 0.8


def matches_description(text: str, pattern: str) -> bool:
    """
    Case-insensitive description rule.
    With wildcards: every non-empty fragment occurs in text, in order.
    Without: text contains pattern, or normalized Levenshtein similarity > 0.8.
    """
    text = (text or "").lower()
    pattern = (pattern or "").lower()
    if WILDCARD in pattern:
        pos = 0
        for fragment in pattern.split(WILDCARD):
            if not fragment:
                continue
            found = text.find(fragment, pos)
            if found < 0:
                return False
            pos = found + len(fragment)
        return True
    return pattern in text or string_similarity(text, pattern) > SIMILARITY_THRESHOLD


def find_estimate(pattern: MatchingPattern, estimates: Sequence[EstimateLineItem]) -> EstimateLineItem | None:
    for est in estimates:
        if pattern.trade_name and est.trade_name != pattern.trade_name:
            continue
        if matches_description(est.description, pattern.estimate_description_pattern):
            return est
    return None


class PatternMatcher:
    """Applies the pattern store to unresolved items. Mutates pattern usage on hits."""

    def __init__(self, store: IPatternStore) -> None:
        self._store = store

    def apply(
        self,
        items: Sequence[PrioritizedItem],
        estimates: Sequence[EstimateLineItem],
    ) -> dict[str, MatchResult]:
        results: dict[str, MatchResult] = {}
        patterns = self._store.values()
        if not patterns:
            return results
        for item in items:
            for pattern in patterns:
                if not matches_description(item.description, pattern.invoice_description_pattern):
                    continue
                estimate = find_estimate(pattern, estimates)
                if estimate is None:
                    continue
                results[item.id] = MatchResult.create(
                    item.id,
                    estimate.id,
                    min(pattern.confidence, MAX_PATTERN_CONFIDENCE),
                    f"Pattern match: {pattern.invoice_description_pattern} -> {pattern.estimate_description_pattern}",
                    hint=MatchType.EXACT if pattern.confidence > EXACT_PATTERN_CONFIDENCE else MatchType.PARTIAL,
                )
                pattern.mark_used(utc_now())
                self._store.put(pattern)
                break
        logger.debug("Pattern matcher resolved %s/%s items", len(results), len(items))
        return results
