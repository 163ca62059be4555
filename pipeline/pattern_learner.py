"""
Pattern learner: turn high-confidence matches into reusable description patterns.
Numbers become wildcards and "<model|type|size|grade> <value>" becomes "<keyword> *",
so "10mm Steel Rebar" learns "*mm steel rebar" and later resolves "12mm Steel Rebar".
"""

from __future__ import annotations

import logging
import re
from typing import Sequence

from core.exceptions import PatternPersistenceError
from core.interfaces import IPatternPersistence, IPatternStore
from core.models import (
    EstimateLineItem,
    Invoice,
    InvoiceLineItem,
    MatchingPattern,
    MatchResult,
    MatchType,
    utc_now,
)

logger = logging.getLogger(__name__)

LEARN_CONFIDENCE = 0.8

_DIGITS = re.compile(r"\d+")
_VARIABLE_PART = re.compile(r"\b(model|type|size|grade)\s+\w+", re.IGNORECASE)


def extract_pattern(description: str) -> str:
    """Generalize a description: lower-case, digits -> *, variable attribute values -> *."""
    generalized = _DIGITS.sub("*", (description or "").lower())
    generalized = _VARIABLE_PART.sub(r"\1 *", generalized)
    return generalized.strip()


def pattern_key(supplier_name: str, invoice_pattern: str, estimate_pattern: str) -> str:
    return f"{supplier_name}:{invoice_pattern}:{estimate_pattern}"


class PatternLearner:
    """Creates/reinforces patterns in the store and hands the store to persistence after each pass."""

    def __init__(self, store: IPatternStore, persistence: IPatternPersistence) -> None:
        self._store = store
        self._persistence = persistence

    def learn(
        self,
        matches: Sequence[MatchResult],
        invoices: Sequence[Invoice],
        estimates: Sequence[EstimateLineItem],
    ) -> int:
        """Learn from matches; returns the number of patterns created or reinforced."""
        items: dict[str, tuple[InvoiceLineItem, Invoice]] = {
            li.id: (li, inv) for inv in invoices for li in inv.line_items
        }
        estimates_by_id = {e.id: e for e in estimates}
        touched = 0
        for match in matches:
            if (
                match.confidence <= LEARN_CONFIDENCE
                or not match.estimate_line_item_id
                or match.match_type is MatchType.NONE
            ):
                continue
            source = items.get(match.invoice_line_item_id)
            estimate = estimates_by_id.get(match.estimate_line_item_id)
            if source is None or estimate is None:
                continue
            item, invoice = source
            self._create_or_update(item, invoice, estimate, match.confidence)
            touched += 1
        if touched:
            self._save()
        return touched

    def _create_or_update(
        self,
        item: InvoiceLineItem,
        invoice: Invoice,
        estimate: EstimateLineItem,
        confidence: float,
    ) -> None:
        invoice_pattern = extract_pattern(item.description)
        estimate_pattern = extract_pattern(estimate.description)
        key = pattern_key(invoice.supplier_name, invoice_pattern, estimate_pattern)
        now = utc_now()
        existing = self._store.get(key)
        if existing is not None:
            existing.reinforce(confidence, now)
            self._store.put(existing)
            logger.debug("Reinforced pattern %s (usage=%s)", key, existing.usage_count)
            return
        self._store.put(
            MatchingPattern(
                id=key,
                invoice_description_pattern=invoice_pattern,
                estimate_description_pattern=estimate_pattern,
                supplier_name=invoice.supplier_name or None,
                trade_name=estimate.trade_name or None,
                confidence=confidence,
                usage_count=1,
                success_rate=1.0,
                created_at=now,
                last_used_at=now,
            )
        )
        logger.info("Learned pattern %s", key)

    def _save(self) -> None:
        try:
            self._persistence.save(self._store.snapshot())
        except PatternPersistenceError as e:
            logger.error("Pattern save failed; in-memory store stays authoritative: %s", e)
