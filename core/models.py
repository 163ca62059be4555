"""
Data models for the matching pipeline.
Uses dataclasses for DTOs; Pydantic schemas (LLM output, input documents) in core.schema.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from core.exceptions import ConfigError

HIGH_CONFIDENCE = 0.8
MEDIUM_CONFIDENCE = 0.5
LOW_CONFIDENCE = 0.3


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LLMResponse:
    """Structured response from an LLM provider."""

    text: str
    model: str = ""
    finish_reason: str = ""
    usage: dict[str, int] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InvoiceLineItem:
    """Single priced entry on a supplier invoice."""

    id: str
    description: str
    total_price: float = 0.0
    unit_price: float = 0.0
    quantity: float = 1.0
    category: str = ""  # MATERIAL | LABOR | EQUIPMENT | ...
    invoice_id: str = ""


@dataclass(frozen=True)
class Invoice:
    """Parsed supplier invoice with its ordered line items."""

    id: str
    invoice_number: str
    supplier_name: str
    line_items: tuple[InvoiceLineItem, ...] = ()


@dataclass(frozen=True)
class EstimateLineItem:
    """Line item of the project cost estimate, grouped under a trade."""

    id: str
    description: str
    trade_name: str = ""
    quantity: float = 0.0
    unit: str = ""
    material_cost_est: float = 0.0
    labor_cost_est: float = 0.0
    equipment_cost_est: float = 0.0

    @property
    def total_cost(self) -> float:
        return self.material_cost_est + self.labor_cost_est + self.equipment_cost_est


@dataclass(frozen=True)
class PrioritizedItem:
    """Invoice line item flattened out of its invoice, tagged with a processing priority."""

    item: InvoiceLineItem
    invoice: Invoice
    priority: float = 0.0

    @property
    def id(self) -> str:
        return self.item.id

    @property
    def description(self) -> str:
        return self.item.description

    @property
    def total_price(self) -> float:
        return self.item.total_price

    @property
    def supplier_name(self) -> str:
        return self.invoice.supplier_name

    @property
    def invoice_number(self) -> str:
        return self.invoice.invoice_number


# ---------------------------------------------------------------------------
# Match results
# ---------------------------------------------------------------------------


class MatchType(str, Enum):
    """Closed set of match kinds. NONE iff there is no estimate line item."""

    EXACT = "exact"
    PARTIAL = "partial"
    NONE = "none"


@dataclass(frozen=True)
class MatchResult:
    """Resolution of one invoice line item. Invariants checked once, here."""

    invoice_line_item_id: str
    estimate_line_item_id: str | None
    confidence: float
    reasoning: str
    match_type: MatchType

    def __post_init__(self) -> None:
        if not isinstance(self.match_type, MatchType):
            object.__setattr__(self, "match_type", MatchType(self.match_type))
        if math.isnan(self.confidence) or not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")
        if (self.estimate_line_item_id is None) != (self.match_type is MatchType.NONE):
            raise ValueError(
                f"match_type {self.match_type.value} is inconsistent with "
                f"estimate_line_item_id={self.estimate_line_item_id!r}"
            )

    @classmethod
    def create(
        cls,
        invoice_line_item_id: str,
        estimate_line_item_id: str | None,
        confidence: float,
        reasoning: str,
        hint: MatchType | None = None,
    ) -> MatchResult:
        """
        Build a result, deriving match_type from the estimate id.
        hint picks EXACT vs PARTIAL when an estimate is present; without one,
        confidence >= HIGH_CONFIDENCE means EXACT.
        """
        confidence = max(0.0, min(1.0, float(confidence)))
        if not estimate_line_item_id:
            return cls.no_match(invoice_line_item_id, reasoning, confidence)
        if hint is MatchType.EXACT or hint is MatchType.PARTIAL:
            match_type = hint
        else:
            match_type = MatchType.EXACT if confidence >= HIGH_CONFIDENCE else MatchType.PARTIAL
        return cls(invoice_line_item_id, estimate_line_item_id, confidence, reasoning, match_type)

    @classmethod
    def no_match(cls, invoice_line_item_id: str, reasoning: str, confidence: float = 0.0) -> MatchResult:
        return cls(invoice_line_item_id, None, confidence, reasoning, MatchType.NONE)

    def with_item(self, invoice_line_item_id: str, reasoning: str) -> MatchResult:
        """Copy for another invoice line item (used by cache hits)."""
        return replace(self, invoice_line_item_id=invoice_line_item_id, reasoning=reasoning)

    def to_dict(self) -> dict[str, Any]:
        return {
            "invoice_line_item_id": self.invoice_line_item_id,
            "estimate_line_item_id": self.estimate_line_item_id,
            "confidence": round(self.confidence, 4),
            "reasoning": self.reasoning,
            "match_type": self.match_type.value,
        }


@dataclass
class MatchingPattern:
    """Generalized description rule learned from a high-confidence match."""

    id: str
    invoice_description_pattern: str
    estimate_description_pattern: str
    supplier_name: str | None = None
    trade_name: str | None = None
    confidence: float = 0.0
    usage_count: int = 0
    success_rate: float = 1.0
    created_at: datetime = field(default_factory=utc_now)
    last_used_at: datetime = field(default_factory=utc_now)

    def mark_used(self, when: datetime | None = None) -> None:
        self.usage_count += 1
        self.last_used_at = when or utc_now()

    def reinforce(self, confidence: float, when: datetime | None = None) -> None:
        """Repeat sighting: keep the best confidence and smooth success rate toward 1.0."""
        self.confidence = max(self.confidence, confidence)
        self.success_rate = (self.success_rate + 1.0) / 2
        self.mark_used(when)

    def copy(self) -> MatchingPattern:
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "invoice_description_pattern": self.invoice_description_pattern,
            "estimate_description_pattern": self.estimate_description_pattern,
            "supplier_name": self.supplier_name,
            "trade_name": self.trade_name,
            "confidence": self.confidence,
            "usage_count": self.usage_count,
            "success_rate": self.success_rate,
            "created_at": self.created_at.isoformat(),
            "last_used_at": self.last_used_at.isoformat(),
        }


# ---------------------------------------------------------------------------
# Options, metrics and run results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BulkProcessingOptions:
    """Per-run knobs. confidence_threshold is advisory and never filters matches."""

    batch_size: int = 50
    max_concurrency: int = 3
    enable_pattern_learning: bool = True
    enable_cache: bool = True
    prioritize_high_value: bool = True
    confidence_threshold: float = 0.5

    def __post_init__(self) -> None:
        if int(self.batch_size) < 1:
            raise ConfigError(f"batch_size must be >= 1, got {self.batch_size}")
        if int(self.max_concurrency) < 1:
            raise ConfigError(f"max_concurrency must be >= 1, got {self.max_concurrency}")
        if not 0.0 <= float(self.confidence_threshold) <= 1.0:
            raise ConfigError(f"confidence_threshold must be within [0, 1], got {self.confidence_threshold}")

    def with_overrides(self, **overrides: Any) -> BulkProcessingOptions:
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


@dataclass(frozen=True)
class ProcessingMetrics:
    """Aggregate counters for one bulk run. Built once by MetricsCollector.finalize()."""

    total_items: int = 0
    processed_items: int = 0
    high_confidence_matches: int = 0
    medium_confidence_matches: int = 0
    low_confidence_matches: int = 0
    no_matches: int = 0
    average_confidence: float = 0.0
    processing_time_ms: float = 0.0
    cache_hits: int = 0
    llm_calls: int = 0
    pattern_matches: int = 0
    cost_estimate: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Export for logging/serialization."""
        return {
            "total_items": self.total_items,
            "processed_items": self.processed_items,
            "high_confidence_matches": self.high_confidence_matches,
            "medium_confidence_matches": self.medium_confidence_matches,
            "low_confidence_matches": self.low_confidence_matches,
            "no_matches": self.no_matches,
            "average_confidence": round(self.average_confidence, 4),
            "processing_time_ms": round(self.processing_time_ms, 2),
            "cache_hits": self.cache_hits,
            "llm_calls": self.llm_calls,
            "pattern_matches": self.pattern_matches,
            "cost_estimate": round(self.cost_estimate, 6),
        }


@dataclass
class CollaboratorResult:
    """Outcome of one matching collaborator call (one batch)."""

    success: bool
    matches: list[MatchResult] = field(default_factory=list)
    cost: float | None = None
    error: str | None = None
    fallback_used: bool = False


@dataclass
class BulkMatchingResult:
    """Final result of one bulk run (single public output of the pipeline)."""

    success: bool
    matches: list[MatchResult]
    metrics: ProcessingMetrics
    patterns: list[MatchingPattern] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    quality_score: int = 0
    fallback_used: bool = False
    processing_time_ms: float = 0.0
    cost: float = 0.0
    error: str | None = None
    run_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "success": self.success,
            "fallback_used": self.fallback_used,
            "error": self.error,
            "quality_score": self.quality_score,
            "processing_time_ms": round(self.processing_time_ms, 2),
            "cost": round(self.cost, 6),
            "metrics": self.metrics.to_dict(),
            "recommendations": list(self.recommendations),
            "matches": [m.to_dict() for m in self.matches],
            "patterns": [p.to_dict() for p in self.patterns],
        }
