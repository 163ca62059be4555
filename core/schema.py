"""
Pydantic schemas for LLM match output, CLI input documents and persisted patterns.
Used by services/, utils/pattern_persistence and main.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from core.models import (
    EstimateLineItem,
    Invoice,
    InvoiceLineItem,
    MatchingPattern,
    MatchType,
    utc_now,
)


# ---------------------------------------------------------------------------
# LLM output
# ---------------------------------------------------------------------------

_MATCH_TYPE_ALIASES = {
    "exact": MatchType.EXACT,
    "partial": MatchType.PARTIAL,
    "conceptual": MatchType.PARTIAL,
    "none": MatchType.NONE,
}


class LLMMatchSchema(BaseModel):
    """One match as returned by the LLM. Accepts camelCase keys from the prompt contract."""

    invoice_line_item_id: str = Field(alias="invoiceLineItemId")
    estimate_line_item_id: str | None = Field(default=None, alias="estimateLineItemId")
    confidence: float = 0.0
    reasoning: str = ""
    match_type: MatchType = Field(default=MatchType.PARTIAL, alias="matchType")

    model_config = {"populate_by_name": True}

    @field_validator("invoice_line_item_id", mode="before")
    @classmethod
    def id_to_str(cls, v: Any) -> str:
        return str(v).strip() if v is not None else ""

    @field_validator("estimate_line_item_id", mode="before")
    @classmethod
    def blank_estimate_is_none(cls, v: Any) -> str | None:
        if v is None:
            return None
        s = str(v).strip()
        return None if s.lower() in ("", "null", "none") else s

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        try:
            f = float(v)
        except (TypeError, ValueError):
            return 0.0
        if f != f:
            return 0.0
        return max(0.0, min(1.0, f))

    @field_validator("reasoning", mode="before")
    @classmethod
    def reasoning_default(cls, v: Any) -> str:
        s = str(v).strip() if v is not None else ""
        return s or "LLM match without specific reasoning"

    @field_validator("match_type", mode="before")
    @classmethod
    def normalize_match_type(cls, v: Any) -> MatchType:
        if isinstance(v, MatchType):
            return v
        return _MATCH_TYPE_ALIASES.get(str(v or "").strip().lower(), MatchType.PARTIAL)


class LLMMatchResponseSchema(BaseModel):
    """Top-level LLM JSON object: {"matches": [...]}."""

    matches: list[dict[str, Any]]


# ---------------------------------------------------------------------------
# Input documents (CLI / API payloads)
# ---------------------------------------------------------------------------


class InvoiceLineItemSchema(BaseModel):
    id: str
    description: str = ""
    quantity: float = 1.0
    unit_price: float = Field(default=0.0, alias="unitPrice")
    total_price: float = Field(default=0.0, alias="totalPrice")
    category: str = ""

    model_config = {"populate_by_name": True}

    @field_validator("category")
    @classmethod
    def category_upper(cls, v: str) -> str:
        return (v or "").strip().upper()


class InvoiceSchema(BaseModel):
    id: str
    invoice_number: str = Field(default="", alias="invoiceNumber")
    supplier_name: str = Field(default="", alias="supplierName")
    line_items: list[InvoiceLineItemSchema] = Field(default_factory=list, alias="lineItems")

    model_config = {"populate_by_name": True}

    def to_model(self) -> Invoice:
        return Invoice(
            id=self.id,
            invoice_number=self.invoice_number,
            supplier_name=self.supplier_name,
            line_items=tuple(
                InvoiceLineItem(
                    id=li.id,
                    description=li.description,
                    total_price=li.total_price,
                    unit_price=li.unit_price,
                    quantity=li.quantity,
                    category=li.category,
                    invoice_id=self.id,
                )
                for li in self.line_items
            ),
        )


class EstimateLineItemSchema(BaseModel):
    id: str
    description: str = ""
    trade_name: str = Field(default="", alias="tradeName")
    quantity: float = 0.0
    unit: str = ""
    material_cost_est: float = Field(default=0.0, alias="materialCostEst")
    labor_cost_est: float = Field(default=0.0, alias="laborCostEst")
    equipment_cost_est: float = Field(default=0.0, alias="equipmentCostEst")

    model_config = {"populate_by_name": True}

    def to_model(self) -> EstimateLineItem:
        return EstimateLineItem(**self.model_dump())


class MatchingInputSchema(BaseModel):
    """Payload of one bulk matching request."""

    project_id: str = Field(default="", alias="projectId")
    invoices: list[InvoiceSchema] = Field(default_factory=list)
    estimates: list[EstimateLineItemSchema] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    def to_models(self) -> tuple[list[Invoice], list[EstimateLineItem]]:
        return [i.to_model() for i in self.invoices], [e.to_model() for e in self.estimates]


# ---------------------------------------------------------------------------
# Persisted patterns
# ---------------------------------------------------------------------------


class MatchingPatternSchema(BaseModel):
    id: str
    invoice_description_pattern: str
    estimate_description_pattern: str
    supplier_name: str | None = None
    trade_name: str | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    usage_count: int = Field(default=0, ge=0)
    success_rate: float = Field(default=1.0, ge=0.0, le=1.0)
    created_at: datetime = Field(default_factory=utc_now)
    last_used_at: datetime = Field(default_factory=utc_now)

    def to_model(self) -> MatchingPattern:
        return MatchingPattern(**self.model_dump())

    @classmethod
    def from_model(cls, pattern: MatchingPattern) -> MatchingPatternSchema:
        return cls(**pattern.to_dict())
