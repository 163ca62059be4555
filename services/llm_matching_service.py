"""
LLM matching service: the single-shot matching collaborator used per batch.
Invoices + estimates -> prompt -> injected ILLMProvider -> JSON -> validated MatchResults.
Falls back to deterministic logic-based scoring when the LLM call or its output fails.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Sequence

import requests
from pydantic import ValidationError as PydanticValidationError

from core.exceptions import CollaboratorError, StructuredOutputError
from core.interfaces import ILLMProvider, IMatchingCollaborator
from core.models import (
    HIGH_CONFIDENCE,
    CollaboratorResult,
    EstimateLineItem,
    Invoice,
    LLMResponse,
    MatchResult,
    MatchType,
)
from core.schema import LLMMatchResponseSchema, LLMMatchSchema
from prompts import matching_system_prompt
from utils.retry import with_retry
from utils.similarity import keyword_similarity, price_similarity, string_similarity

logger = logging.getLogger(__name__)

MIN_LOGIC_CONFIDENCE = 0.3


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


def build_matching_prompt(invoices: Sequence[Invoice], estimates: Sequence[EstimateLineItem]) -> str:
    invoice_data = [
        {
            "invoiceId": inv.id,
            "invoiceNumber": inv.invoice_number,
            "supplier": inv.supplier_name,
            "lineItems": [
                {
                    "id": li.id,
                    "description": li.description,
                    "quantity": li.quantity,
                    "unitPrice": li.unit_price,
                    "totalPrice": li.total_price,
                    "category": li.category,
                }
                for li in inv.line_items
            ],
        }
        for inv in invoices
    ]
    estimate_data = [
        {
            "id": est.id,
            "description": est.description,
            "tradeName": est.trade_name,
            "quantity": est.quantity,
            "unit": est.unit,
            "materialCost": est.material_cost_est,
            "laborCost": est.labor_cost_est,
            "equipmentCost": est.equipment_cost_est,
            "totalCost": est.total_cost,
        }
        for est in estimates
    ]
    parts = [
        "INVOICES TO MATCH:",
        json.dumps(invoice_data, indent=2),
        "",
        "PROJECT ESTIMATES:",
        json.dumps(estimate_data, indent=2),
    ]
    return "\n".join(parts)


# ---------------------------------------------------------------------------
# Output parsing
# ---------------------------------------------------------------------------


def _extract_json_object(text: str) -> str:
    """Extract the first {...} object from text (brace-balanced)."""
    start = text.find("{")
    if start < 0:
        return text
    depth = 0
    for i in range(start, len(text)):
        if text[i] == "{":
            depth += 1
        elif text[i] == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return text[start:]


def parse_llm_json(raw: str) -> dict[str, Any]:
    """
    Parse JSON from LLM response; strip markdown fences, trailing commas and surrounding prose.
    Raises StructuredOutputError on failure.
    """
    s = (raw or "").strip()
    m = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", s)
    if m:
        s = m.group(1).strip()
    s = _extract_json_object(s)
    s = re.sub(r",\s*}", "}", s)
    s = re.sub(r",\s*]", "]", s)
    try:
        data = json.loads(s)
    except json.JSONDecodeError as e:
        raise StructuredOutputError(f"Invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise StructuredOutputError("LLM response is not a JSON object")
    return data


def normalize_matches(
    data: dict[str, Any],
    invoices: Sequence[Invoice],
    estimates: Sequence[EstimateLineItem],
) -> list[MatchResult]:
    """
    Validate LLM matches against the request: unknown invoice items are dropped, unknown
    estimates become no-match, and items the LLM skipped get a no-match result.
    """
    try:
        response = LLMMatchResponseSchema.model_validate(data)
    except PydanticValidationError as e:
        raise StructuredOutputError("Invalid LLM response format - missing matches array") from e

    item_ids = [li.id for inv in invoices for li in inv.line_items]
    known_items = set(item_ids)
    estimate_ids = {e.id for e in estimates}
    results: dict[str, MatchResult] = {}

    for raw in response.matches:
        try:
            match = LLMMatchSchema.model_validate(raw)
        except PydanticValidationError as e:
            logger.warning("Skipping malformed LLM match %s: %s", raw, e)
            continue
        item_id = match.invoice_line_item_id
        if item_id not in known_items:
            logger.warning("Invalid invoice line item ID: %s", item_id)
            continue
        if item_id in results:
            continue
        estimate_id = match.estimate_line_item_id
        confidence = match.confidence
        if estimate_id and estimate_id not in estimate_ids:
            logger.warning("Invalid estimate line item ID: %s", estimate_id)
            estimate_id, confidence = None, 0.0
        if match.match_type is MatchType.NONE:
            estimate_id = None
        hint = match.match_type
        if hint is MatchType.EXACT and confidence < HIGH_CONFIDENCE:
            hint = MatchType.PARTIAL
        results[item_id] = MatchResult.create(item_id, estimate_id, confidence, match.reasoning, hint=hint)

    for item_id in item_ids:
        if item_id not in results:
            results[item_id] = MatchResult.no_match(item_id, "No match found by LLM")
    return [results[i] for i in item_ids]


# ---------------------------------------------------------------------------
# Logic-based fallback
# ---------------------------------------------------------------------------


def logic_based_matching(invoices: Sequence[Invoice], estimates: Sequence[EstimateLineItem]) -> list[MatchResult]:
    """
    Deterministic scoring per (item, estimate):
    0.4 * text similarity + 0.3 * keyword overlap + 0.2 * price alignment + 0.1 for MATERIAL.
    Best estimate above 0.3 wins.
    """
    matches: list[MatchResult] = []
    for inv in invoices:
        for item in inv.line_items:
            best = MatchResult.no_match(item.id, "No matching estimate found")
            for est in estimates:
                text_sim = string_similarity(item.description.lower().strip(), est.description.lower().strip())
                kw_sim = keyword_similarity(item.description, est.description)
                price_sim = price_similarity(item.total_price, est.total_cost)
                confidence = round(
                    text_sim * 0.4
                    + kw_sim * 0.3
                    + price_sim * 0.2
                    + (0.1 if item.category.upper() == "MATERIAL" else 0.0),
                    2,
                )
                if confidence > best.confidence and confidence > MIN_LOGIC_CONFIDENCE:
                    reasons = []
                    if text_sim > 0.5:
                        reasons.append("text similarity")
                    if kw_sim > 0.4:
                        reasons.append("semantic match")
                    if price_sim > 0.6:
                        reasons.append("price alignment")
                    best = MatchResult.create(
                        item.id,
                        est.id,
                        confidence,
                        "Logic-based match: " + ", ".join(reasons),
                        hint=MatchType.PARTIAL,
                    )
            matches.append(best)
    return matches


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class LLMMatchingService(IMatchingCollaborator):
    """Matching collaborator via injected provider. Low temperature for repeatable output."""

    def __init__(
        self,
        llm_provider: ILLMProvider,
        model: str = "",
        max_retries: int = 3,
        retry_delay_sec: float = 2.0,
        temperature: float = 0.1,
        max_tokens: int = 4096,
        cost_per_1k_input: float = 0.0,
        cost_per_1k_output: float = 0.0,
        enable_fallback: bool = True,
    ) -> None:
        self._llm = llm_provider
        self._model = model
        self._max_retries = max_retries
        self._retry_delay_sec = retry_delay_sec
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._cost_in = cost_per_1k_input
        self._cost_out = cost_per_1k_output
        self._enable_fallback = enable_fallback

    def _cost(self, response: LLMResponse) -> float | None:
        if not self._cost_in and not self._cost_out:
            return None
        return (
            response.usage.get("input_tokens", 0) * self._cost_in
            + response.usage.get("output_tokens", 0) * self._cost_out
        ) / 1000

    def _call_llm(self, invoices: Sequence[Invoice], estimates: Sequence[EstimateLineItem]) -> LLMResponse:
        prompt = build_matching_prompt(invoices, estimates)
        system = matching_system_prompt()
        kwargs: dict[str, Any] = {
            "system": system,
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
        }
        if self._model:
            kwargs["model"] = self._model
        try:
            return with_retry(
                lambda: self._llm.generate(prompt, **kwargs),
                max_attempts=self._max_retries,
                delay_sec=self._retry_delay_sec,
                retry_exceptions=(requests.RequestException,),
                label="Matching LLM request",
            )
        except requests.RequestException as e:
            raise CollaboratorError(f"Matching LLM failed: {e}") from e

    def match(
        self,
        invoices: Sequence[Invoice],
        estimates: Sequence[EstimateLineItem],
        context: str,
    ) -> CollaboratorResult:
        item_count = sum(len(inv.line_items) for inv in invoices)
        logger.debug("LLM matching context=%s items=%s estimates=%s", context, item_count, len(estimates))
        try:
            response = self._call_llm(invoices, estimates)
            matches = normalize_matches(parse_llm_json(response.text), invoices, estimates)
            return CollaboratorResult(success=True, matches=matches, cost=self._cost(response))
        except CollaboratorError as e:
            if not self._enable_fallback:
                raise
            logger.warning("LLM matching failed, falling back to logic-based matching: %s", e)
            llm_error = str(e)

        try:
            return CollaboratorResult(
                success=True,
                matches=logic_based_matching(invoices, estimates),
                fallback_used=True,
                error=llm_error,
            )
        except ValueError as e:
            logger.error("All matching methods failed: %s", e)
            return CollaboratorResult(
                success=True,
                matches=[
                    MatchResult.no_match(li.id, "Automatic matching failed - manual review required")
                    for inv in invoices
                    for li in inv.line_items
                ],
                fallback_used=True,
                error="All automatic matching failed, manual review required",
            )
