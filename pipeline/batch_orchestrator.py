"""
Batch orchestrator: items left after pattern/cache stages -> fixed-size batches -> matching collaborator.
At most max_concurrency collaborator calls are in flight (ThreadPoolExecutor worker pool).
Workers only call the collaborator; results, cache writes and metrics are applied on the
calling thread as futures complete, so shared state has a single writer.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Sequence

from core.interfaces import IMatchingCollaborator, IResultCache
from core.models import (
    MEDIUM_CONFIDENCE,
    BulkProcessingOptions,
    CollaboratorResult,
    EstimateLineItem,
    Invoice,
    MatchResult,
    PrioritizedItem,
)
from pipeline.metrics import MetricsCollector
from utils.result_cache import cache_key

logger = logging.getLogger(__name__)

BATCH_CONTEXT = "bulk-processing"
BATCH_FAILED = "Batch processing failed"
NOT_RETURNED = "No match found by LLM"


def partition(items: Sequence[PrioritizedItem], batch_size: int) -> list[list[PrioritizedItem]]:
    size = max(1, int(batch_size))
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def create_batch_invoices(batch: Sequence[PrioritizedItem]) -> list[Invoice]:
    """Regroup a batch's items under minimal copies of their source invoices (first-seen order)."""
    groups: dict[str, tuple[Invoice, list]] = {}
    for p in batch:
        groups.setdefault(p.invoice.id, (p.invoice, []))[1].append(p.item)
    return [
        Invoice(
            id=f"batch-{inv.id}",
            invoice_number=inv.invoice_number,
            supplier_name=inv.supplier_name,
            line_items=tuple(items),
        )
        for inv, items in groups.values()
    ]


def _failed_batch(batch: Sequence[PrioritizedItem]) -> dict[str, MatchResult]:
    return {p.id: MatchResult.no_match(p.id, BATCH_FAILED) for p in batch}


class BatchOrchestrator:
    """Dispatches batches to an injected collaborator; populates the injected result cache."""

    def __init__(self, collaborator: IMatchingCollaborator, cache: IResultCache) -> None:
        self._collaborator = collaborator
        self._cache = cache

    def _call(
        self,
        index: int,
        batch: list[PrioritizedItem],
        estimates: Sequence[EstimateLineItem],
    ) -> tuple[int, CollaboratorResult | None, Exception | None]:
        """Runs on a worker thread. Returns (index, result, error); never raises."""
        try:
            result = self._collaborator.match(create_batch_invoices(batch), estimates, BATCH_CONTEXT)
            return (index, result, None)
        except Exception as e:
            logger.exception("Batch %s failed (%s items): %s", index, len(batch), e)
            return (index, None, e)

    def process(
        self,
        items: Sequence[PrioritizedItem],
        estimates: Sequence[EstimateLineItem],
        options: BulkProcessingOptions,
        metrics: MetricsCollector,
    ) -> dict[str, MatchResult]:
        """Resolve every item: collaborator matches, or no-match results for failed/missing ones."""
        results: dict[str, MatchResult] = {}
        if not items:
            return results
        batches = partition(items, options.batch_size)
        workers = min(max(1, int(options.max_concurrency)), len(batches))
        logger.info(
            "Dispatching %s items in %s batches (batch_size=%s, max_concurrency=%s)",
            len(items),
            len(batches),
            options.batch_size,
            workers,
        )
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="match-batch") as executor:
            futures = [executor.submit(self._call, i, batch, estimates) for i, batch in enumerate(batches)]
            for future in as_completed(futures):
                index, outcome, error = future.result()
                batch = batches[index]
                if error is not None:
                    metrics.record_collaborator_call(success=False)
                    results.update(_failed_batch(batch))
                    continue
                metrics.record_collaborator_call(success=outcome.success, cost=outcome.cost)
                if not outcome.success:
                    logger.warning("Batch %s unsuccessful: %s", index, outcome.error or "no error given")
                    results.update(_failed_batch(batch))
                    continue
                results.update(self._record(batch, outcome, options))
        return results

    def _record(
        self,
        batch: Sequence[PrioritizedItem],
        outcome: CollaboratorResult,
        options: BulkProcessingOptions,
    ) -> dict[str, MatchResult]:
        by_id = {p.id: p for p in batch}
        recorded: dict[str, MatchResult] = {}
        for match in outcome.matches:
            item = by_id.get(match.invoice_line_item_id)
            if item is None:
                logger.warning("Collaborator returned unknown item id=%s; ignored", match.invoice_line_item_id)
                continue
            recorded[item.id] = match
            if options.enable_cache and match.estimate_line_item_id and match.confidence > MEDIUM_CONFIDENCE:
                self._cache.put(cache_key(item.description, item.total_price), match)
        for item_id in by_id.keys() - recorded.keys():
            recorded[item_id] = MatchResult.no_match(item_id, NOT_RETURNED)
        return recorded
