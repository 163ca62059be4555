"""
Bulk matching pipeline: invoices + estimates -> one MatchResult per invoice line item.

Stages (each only sees items the previous ones left unresolved):
  1. prioritize    ln(total)-based ordering
  2. patterns      learned description patterns
  3. cache         normalized description + price bucket
  4. collaborator  bounded-concurrency LLM batches
then pattern learning, metrics, quality score and recommendations.

bulk_match_invoices() never raises: a failure escaping the stages is returned as
BulkMatchingResult(success=False, fallback_used=True).
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Sequence

from core.interfaces import IMatchingCollaborator, IPatternPersistence, IPatternStore, IResultCache
from core.exceptions import PatternPersistenceError
from core.models import (
    BulkMatchingResult,
    BulkProcessingOptions,
    EstimateLineItem,
    Invoice,
    MatchResult,
    ProcessingMetrics,
)
from pipeline.batch_orchestrator import BatchOrchestrator
from pipeline.cache_stage import CacheStage
from pipeline.metrics import MetricsCollector, quality_score
from pipeline.pattern_learner import PatternLearner
from pipeline.pattern_matcher import PatternMatcher
from pipeline.prioritizer import prepare_line_items
from pipeline.recommendations import REVIEW_CONFIGURATION, generate_recommendations
from utils.logger import log_structured
from utils.pattern_persistence import NullPatternPersistence
from utils.pattern_store import InMemoryPatternStore
from utils.result_cache import InMemoryResultCache

logger = logging.getLogger(__name__)


class BulkMatchingPipeline:
    """
    Single entry point for bulk invoice-to-estimate matching.
    Collaborator, pattern store, result cache and persistence are injected; the caller owns
    their lifetime. Reuse one cache/store across calls to benefit from earlier runs.
    """

    def __init__(
        self,
        collaborator: IMatchingCollaborator,
        *,
        pattern_store: IPatternStore | None = None,
        result_cache: IResultCache | None = None,
        persistence: IPatternPersistence | None = None,
        options: BulkProcessingOptions | None = None,
    ) -> None:
        self._store = pattern_store if pattern_store is not None else InMemoryPatternStore()
        self._cache = result_cache if result_cache is not None else InMemoryResultCache()
        self._persistence = persistence if persistence is not None else NullPatternPersistence()
        self._options = options or BulkProcessingOptions()
        self._pattern_matcher = PatternMatcher(self._store)
        self._cache_stage = CacheStage(self._cache)
        self._orchestrator = BatchOrchestrator(collaborator, self._cache)
        self._learner = PatternLearner(self._store, self._persistence)
        self._load_patterns()

    @property
    def pattern_store(self) -> IPatternStore:
        return self._store

    @property
    def result_cache(self) -> IResultCache:
        return self._cache

    def _load_patterns(self) -> None:
        try:
            loaded = self._persistence.load()
        except PatternPersistenceError as e:
            logger.error("Pattern load failed; starting with %s in-memory patterns: %s", len(self._store), e)
            return
        for p in loaded:
            if self._store.get(p.id) is None:
                self._store.put(p)
        if loaded:
            logger.info("Pattern store ready with %s patterns", len(self._store))

    def bulk_match_invoices(
        self,
        invoices: Sequence[Invoice],
        estimates: Sequence[EstimateLineItem],
        project_id: str,
        options: BulkProcessingOptions | None = None,
    ) -> BulkMatchingResult:
        opts = options or self._options
        run_id = str(uuid.uuid4())
        start = time.perf_counter()
        collector = MetricsCollector()
        try:
            collector.total_items = sum(len(inv.line_items) for inv in invoices)
            logger.info(
                "Bulk matching run=%s project=%s invoices=%s items=%s estimates=%s",
                run_id,
                project_id,
                len(invoices),
                collector.total_items,
                len(estimates),
            )
            return self._run(invoices, estimates, opts, collector, run_id, start)
        except Exception as e:
            logger.exception("Bulk matching failed run=%s: %s", run_id, e)
            elapsed_ms = (time.perf_counter() - start) * 1000
            return BulkMatchingResult(
                success=False,
                matches=[],
                metrics=collector.finalize([], elapsed_ms),
                patterns=[],
                recommendations=[REVIEW_CONFIGURATION],
                quality_score=0,
                fallback_used=True,
                processing_time_ms=elapsed_ms,
                cost=collector.cost_estimate,
                error=str(e) or "Bulk matching failed",
                run_id=run_id,
            )

    def _run(
        self,
        invoices: Sequence[Invoice],
        estimates: Sequence[EstimateLineItem],
        opts: BulkProcessingOptions,
        collector: MetricsCollector,
        run_id: str,
        start: float,
    ) -> BulkMatchingResult:
        items = prepare_line_items(invoices, opts)

        pattern_results = self._pattern_matcher.apply(items, estimates)
        collector.pattern_matches += len(pattern_results)
        remaining = [p for p in items if p.id not in pattern_results]

        cache_results: dict[str, MatchResult] = {}
        if opts.enable_cache:
            cache_results = self._cache_stage.apply(remaining, estimates)
            collector.cache_hits += len(cache_results)
            remaining = [p for p in remaining if p.id not in cache_results]

        llm_results = self._orchestrator.process(remaining, estimates, opts, collector)

        combined = {**pattern_results, **cache_results, **llm_results}
        # Input order, not priority or completion order.
        matches = [combined[li.id] for inv in invoices for li in inv.line_items if li.id in combined]
        missing = len(items) - len(matches)
        if missing:
            logger.warning("run=%s: %s items ended without a result", run_id, missing)

        below = sum(1 for m in matches if m.confidence < opts.confidence_threshold)
        if below:
            logger.info(
                "run=%s: %s matches below advisory confidence threshold %.2f", run_id, below, opts.confidence_threshold
            )

        if opts.enable_pattern_learning:
            self._learner.learn(matches, invoices, estimates)

        elapsed_ms = (time.perf_counter() - start) * 1000
        metrics = collector.finalize(matches, elapsed_ms)
        score = quality_score(metrics)
        recommendations = generate_recommendations(metrics, matches)
        self._log_summary(run_id, metrics, score)
        return BulkMatchingResult(
            success=True,
            matches=matches,
            metrics=metrics,
            patterns=self._store.snapshot(),
            recommendations=recommendations,
            quality_score=score,
            fallback_used=False,
            processing_time_ms=elapsed_ms,
            cost=metrics.cost_estimate,
            run_id=run_id,
        )

    @staticmethod
    def _log_summary(run_id: str, metrics: ProcessingMetrics, score: int) -> None:
        log_structured(
            logger,
            logging.INFO,
            "Bulk matching complete",
            run_id=run_id,
            total_items=metrics.total_items,
            high=metrics.high_confidence_matches,
            no_match=metrics.no_matches,
            pattern_matches=metrics.pattern_matches,
            cache_hits=metrics.cache_hits,
            llm_calls=metrics.llm_calls,
            quality_score=score,
        )
