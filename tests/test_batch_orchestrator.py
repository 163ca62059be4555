"""
Unit tests for the batch orchestrator: partitioning, failure handling, cache writes and bounded concurrency.
"""

from __future__ import annotations

from core.models import BulkProcessingOptions, CollaboratorResult, MatchType
from pipeline.batch_orchestrator import (
    BATCH_FAILED,
    NOT_RETURNED,
    BatchOrchestrator,
    create_batch_invoices,
    partition,
)
from pipeline.metrics import DEFAULT_BATCH_COST, MetricsCollector
from pipeline.prioritizer import prepare_line_items
from utils.result_cache import InMemoryResultCache, cache_key

from fakes import (
    ConcurrencyTrackingCollaborator,
    RaisingCollaborator,
    ScriptedCollaborator,
    make_estimate,
    make_invoice,
)

ESTIMATES = [make_estimate("e1", "Steel Rebar 10mm"), make_estimate("e2", "Concrete 32MPa")]


def _items(*invoices, prioritize: bool = False):
    return prepare_line_items(list(invoices), BulkProcessingOptions(prioritize_high_value=prioritize))


def test_partition_preserves_order() -> None:
    inv = make_invoice("inv1", [(f"i{n}", f"item {n}", 10.0) for n in range(7)])
    batches = partition(_items(inv), 3)
    assert [[p.id for p in b] for b in batches] == [["i0", "i1", "i2"], ["i3", "i4", "i5"], ["i6"]]


def test_create_batch_invoices_groups_by_source_invoice() -> None:
    a = make_invoice("A", [("a1", "x", 1.0), ("a2", "y", 1.0)], supplier="Alpha", number="INV-9")
    b = make_invoice("B", [("b1", "z", 1.0)], supplier="Beta")
    batch = [p for p in _items(a, b) if p.id in ("a2", "b1")]

    synthetic = create_batch_invoices(batch)

    assert [i.id for i in synthetic] == ["batch-A", "batch-B"]
    assert synthetic[0].invoice_number == "INV-9"
    assert synthetic[0].supplier_name == "Alpha"
    assert [li.id for li in synthetic[0].line_items] == ["a2"]


def test_successful_batch_records_matches_and_caches_confident_ones() -> None:
    inv = make_invoice("inv1", [("i1", "10mm Steel Rebar", 500.0), ("i2", "Concrete", 900.0), ("i3", "Misc", 5.0)])
    collaborator = ScriptedCollaborator({"i1": ("e1", 0.9), "i2": ("e2", 0.5)}, cost=0.02)
    cache = InMemoryResultCache()
    metrics = MetricsCollector(total_items=3)

    results = BatchOrchestrator(collaborator, cache).process(_items(inv), ESTIMATES, BulkProcessingOptions(), metrics)

    assert results["i1"].estimate_line_item_id == "e1"
    assert results["i2"].confidence == 0.5
    assert results["i3"].match_type is MatchType.NONE
    assert results["i3"].reasoning == NOT_RETURNED
    # Only confidence > 0.5 with an estimate is cached.
    assert cache.get(cache_key("10mm Steel Rebar", 500.0)).estimate_line_item_id == "e1"
    assert cache.get(cache_key("Concrete", 900.0)) is None
    assert metrics.llm_calls == 1
    assert metrics.cost_estimate == 0.02


def test_cache_not_written_when_disabled() -> None:
    inv = make_invoice("inv1", [("i1", "10mm Steel Rebar", 500.0)])
    cache = InMemoryResultCache()
    BatchOrchestrator(ScriptedCollaborator({"i1": ("e1", 0.9)}), cache).process(
        _items(inv), ESTIMATES, BulkProcessingOptions(enable_cache=False), MetricsCollector()
    )
    assert len(cache) == 0


def test_batch_exception_downgrades_every_item() -> None:
    inv = make_invoice("inv1", [("i1", "a", 1.0), ("i2", "b", 2.0), ("i3", "c", 3.0)])
    metrics = MetricsCollector(total_items=3)

    results = BatchOrchestrator(RaisingCollaborator(), InMemoryResultCache()).process(
        _items(inv), ESTIMATES, BulkProcessingOptions(), metrics
    )

    assert len(results) == 3
    for r in results.values():
        assert r.estimate_line_item_id is None
        assert r.confidence == 0.0
        assert r.match_type is MatchType.NONE
        assert r.reasoning == BATCH_FAILED
    assert metrics.cost_estimate == 0.0


def test_unsuccessful_result_is_treated_as_failed_batch() -> None:
    class Unsuccessful(ScriptedCollaborator):
        def match(self, invoices, estimates, context):
            return CollaboratorResult(success=False, error="quota exceeded")

    inv = make_invoice("inv1", [("i1", "a", 1.0)])
    results = BatchOrchestrator(Unsuccessful(), InMemoryResultCache()).process(
        _items(inv), ESTIMATES, BulkProcessingOptions(), MetricsCollector()
    )
    assert results["i1"].reasoning == BATCH_FAILED


def test_one_failed_batch_does_not_stop_the_others() -> None:
    class FailSecond(ScriptedCollaborator):
        def match(self, invoices, estimates, context):
            if any(li.id == "i2" for inv in invoices for li in inv.line_items):
                raise TimeoutError("slow LLM")
            return super().match(invoices, estimates, context)

    inv = make_invoice("inv1", [("i1", "a", 1.0), ("i2", "b", 1.0), ("i3", "c", 1.0)])
    metrics = MetricsCollector()
    results = BatchOrchestrator(FailSecond({"i1": ("e1", 0.9), "i3": ("e2", 0.8)}), InMemoryResultCache()).process(
        _items(inv), ESTIMATES, BulkProcessingOptions(batch_size=1), metrics
    )
    assert results["i1"].estimate_line_item_id == "e1"
    assert results["i2"].reasoning == BATCH_FAILED
    assert results["i3"].estimate_line_item_id == "e2"
    assert metrics.llm_calls == 3
    assert metrics.cost_estimate == 2 * DEFAULT_BATCH_COST


def test_unknown_item_ids_from_collaborator_are_ignored() -> None:
    class Chatty(ScriptedCollaborator):
        def match(self, invoices, estimates, context):
            result = super().match(invoices, estimates, context)
            result.matches.append(result.matches[0].with_item("ghost", "made up"))
            return result

    inv = make_invoice("inv1", [("i1", "a", 1.0)])
    results = BatchOrchestrator(Chatty({"i1": ("e1", 0.9)}), InMemoryResultCache()).process(
        _items(inv), ESTIMATES, BulkProcessingOptions(), MetricsCollector()
    )
    assert set(results) == {"i1"}


def test_concurrency_is_bounded_by_max_concurrency() -> None:
    inv = make_invoice("inv1", [(f"i{n}", f"item {n}", 10.0) for n in range(12)])
    tracker = ConcurrencyTrackingCollaborator(delay_sec=0.05)

    results = BatchOrchestrator(tracker, InMemoryResultCache()).process(
        _items(inv), ESTIMATES, BulkProcessingOptions(batch_size=2, max_concurrency=2), MetricsCollector()
    )

    assert len(results) == 12
    assert tracker.calls == 6
    assert 1 <= tracker.peak <= 2


def test_single_worker_runs_batches_one_at_a_time() -> None:
    inv = make_invoice("inv1", [(f"i{n}", f"item {n}", 10.0) for n in range(4)])
    tracker = ConcurrencyTrackingCollaborator(delay_sec=0.01)
    BatchOrchestrator(tracker, InMemoryResultCache()).process(
        _items(inv), ESTIMATES, BulkProcessingOptions(batch_size=1, max_concurrency=1), MetricsCollector()
    )
    assert tracker.peak == 1


def test_no_items_means_no_calls() -> None:
    collaborator = ScriptedCollaborator()
    assert BatchOrchestrator(collaborator, InMemoryResultCache()).process(
        [], ESTIMATES, BulkProcessingOptions(), MetricsCollector()
    ) == {}
    assert collaborator.calls == []


def test_partition_follows_prioritized_order() -> None:
    inv = make_invoice(
        "inv1",
        [("small", "washers", 5.0), ("large", "crane hire", 5000.0), ("medium", "lumber", 300.0), ("tiny", "nails", 1.0)],
    )
    batches = partition(_items(inv, prioritize=True), 2)
    assert [[p.id for p in b] for b in batches] == [["large", "medium"], ["small", "tiny"]]
