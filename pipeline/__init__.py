"""Pipeline: staged bulk matching of invoice line items to estimate line items."""

from pipeline.matching_pipeline import BulkMatchingPipeline
from pipeline.batch_orchestrator import BatchOrchestrator
from pipeline.pattern_matcher import PatternMatcher
from pipeline.cache_stage import CacheStage
from pipeline.pattern_learner import PatternLearner, extract_pattern
from pipeline.prioritizer import prepare_line_items
from pipeline.metrics import MetricsCollector, quality_score
from pipeline.recommendations import generate_recommendations

__all__ = [
    "BulkMatchingPipeline",
    "BatchOrchestrator",
    "PatternMatcher",
    "CacheStage",
    "PatternLearner",
    "extract_pattern",
    "prepare_line_items",
    "MetricsCollector",
    "quality_score",
    "generate_recommendations",
]
