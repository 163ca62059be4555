"""Shared utilities: config, logger, retry, similarity, stores and persistence."""

from utils.config import AppConfig, LLMConfig, load_config
from utils.logger import setup_logging, log_structured
from utils.retry import with_retry
from utils.similarity import string_similarity
from utils.result_cache import InMemoryResultCache, cache_key
from utils.pattern_store import InMemoryPatternStore
from utils.pattern_persistence import JsonFilePatternPersistence, NullPatternPersistence

__all__ = [
    "AppConfig",
    "LLMConfig",
    "load_config",
    "setup_logging",
    "log_structured",
    "with_retry",
    "string_similarity",
    "InMemoryResultCache",
    "cache_key",
    "InMemoryPatternStore",
    "JsonFilePatternPersistence",
    "NullPatternPersistence",
]
