"""Core layer: interfaces, models, exceptions."""

from core.interfaces import (
    ILLMProvider,
    IMatchingCollaborator,
    IPatternStore,
    IResultCache,
    IPatternPersistence,
)
from core.models import (
    LLMResponse,
    Invoice,
    InvoiceLineItem,
    EstimateLineItem,
    PrioritizedItem,
    MatchType,
    MatchResult,
    MatchingPattern,
    BulkProcessingOptions,
    ProcessingMetrics,
    CollaboratorResult,
    BulkMatchingResult,
)
from core.exceptions import (
    MatchingError,
    ConfigError,
    CollaboratorError,
    StructuredOutputError,
    PatternPersistenceError,
)

__all__ = [
    "ILLMProvider",
    "IMatchingCollaborator",
    "IPatternStore",
    "IResultCache",
    "IPatternPersistence",
    "LLMResponse",
    "Invoice",
    "InvoiceLineItem",
    "EstimateLineItem",
    "PrioritizedItem",
    "MatchType",
    "MatchResult",
    "MatchingPattern",
    "BulkProcessingOptions",
    "ProcessingMetrics",
    "CollaboratorResult",
    "BulkMatchingResult",
    "MatchingError",
    "ConfigError",
    "CollaboratorError",
    "StructuredOutputError",
    "PatternPersistenceError",
]
