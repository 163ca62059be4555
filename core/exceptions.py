"""Custom exceptions for the invoice matching pipeline. No generic Exception usage."""

from __future__ import annotations


class MatchingError(Exception):
    """Base exception for matching pipeline failures."""

    def __init__(self, message: str, trace_id: str | None = None) -> None:
        self.trace_id = trace_id or ""
        super().__init__(message)


class ConfigError(MatchingError):
    """Invalid or missing configuration."""

    pass


class CollaboratorError(MatchingError):
    """Matching collaborator (LLM call) failed."""

    pass


class StructuredOutputError(CollaboratorError):
    """LLM output could not be parsed as valid JSON/schema."""

    pass


class PatternPersistenceError(MatchingError):
    """Loading or saving learned patterns failed."""

    pass
