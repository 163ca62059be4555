"""
Abstract interfaces for the matching pipeline.
Every external dependency is behind an interface; no stage depends on a concrete LLM, store or cache.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Sequence

from core.models import (
    CollaboratorResult,
    EstimateLineItem,
    Invoice,
    LLMResponse,
    MatchingPattern,
    MatchResult,
)


class ILLMProvider(ABC):
    """Abstract LLM provider: single prompt or chat messages."""

    @abstractmethod
    def generate(self, prompt: str, **kwargs: Any) -> LLMResponse:
        """Generate text from prompt. kwargs may include system, model, max_tokens, temperature."""
        ...

    @abstractmethod
    def chat(self, messages: list[dict[str, Any]], **kwargs: Any) -> str:
        """Chat completion; returns content string."""
        ...


class IMatchingCollaborator(ABC):
    """Single-shot matcher: invoices + estimates -> one MatchResult per invoice line item."""

    @abstractmethod
    def match(
        self,
        invoices: Sequence[Invoice],
        estimates: Sequence[EstimateLineItem],
        context: str,
    ) -> CollaboratorResult:
        """Match every line item of invoices against estimates. May raise on transport failure."""
        ...


class IPatternStore(ABC):
    """Keyed collection of learned patterns. Owned by the caller, injected into the pipeline."""

    @abstractmethod
    def get(self, key: str) -> MatchingPattern | None:
        ...

    @abstractmethod
    def put(self, pattern: MatchingPattern) -> None:
        """Insert or replace the pattern under pattern.id."""
        ...

    @abstractmethod
    def values(self) -> list[MatchingPattern]:
        """Live patterns in store order; callers may mutate usage fields."""
        ...

    @abstractmethod
    def snapshot(self) -> list[MatchingPattern]:
        """Detached copies of all patterns."""
        ...

    @abstractmethod
    def __len__(self) -> int:
        ...


class IResultCache(ABC):
    """Keyed collection of previously resolved matches."""

    @abstractmethod
    def get(self, key: str) -> MatchResult | None:
        ...

    @abstractmethod
    def put(self, key: str, result: MatchResult) -> None:
        ...

    @abstractmethod
    def snapshot(self) -> dict[str, MatchResult]:
        ...

    @abstractmethod
    def __len__(self) -> int:
        ...


class IPatternPersistence(ABC):
    """Durable home of the pattern store between processes."""

    @abstractmethod
    def load(self) -> list[MatchingPattern]:
        """Return stored patterns (empty list when nothing was saved yet)."""
        ...

    @abstractmethod
    def save(self, patterns: Sequence[MatchingPattern]) -> None:
        ...
