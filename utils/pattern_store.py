"""In-memory pattern store. Insertion order is iteration order."""

from __future__ import annotations

import threading
from typing import Iterable

from core.interfaces import IPatternStore
from core.models import MatchingPattern


class InMemoryPatternStore(IPatternStore):
    """Dict-backed IPatternStore guarded by a lock; lifetime is the owner's."""

    def __init__(self, patterns: Iterable[MatchingPattern] = ()) -> None:
        self._patterns: dict[str, MatchingPattern] = {}
        self._lock = threading.RLock()
        for p in patterns:
            self.put(p)

    def get(self, key: str) -> MatchingPattern | None:
        with self._lock:
            return self._patterns.get(key)

    def put(self, pattern: MatchingPattern) -> None:
        with self._lock:
            self._patterns[pattern.id] = pattern

    def values(self) -> list[MatchingPattern]:
        with self._lock:
            return list(self._patterns.values())

    def snapshot(self) -> list[MatchingPattern]:
        with self._lock:
            return [p.copy() for p in self._patterns.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._patterns)
