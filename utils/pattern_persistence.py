"""
Pattern persistence: where learned patterns live between processes.
JSON file store (one document, replaced atomically) and a log-only null store.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Sequence

from pydantic import ValidationError as PydanticValidationError

from core.exceptions import PatternPersistenceError
from core.interfaces import IPatternPersistence
from core.models import MatchingPattern
from core.schema import MatchingPatternSchema

logger = logging.getLogger(__name__)

PATTERNS_FORMAT_VERSION = 1


class NullPatternPersistence(IPatternPersistence):
    """Nothing is stored; save only logs. Patterns last as long as the process."""

    def load(self) -> list[MatchingPattern]:
        return []

    def save(self, patterns: Sequence[MatchingPattern]) -> None:
        logger.info("Saving %s learned patterns (not persisted)", len(patterns))


class JsonFilePatternPersistence(IPatternPersistence):
    """Patterns as a single JSON document at path. Invalid entries are skipped on load."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[MatchingPattern]:
        if not self._path.exists():
            return []
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            raise PatternPersistenceError(f"Cannot read patterns from {self._path}: {e}") from e
        if not isinstance(data, dict) or not isinstance(data.get("patterns"), list):
            raise PatternPersistenceError(f"Invalid patterns file: {self._path} (missing 'patterns' list)")
        patterns: list[MatchingPattern] = []
        for raw in data["patterns"]:
            try:
                patterns.append(MatchingPatternSchema.model_validate(raw).to_model())
            except PydanticValidationError as e:
                logger.warning("Skipping invalid pattern entry in %s: %s", self._path, e)
        logger.info("Loaded %s patterns from %s", len(patterns), self._path)
        return patterns

    def save(self, patterns: Sequence[MatchingPattern]) -> None:
        data = {
            "version": PATTERNS_FORMAT_VERSION,
            "patterns": [p.to_dict() for p in patterns],
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".patterns-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, self._path)
        except OSError as e:
            raise PatternPersistenceError(f"Cannot write patterns to {self._path}: {e}") from e
        logger.debug("Saved %s patterns to %s", len(patterns), self._path)
