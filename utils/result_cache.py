"""
Match result cache.
Cache key: (normalized description + price bucket). Items with the same wording and a
total in the same 100-unit bucket share an entry; the collision is intentional.
"""

from __future__ import annotations

import logging
import math
import re
import threading

from core.interfaces import IResultCache
from core.models import MatchResult

logger = logging.getLogger(__name__)

PRICE_BUCKET = 100


def normalize_description(description: str) -> str:
    return re.sub(r"[^\w\s]", "", (description or "").lower()).strip()


def cache_key(description: str, price: float) -> str:
    """Stable key for description + price bucket, e.g. ('10mm Steel-Rebar', 512.5) -> '10mm steelrebar:500'."""
    price = price or 0.0
    if not math.isfinite(price):
        # NaN and infinite totals get their own bucket ("nan", "inf", "-inf").
        return f"{normalize_description(description)}:{str(price).lower()}"
    bucket = int(math.floor(price / PRICE_BUCKET) * PRICE_BUCKET)
    return f"{normalize_description(description)}:{bucket}"


class InMemoryResultCache(IResultCache):
    """Dict-backed IResultCache guarded by a lock. Share one instance across runs to reuse hits."""

    def __init__(self) -> None:
        self._entries: dict[str, MatchResult] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> MatchResult | None:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, result: MatchResult) -> None:
        with self._lock:
            self._entries[key] = result
        logger.debug("Cached match key=%s estimate=%s", key, result.estimate_line_item_id)

    def snapshot(self) -> dict[str, MatchResult]:
        with self._lock:
            return dict(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
