"""Cache stage: reuse earlier resolutions for items with the same normalized description and price bucket."""

from __future__ import annotations

import logging
from typing import Sequence

from core.interfaces import IResultCache
from core.models import EstimateLineItem, MatchResult, PrioritizedItem
from utils.result_cache import cache_key

logger = logging.getLogger(__name__)

CACHED_SUFFIX = " (cached)"


class CacheStage:
    """Looks items up in the injected cache. Hits pointing at estimates no longer present are ignored."""

    def __init__(self, cache: IResultCache) -> None:
        self._cache = cache

    def apply(
        self,
        items: Sequence[PrioritizedItem],
        estimates: Sequence[EstimateLineItem],
    ) -> dict[str, MatchResult]:
        results: dict[str, MatchResult] = {}
        estimate_ids = {e.id for e in estimates}
        for item in items:
            cached = self._cache.get(cache_key(item.description, item.total_price))
            if cached is None:
                continue
            if cached.estimate_line_item_id not in estimate_ids:
                logger.debug(
                    "Stale cache entry for item=%s (estimate %s gone)", item.id, cached.estimate_line_item_id
                )
                continue
            results[item.id] = cached.with_item(item.id, f"{cached.reasoning}{CACHED_SUFFIX}")
        logger.debug("Cache stage resolved %s/%s items", len(results), len(items))
        return results
