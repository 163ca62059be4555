"""String similarity helpers shared by the pattern matcher and the logic-based fallback."""

from __future__ import annotations

import re

_STOPWORDS = frozenset({"the", "and", "for", "with", "from", "inc", "ltd", "pty"})


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance (insert/delete/substitute, unit cost). Two-row DP."""
    if len(a) < len(b):
        a, b = b, a
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        cur = [i]
        for j, cb in enumerate(b, start=1):
            cur.append(min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + (ca != cb)))
        prev = cur
    return prev[-1]


def string_similarity(a: str, b: str) -> float:
    """
    Normalized Levenshtein similarity in [0, 1]: (max_len - distance) / max_len.
    Two empty strings are identical (1.0); one empty string scores 0.0.
    Case-sensitive; callers lower-case when they need to.
    """
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    longest = max(len(a), len(b))
    return (longest - levenshtein_distance(a, b)) / longest


def extract_keywords(description: str) -> list[str]:
    words = re.sub(r"[^\w\s]", " ", (description or "").lower()).split()
    return [w for w in words if len(w) > 2 and w not in _STOPWORDS]


def keyword_similarity(a: str, b: str) -> float:
    """Jaccard overlap of significant words."""
    ka, kb = set(extract_keywords(a)), set(extract_keywords(b))
    if not ka and not kb:
        return 1.0
    if not ka or not kb:
        return 0.0
    return len(ka & kb) / len(ka | kb)


def price_similarity(a: float, b: float) -> float:
    """1 - relative difference, floored at 0. Zero when the reference price is unknown."""
    if b <= 0:
        return 0.0
    return max(0.0, 1.0 - abs(a - b) / max(a, b))
