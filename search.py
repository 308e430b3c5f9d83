"""
Approximate text search over prompt rows.

Each key is scored with a partial-match ratio: the query is compared against
the best-aligned window of the field text, so a short query can match inside
a long body. A field counts as a hit when its similarity reaches
1 - threshold. Hits are ranked by the weighted similarity of all keys.
"""

from difflib import SequenceMatcher
from typing import Callable, Iterable, List, Sequence, Tuple

DEFAULT_THRESHOLD = 0.35


def similarity(query: str, text: str) -> float:
    q = query.strip().lower()
    t = (text or "").lower()
    if not q or not t:
        return 0.0
    if q in t:
        return 1.0
    if len(t) <= len(q):
        return SequenceMatcher(None, q, t, autojunk=False).ratio()

    best = 0.0
    matcher = SequenceMatcher(None, q, t, autojunk=False)
    for q_start, t_start, size in matcher.get_matching_blocks():
        if not size:
            continue
        start = max(0, t_start - q_start)
        window = t[start:start + len(q)]
        ratio = SequenceMatcher(None, q, window, autojunk=False).ratio()
        if ratio > best:
            best = ratio
    return best


def field_similarity(query: str, value) -> float:
    if value is None:
        return 0.0
    if isinstance(value, (list, tuple, set)):
        return max((similarity(query, str(v)) for v in value), default=0.0)
    return similarity(query, str(value))


class FuzzyIndex:
    def __init__(
        self,
        items: Iterable,
        keys: Sequence[Tuple[str, float]],
        threshold: float = DEFAULT_THRESHOLD,
        getter: Callable = getattr,
    ):
        self.items = list(items)
        self.keys = list(keys)
        self.threshold = threshold
        self._get = getter
        self._total_weight = sum(weight for _, weight in self.keys) or 1.0

    def score(self, item, query: str) -> float:
        """Weighted relevance in [0, 1]; 0 when no key is close enough."""
        cutoff = 1.0 - self.threshold
        total = 0.0
        hit = False
        for name, weight in self.keys:
            sim = field_similarity(query, self._get(item, name, None))
            if sim >= cutoff:
                hit = True
            total += weight * sim
        return total / self._total_weight if hit else 0.0

    def search(self, query: str) -> List:
        query = (query or "").strip()
        if not query:
            return list(self.items)
        scored = [(self.score(item, query), item) for item in self.items]
        hits = [(s, item) for s, item in scored if s > 0]
        hits.sort(key=lambda pair: pair[0], reverse=True)
        return [item for _, item in hits]
