# nftmarket/services/search.py
"""
Approximate text matching for the search endpoints.

A match is kept when its best score over the given keys reaches
``SCORE_CUTOFF`` (0-100, rapidfuzz WRatio), which corresponds to the
0.3 normalized-distance threshold the frontend was tuned against.
Results come back best match first; ties keep input order.
"""
from typing import Any, Callable, Iterable, List, Sequence, Union

from rapidfuzz import fuzz, utils

SCORE_CUTOFF = 70.0

Key = Union[str, Callable[[Any], Any]]


def _field(item: Any, key: Key):
    if callable(key):
        return key(item)
    if isinstance(item, dict):
        return item.get(key)
    return getattr(item, key, None)


def score(query: str, item: Any, keys: Sequence[Key]) -> float:
    best = 0.0
    for key in keys:
        value = _field(item, key)
        if not value:
            continue
        best = max(best, fuzz.WRatio(query, str(value), processor=utils.default_process))
    return best


def fuzzy_filter(query: str, items: Iterable[Any], keys: Sequence[Key],
                 score_cutoff: float = SCORE_CUTOFF) -> List[Any]:
    """Return the items matching ``query``; a blank query matches everything."""
    items = list(items)
    if not query or not query.strip():
        return items
    scored = []
    for item in items:
        s = score(query, item, keys)
        if s >= score_cutoff:
            scored.append((s, item))
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [item for _, item in scored]
