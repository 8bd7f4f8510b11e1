"""Merge exact-match and full-text search hits into one ranked list.

The store does the matching; this module only combines the two result sets:
exact hits keep their order and come first, full-text hits follow in their
own (BM25) order, every id appears once, and the list is cut at a ceiling.
"""

from typing import Any, Iterable

EXACT = "exact"
FULLTEXT = "fulltext"


def merge_ranked(
    exact: Iterable[dict[str, Any]],
    fuzzy: Iterable[dict[str, Any]],
    limit: int,
    key: str = "id",
) -> list[dict[str, Any]]:
    """Merge two hit lists by unique *key*, exact matches ranked first.

    Args:
        exact: Exact-match hits, best first.
        fuzzy: Full-text hits, best first.
        limit: Maximum number of merged results (0 or less gives []).
        key: Field holding each hit's unique identifier.

    Returns:
        New dicts (inputs are not modified) with ``match_type`` set to
        ``"exact"`` or ``"fulltext"``.
    """
    merged: list[dict[str, Any]] = []
    if limit <= 0:
        return merged
    seen: set[Any] = set()
    for match_type, hits in ((EXACT, exact), (FULLTEXT, fuzzy)):
        for hit in hits:
            ident = hit[key]
            if ident in seen:
                continue
            seen.add(ident)
            merged.append({**hit, "match_type": match_type})
            if len(merged) >= limit:
                return merged
    return merged
