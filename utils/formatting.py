"""Text formatting utilities for search results.

Provides:
- truncate_text: cut text to a maximum length with a suffix
- extract_snippet: context window around the first matching term
- highlight_terms: wrap matched terms in markers
- highlighted_snippet: snippet with terms highlighted, ellipses left bare
"""

import re
from typing import List


def truncate_text(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """Truncate text to max length with suffix.

    Examples:
        truncate_text("Regulations of the Government Accountability Office", 20)
        -> "Regulations of th..."
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix


def _snippet_bounds(text: str, query_terms: List[str], context_chars: int):
    """Return the (start, end) window around the earliest term, or None."""
    text_lower = text.lower()
    best_pos = -1
    for term in query_terms:
        pos = text_lower.find(term.lower())
        if pos != -1 and (best_pos == -1 or pos < best_pos):
            best_pos = pos
    if best_pos == -1:
        return None
    return max(0, best_pos - context_chars), min(len(text), best_pos + context_chars)


def extract_snippet(text: str, query_terms: List[str], context_chars: int = 80,
                    max_length: int = 300) -> str:
    """Extract text snippet around query terms with context.

    Finds the first occurrence of any query term and extracts a snippet
    with surrounding context.  Without a match the start of the text is
    returned.

    Args:
        text: Full text to extract from
        query_terms: List of terms to search for
        context_chars: Characters of context before/after term
        max_length: Maximum snippet length

    Returns:
        Snippet string with ellipsis if truncated

    Examples:
        extract_snippet("A bid protest must be filed within 10 days",
                        ["protest"], 10, 50)
        -> "A bid protest mu..."
    """
    if not text or not query_terms:
        return truncate_text(text or "", max_length)

    bounds = _snippet_bounds(text, query_terms, context_chars)
    if bounds is None:
        return truncate_text(text, max_length)
    start, end = bounds

    snippet = text[start:end].strip()

    if start > 0:
        snippet = "..." + snippet
    if end < len(text):
        snippet = snippet + "..."

    return truncate_text(snippet, max_length, "...")


def highlight_terms(text: str, terms: List[str], open_marker: str = "<mark>",
                    close_marker: str = "</mark>") -> str:
    """Highlight search terms in text.

    Case-insensitive, preserves original case, and matches all terms in one
    pass so a marker is never highlighted again.

    Examples:
        highlight_terms("Bid protest rules", ["protest"])
        -> "Bid <mark>protest</mark> rules"
    """
    terms = [t for t in terms if t]
    if not text or not terms:
        return text
    # Longest first so "protests" wins over "protest"
    alternatives = sorted({re.escape(t) for t in terms}, key=len, reverse=True)
    pattern = re.compile("|".join(alternatives), re.IGNORECASE)
    return pattern.sub(lambda m: f"{open_marker}{m.group(0)}{close_marker}", text)


def highlighted_snippet(text: str, terms: List[str], context_chars: int = 80,
                        max_length: int = 300, open_marker: str = "<mark>",
                        close_marker: str = "</mark>") -> str:
    """Snippet around the first matching term with the terms highlighted.

    Markers are applied to the excerpt before the ellipses are attached, so
    an ellipsis is never highlighted and a marker is never cut in half.
    ``max_length`` bounds the text before markup.
    """
    text = text or ""
    terms = [t for t in terms if t]
    bounds = _snippet_bounds(text, terms, context_chars) if terms else None
    if bounds is None:
        core, prefix, suffix = text, "", ""
    else:
        start, end = bounds
        core = text[start:end].strip()
        prefix = "..." if start > 0 else ""
        suffix = "..." if end < len(text) else ""
    room = max_length - len(prefix) - len(suffix)
    if len(core) > room:
        suffix = "..."
        core = core[:max(0, max_length - len(prefix) - len(suffix))]
    return prefix + highlight_terms(core, terms, open_marker, close_marker) + suffix
