"""String processing utilities for eCFR Analyzer tools."""

from utils.patterns import FTS5_SPECIAL_CHARS, PATH_SEGMENT, SEARCHABLE_TERM, WHITESPACE


def normalize_whitespace(s: str) -> str:
    """Normalize multiple whitespace characters to single spaces.

    Example:
        "Bid   Protest\\n  Regulations" -> "Bid Protest Regulations"
    """
    return WHITESPACE.sub(' ', s).strip()


def sanitize_fts5_query(query: str) -> str:
    """Sanitize user input for safe use in SQLite FTS5 MATCH expressions.

    FTS5 has special operators (AND, OR, NOT, NEAR) and special characters
    that interfere with simple literal search. This function:
    1. Strips FTS5 operator characters
    2. Removes FTS5 boolean keywords and punctuation-only terms
    3. Wraps terms in quotes for literal matching
    4. Joins with OR for broad matching

    Example:
        'bid protest filing' -> '"bid" OR "protest" OR "filing"'
        'agency "NOT" (records)' -> '"agency" OR "records"'

    Args:
        query: Raw user search query

    Returns:
        Sanitized FTS5 query string, or "" when nothing searchable is left
    """
    fts5_keywords = {"AND", "OR", "NOT", "NEAR"}

    cleaned = FTS5_SPECIAL_CHARS.sub(" ", query)
    terms = [t for t in cleaned.split()
             if t.upper() not in fts5_keywords and SEARCHABLE_TERM.search(t)]
    if not terms:
        return ""
    return " OR ".join(f'"{t}"' for t in terms)


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so *value* matches literally (use ESCAPE '\\')."""
    return (
        value.replace("\\", "\\\\")
        .replace("%", "\\%")
        .replace("_", "\\_")
    )


def normalize_regulation_path(path: str) -> str:
    """Normalize a browse path into the stored ``link`` form.

    Accepts "title=4/chapter=I", "/browse/title=4/chapter=I/" and similar,
    and returns "/title=4/chapter=I".

    Raises:
        ValueError: If the path is empty or a segment is not ``type=number``.
    """
    segments = [s for s in path.strip().split("/") if s]
    if segments and segments[0] == "browse":
        segments = segments[1:]
    if not segments:
        raise ValueError("Path must contain at least one segment")
    for seg in segments:
        if not PATH_SEGMENT.match(seg):
            raise ValueError(f"Invalid path segment: '{seg}'")
    return "/" + "/".join(segments)
