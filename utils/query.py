"""Shared SQL query builder utilities for eCFR Analyzer API routes.

Provides WHERE clause and ORDER BY construction used by the search,
agencies and corrections routes.  Values always travel as ``?`` parameters;
column names only ever come from allow-lists.
"""

from datetime import date
from typing import Any, Sequence

from utils.config import KnownValues
from utils.patterns import ISO_DATE


def placeholders(values: Sequence[Any]) -> str:
    """Return "?,?,?" with one placeholder per value."""
    return ",".join("?" * len(values))


def parse_iso_date(value: str, name: str) -> date:
    """Parse a YYYY-MM-DD query parameter.

    Raises:
        ValueError: If *value* is not a real calendar date in that form.
    """
    if not ISO_DATE.match(value or ""):
        raise ValueError(f"Invalid {name}: '{value}'. Expected YYYY-MM-DD.")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"Invalid {name}: '{value}'. {exc}") from exc


def validate_date_range(start_date: str | None, end_date: str | None) -> tuple[str, str]:
    """Validate a required start/end date pair.

    Returns:
        The two dates as ISO strings.

    Raises:
        ValueError: If either date is missing or malformed, or start is
            after end.
    """
    if not start_date or not end_date:
        raise ValueError("Both start_date and end_date are required")
    start = parse_iso_date(start_date, "start_date")
    end = parse_iso_date(end_date, "end_date")
    if start > end:
        raise ValueError("start_date must be on or before end_date")
    return start.isoformat(), end.isoformat()


def title_scope_clause(
    titles: list[int] | None, column: str = "n.link",
) -> tuple[str, list[Any]]:
    """Build a condition restricting nodes to the given CFR titles.

    A node is under title 4 when its link is "/title=4" or starts with
    "/title=4/".

    Returns:
        (condition, params); condition is "" when *titles* is empty.
    """
    if not titles:
        return "", []
    parts: list[str] = []
    params: list[Any] = []
    for title in titles:
        parts.append(f"({column} = ? OR {column} LIKE ?)")
        params.extend([f"/title={title}", f"/title={title}/%"])
    return "(" + " OR ".join(parts) + ")", params


def build_corrections_where(
    start_date: str | None = None,
    end_date: str | None = None,
    agency_id: str | None = None,
    title: int | None = None,
    node_id: str | None = None,
    year: int | None = None,
    alias: str = "c",
) -> tuple[str, list[Any]]:
    """Build a WHERE clause for the corrections table.

    Args:
        start_date: Earliest ``error_occurred`` date (inclusive, ISO).
        end_date: Latest ``error_occurred`` date (inclusive, ISO).
        agency_id: Restrict to one agency.
        title: Restrict to one CFR title number.
        node_id: Restrict to one node.
        year: Restrict to errors that occurred in this calendar year.
        alias: Table alias used in the query.

    Returns:
        Tuple of (where_clause_string, params_list). The where_clause_string
        starts with "WHERE " if any conditions exist, or is "" if none.
    """
    conditions: list[str] = []
    params: list[Any] = []

    if start_date:
        conditions.append(f"{alias}.error_occurred >= ?")
        params.append(start_date)

    if end_date:
        conditions.append(f"{alias}.error_occurred <= ?")
        params.append(end_date)

    if agency_id:
        conditions.append(f"{alias}.agency_id = ?")
        params.append(agency_id)

    if title is not None:
        conditions.append(f"{alias}.title = ?")
        params.append(title)

    if node_id:
        conditions.append(f"{alias}.node_id = ?")
        params.append(node_id)

    if year is not None:
        conditions.append(f"strftime('%Y', {alias}.error_occurred) = ?")
        params.append(f"{year:04d}")

    where = "WHERE " + " AND ".join(conditions) if conditions else ""
    return where, params


def build_order_clause(
    sort_by: str,
    sort_dir: str,
    allowed_sorts: set[str] | frozenset[str] | None = None,
    tiebreak: str | None = None,
) -> str:
    """Build a safe SQL ORDER BY clause.

    Args:
        sort_by: Column name to sort by.
        sort_dir: Direction: 'asc' or 'desc' (case-insensitive).
        allowed_sorts: Set of valid sort column names. Defaults to the
            agency listing columns.
        tiebreak: Optional column appended (ascending) to make the order total.

    Returns:
        ORDER BY clause string, e.g. "ORDER BY name ASC".

    Raises:
        ValueError: If *sort_by* or *sort_dir* is not allowed.
    """
    if allowed_sorts is None:
        allowed_sorts = KnownValues.AGENCY_SORT_COLUMNS
    if sort_by not in allowed_sorts:
        raise ValueError(
            f"Invalid sort_by: '{sort_by}'. "
            f"Must be one of: {', '.join(sorted(allowed_sorts))}"
        )
    if sort_dir.lower() not in ("asc", "desc"):
        raise ValueError(f"Invalid sort_dir: '{sort_dir}'. Must be 'asc' or 'desc'")
    direction = sort_dir.upper()
    clause = f"ORDER BY {sort_by} {direction}"
    if sort_by == "name":
        clause = f"ORDER BY name COLLATE NOCASE {direction}"
    if tiebreak and tiebreak != sort_by:
        clause += f", {tiebreak} ASC"
    return clause
