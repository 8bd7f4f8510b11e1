"""
Correction history endpoints.

GET /api/v1/corrections?start_date=&end_date=   → corrections whose error
    occurred in the date range, newest first
GET /api/v1/corrections/analytics?year=         → top agencies and nodes,
    longest corrections, per-month counts and the years available
"""

import sqlite3
from typing import Any

from fastapi import APIRouter, Depends, Query

from api.database import get_db
from api.models import CorrectionAnalyticsOut, CorrectionsResponse
from utils.database import query_to_dicts
from utils.query import build_corrections_where, validate_date_range

router = APIRouter(prefix="/corrections", tags=["corrections"])

_TOP_N = 5


@router.get(
    "",
    response_model=CorrectionsResponse,
    summary="Corrections in a date range",
    responses={400: {"description": "Missing or invalid dates"}},
)
def list_corrections(
    start_date: str | None = Query(None, description="Earliest error date (YYYY-MM-DD)"),
    end_date: str | None = Query(None, description="Latest error date (YYYY-MM-DD)"),
    agency_id: str | None = Query(None, description="Restrict to one agency"),
    title: int | None = Query(None, description="Restrict to one CFR title"),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict:
    """Return corrections whose error occurred between the two dates (inclusive)."""
    start, end = validate_date_range(start_date, end_date)
    where, params = build_corrections_where(
        start_date=start, end_date=end, agency_id=agency_id, title=title,
    )
    corrections = query_to_dicts(conn, f"""
        SELECT c.id, c.node_id, c.agency_id, c.title, c.error_occurred,
               c.error_corrected, c.correction_duration, c.corrective_action,
               n.citation, n.node_name, n.level_type, n.number,
               a.name AS agency_name
        FROM corrections c
        LEFT JOIN nodes n ON n.id = c.node_id
        LEFT JOIN agencies a ON a.id = c.agency_id
        {where}
        ORDER BY c.error_occurred DESC, c.id
    """, params)
    return {"corrections": corrections}


def _named_counts(conn: sqlite3.Connection, sql: str, params: list[Any]) -> list[dict[str, Any]]:
    return [{"name": r["name"], "count": r["count"]} for r in conn.execute(sql, params)]


@router.get(
    "/analytics",
    response_model=CorrectionAnalyticsOut,
    summary="Correction statistics",
)
def correction_analytics(
    year: int | None = Query(None, ge=1, le=9999, description="Restrict to errors that occurred in this year"),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict:
    """Return top agencies/nodes by corrections, the longest corrections and
    corrections per month, optionally for one year.
    """
    # Guard against FastAPI FieldInfo defaults when called directly from tests
    if not isinstance(year, int):
        year = None
    where, params = build_corrections_where(year=year)

    top_agencies = _named_counts(conn, f"""
        SELECT a.name AS name, COUNT(*) AS count
        FROM corrections c JOIN agencies a ON a.id = c.agency_id
        {where}
        GROUP BY a.id
        ORDER BY count DESC, a.name COLLATE NOCASE
        LIMIT {_TOP_N}
    """, params)

    top_nodes = _named_counts(conn, f"""
        SELECT COALESCE(n.node_name, n.citation, n.id) AS name, COUNT(*) AS count
        FROM corrections c JOIN nodes n ON n.id = c.node_id
        {where}
        GROUP BY n.id
        ORDER BY count DESC, name COLLATE NOCASE
        LIMIT {_TOP_N}
    """, params)

    longest = [
        {
            "duration": r["correction_duration"],
            "title": f"Title {r['title']}" if r["title"] is not None else "Unknown title",
        }
        for r in conn.execute(f"""
            SELECT c.correction_duration, c.title
            FROM corrections c
            {where + " AND" if where else "WHERE"} c.correction_duration IS NOT NULL
            ORDER BY c.correction_duration DESC, c.id
            LIMIT {_TOP_N}
        """, params)
    ]

    by_month = {
        r["month"]: r["count"]
        for r in conn.execute(f"""
            SELECT substr(c.error_occurred, 1, 7) AS month, COUNT(*) AS count
            FROM corrections c
            {where + " AND" if where else "WHERE"} c.error_occurred IS NOT NULL
            GROUP BY month
            ORDER BY month DESC
        """, params)
    }

    years = [
        int(r[0]) for r in conn.execute(
            "SELECT DISTINCT strftime('%Y', error_occurred) AS y FROM corrections "
            "WHERE error_occurred IS NOT NULL ORDER BY y DESC"
        ) if r[0]
    ]

    return {
        "year": year,
        "topAgencies": top_agencies,
        "topNodes": top_nodes,
        "longestCorrections": longest,
        "correctionsByMonth": by_month,
        "availableYears": years,
    }
