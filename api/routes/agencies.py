"""
Agency endpoints.

GET /api/v1/agencies             → root agencies, sortable
GET /api/v1/agencies/analytics   → totals and top-5 lists
GET /api/v1/agencies/{id}        → agency, child agencies, referenced nodes, ancestors
"""

import json
import sqlite3
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from api.database import get_db
from api.models import AgencyAnalyticsOut, AgencyDetailOut, AgencyOut
from utils.database import query_to_dicts
from utils.query import build_order_clause

router = APIRouter(prefix="/agencies", tags=["agencies"])

_CACHE_HEADER = {"Cache-Control": "public, max-age=3600"}

# Upper bound on ancestor walks, guards against parent cycles in the store
_MAX_DEPTH = 32

_AGENCY_COLUMNS = (
    "id, parent_id, name, short_name, slug, num_cfr, num_children, "
    "num_sections, num_words, num_corrections"
)
_AGENCY_COLUMNS_A = ", ".join("a." + c.strip() for c in _AGENCY_COLUMNS.split(","))


def _top(conn: sqlite3.Connection, column: str, n: int = 5) -> list[dict[str, Any]]:
    """Top *n* agencies by a trusted numeric column, ties broken by name."""
    rows = conn.execute(
        f"SELECT name, {column} AS count FROM agencies "
        f"ORDER BY {column} DESC, name COLLATE NOCASE ASC LIMIT ?",
        (n,),
    ).fetchall()
    return [dict(r) for r in rows]


@router.get(
    "",
    response_model=list[AgencyOut],
    summary="List root agencies",
    responses={400: {"description": "Invalid sort parameter"}},
)
def list_agencies(
    sort_by: str = Query("name", description="name, num_cfr, num_children, num_sections, num_words or num_corrections"),
    sort_dir: str = Query("asc", description="asc or desc"),
    conn: sqlite3.Connection = Depends(get_db),
) -> JSONResponse:
    """Return top-level agencies (no parent)."""
    order = build_order_clause(sort_by, sort_dir, tiebreak="id")
    data = query_to_dicts(
        conn,
        f"SELECT {_AGENCY_COLUMNS} FROM agencies WHERE parent_id IS NULL {order}",
    )
    return JSONResponse(content=data, headers=_CACHE_HEADER)


@router.get(
    "/analytics",
    response_model=AgencyAnalyticsOut,
    summary="Agency totals and top-5 lists",
)
def agency_analytics(conn: sqlite3.Connection = Depends(get_db)) -> JSONResponse:
    """Return agency totals plus the top five by corrections and by sections."""
    row = conn.execute("""
        SELECT COUNT(*) AS total_agencies,
               COALESCE(SUM(num_sections), 0) AS total_sections,
               COALESCE(SUM(num_words), 0) AS total_words,
               COALESCE(SUM(num_corrections), 0) AS total_corrections
        FROM agencies
    """).fetchone()
    data = {
        "totalMetrics": {
            "totalAgencies": row["total_agencies"],
            "totalSections": row["total_sections"],
            "totalWords": row["total_words"],
            "totalCorrections": row["total_corrections"],
        },
        "topAgenciesByCorrections": _top(conn, "num_corrections"),
        "topAgenciesBySections": _top(conn, "num_sections"),
    }
    return JSONResponse(content=data, headers=_CACHE_HEADER)


@router.get(
    "/{agency_id}",
    response_model=AgencyDetailOut,
    summary="Agency detail",
    responses={404: {"description": "Agency not found"}},
)
def get_agency(
    agency_id: str,
    conn: sqlite3.Connection = Depends(get_db),
) -> dict:
    """Return one agency with its child agencies, referenced nodes and ancestors."""
    rows = query_to_dicts(
        conn, f"SELECT {_AGENCY_COLUMNS} FROM agencies WHERE id = ?", (agency_id,),
    )
    if not rows:
        raise HTTPException(status_code=404, detail="Agency not found")
    agency = rows[0]

    children = query_to_dicts(
        conn,
        f"SELECT {_AGENCY_COLUMNS} FROM agencies WHERE parent_id = ? AND id != ? "
        "ORDER BY name COLLATE NOCASE, id",
        (agency_id, agency_id),
    )

    nodes = query_to_dicts(conn, """
        SELECT n.id, n.parent, n.citation, n.link, n.node_type, n.level_type,
               n.number, n.node_name, n.depth, n.num_corrections, n.metadata
        FROM agency_node_mappings m
        JOIN nodes n ON n.id = m.node_id
        WHERE m.agency_id = ?
        ORDER BY n.depth, n.link, n.id
    """, (agency_id,))
    references = []
    for ordinal, node in enumerate(nodes):
        node["metadata"] = json.loads(node["metadata"]) if node["metadata"] else None
        references.append({
            "id": f"{agency_id}_{node['id']}",
            "agency_id": agency_id,
            "node_id": node["id"],
            "ordinal": ordinal,
            "node": node,
        })

    ancestors = query_to_dicts(conn, f"""
        WITH RECURSIVE chain(id, hops) AS (
            SELECT parent_id, 1 FROM agencies WHERE id = ? AND parent_id IS NOT NULL
            UNION ALL
            SELECT a.parent_id, chain.hops + 1
            FROM agencies a JOIN chain ON a.id = chain.id
            WHERE a.parent_id IS NOT NULL AND chain.hops < {_MAX_DEPTH}
        )
        SELECT {_AGENCY_COLUMNS_A}
        FROM (SELECT id, MIN(hops) AS hops FROM chain GROUP BY id) c
        JOIN agencies a ON a.id = c.id
        WHERE a.id != ?
        ORDER BY c.hops DESC
    """, (agency_id, agency_id))

    return {
        "agency": agency,
        "children": children,
        "references": references,
        "ancestors": ancestors,
    }
