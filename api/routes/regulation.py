"""
Regulation detail endpoints.

GET /api/v1/regulation?path=...              → node, content, children, breadcrumbs
GET /api/v1/regulation/corrections?path=...  → latest corrections for that node

``path`` is a browse path such as ``/browse/title=4/chapter=I/part=21`` or the
bare link form ``title=4/chapter=I/part=21``; both resolve against the stored
``nodes.link``.
"""

import json
import sqlite3
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from api.database import get_db
from api.models import CorrectionsResponse, RegulationOut
from utils.config import KnownValues
from utils.database import query_to_dicts
from utils.strings import normalize_regulation_path
from utils.tree import row_sort_key

router = APIRouter(prefix="/regulation", tags=["hierarchy"])

# Upper bound on ancestor walks, guards against parent cycles in the store
_MAX_DEPTH = 64

_NODE_COLUMNS = (
    "id, parent, citation, link, node_type, level_type, number, node_name, "
    "depth, num_corrections, metadata"
)


def _node_out(row: dict[str, Any]) -> dict[str, Any]:
    node = dict(row)
    if node.get("metadata"):
        node["metadata"] = json.loads(node["metadata"])
    else:
        node["metadata"] = None
    return node


def resolve_path(conn: sqlite3.Connection, path: str | None) -> dict[str, Any]:
    """Return the node row stored under *path*.

    Raises:
        HTTPException: 400 when *path* is missing, 404 when nothing matches.
        ValueError: When *path* is malformed.
    """
    if not path or not path.strip():
        raise HTTPException(status_code=400, detail="Missing path parameter")
    link = normalize_regulation_path(path)
    rows = query_to_dicts(
        conn,
        f"SELECT {_NODE_COLUMNS} FROM nodes WHERE link = ? ORDER BY id LIMIT 1",
        (link,),
    )
    if not rows:
        raise HTTPException(status_code=404, detail=f"No regulation found at '{link}'")
    return rows[0]


def breadcrumbs(conn: sqlite3.Connection, node_id: str) -> list[dict[str, Any]]:
    """Return the ancestors of *node_id*, outermost first, ending with the node."""
    rows = query_to_dicts(conn, f"""
        WITH RECURSIVE chain(id, parent, level_type, number, node_name, link, hops) AS (
            SELECT id, parent, level_type, number, node_name, link, 0
            FROM nodes WHERE id = ?
            UNION ALL
            SELECT n.id, n.parent, n.level_type, n.number, n.node_name, n.link, chain.hops + 1
            FROM nodes n JOIN chain ON n.id = chain.parent
            WHERE chain.hops < {_MAX_DEPTH}
        )
        SELECT id, level_type, number, node_name, link, MIN(hops) AS hops
        FROM chain GROUP BY id ORDER BY hops DESC
    """, (node_id,))
    crumbs = []
    for r in rows:
        label = f"{KnownValues.get_level_label(r['level_type'])} {r['number'] or ''}".strip()
        crumbs.append({
            "id": r["id"],
            "label": label or r["id"],
            "name": r["node_name"],
            "path": "/browse" + r["link"] if r["link"] else "",
        })
    return crumbs


@router.get(
    "",
    response_model=RegulationOut,
    summary="Regulation node detail",
    responses={
        400: {"description": "Missing or malformed path"},
        404: {"description": "No node at this path"},
    },
)
def get_regulation(
    path: str | None = Query(None, description="Browse path, e.g. /browse/title=4/chapter=I"),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict:
    """Return a node, its content chunks, its sorted children and its breadcrumbs."""
    node = resolve_path(conn, path)

    content = [
        r["content"] for r in conn.execute(
            "SELECT content FROM content_chunks WHERE section_id = ? "
            "ORDER BY chunk_number, id",
            (node["id"],),
        ).fetchall()
    ]
    children = query_to_dicts(
        conn,
        f"SELECT {_NODE_COLUMNS} FROM nodes WHERE parent = ? AND id != parent",
        (node["id"],),
    )
    children.sort(key=row_sort_key)

    return {
        "nodeInfo": _node_out(node),
        "content": content,
        "childNodes": [_node_out(c) for c in children],
        "breadcrumbs": breadcrumbs(conn, node["id"]),
    }


@router.get(
    "/corrections",
    response_model=CorrectionsResponse,
    summary="Latest corrections for a regulation node",
    responses={
        400: {"description": "Missing or malformed path"},
        404: {"description": "No node at this path"},
    },
)
def get_regulation_corrections(
    path: str | None = Query(None, description="Browse path of the node"),
    limit: int = Query(5, ge=1, le=100, description="Maximum corrections to return"),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict:
    """Return the node's most recent corrections, newest error first."""
    node = resolve_path(conn, path)
    corrections = query_to_dicts(conn, """
        SELECT c.id, c.node_id, c.agency_id, c.title, c.error_occurred,
               c.error_corrected, c.correction_duration, c.corrective_action,
               n.citation, n.node_name, n.level_type, n.number,
               a.name AS agency_name
        FROM corrections c
        LEFT JOIN nodes n ON n.id = c.node_id
        LEFT JOIN agencies a ON a.id = c.agency_id
        WHERE c.node_id = ?
        ORDER BY c.error_occurred DESC, c.id
        LIMIT ?
    """, (node["id"], limit))
    return {"corrections": corrections}
