"""
GET /api/v1/navigation endpoint.

Returns the CFR hierarchy as an ordered navigation tree.  Without ``parent``
the tree starts at the root nodes; with ``parent`` it starts at that node's
children, which is how a client lazily expands one node.  ``levels`` controls
how many levels are fetched below the starting point.

Each level is fetched with a single ``parent IN (...)`` query; nodes whose
children were not fetched still report ``has_children`` so a client can tell
an unloaded subtree from a leaf.
"""

import logging
import sqlite3
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from api.database import get_db
from api.models import NavNodeOut
from utils.config import AppConfig
from utils.database import query_to_dicts
from utils.query import placeholders
from utils.tree import build_tree, tree_to_dicts

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/navigation", tags=["navigation"])

_cfg = AppConfig.from_env()

_NODE_SELECT = """
    SELECT n.id, n.parent, n.level_type, n.number, n.node_name, n.link,
           (SELECT COUNT(*) FROM nodes c WHERE c.parent = n.id) AS child_count
    FROM nodes n
"""


def fetch_root_rows(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    """Return root rows: no parent, or a parent that is not in the store."""
    return query_to_dicts(
        conn,
        _NODE_SELECT + """
        WHERE n.parent IS NULL
           OR n.parent NOT IN (SELECT id FROM nodes)
        """,
    )


def fetch_child_rows(conn: sqlite3.Connection, parent_ids: list[str]) -> list[dict[str, Any]]:
    """Return the direct children of every id in *parent_ids* in one query."""
    if not parent_ids:
        return []
    return query_to_dicts(
        conn,
        _NODE_SELECT + f"WHERE n.parent IN ({placeholders(parent_ids)})",
        parent_ids,
    )


def fetch_levels(
    conn: sqlite3.Connection, parent: str | None, levels: int,
) -> list[dict[str, Any]]:
    """Fetch *levels* levels of rows below *parent* (roots when None)."""
    level_rows = fetch_child_rows(conn, [parent]) if parent else fetch_root_rows(conn)
    rows = list(level_rows)
    seen = {r["id"] for r in rows}
    for _ in range(levels - 1):
        expandable = [r["id"] for r in level_rows if r["child_count"]]
        level_rows = [r for r in fetch_child_rows(conn, expandable) if r["id"] not in seen]
        if not level_rows:
            break
        seen.update(r["id"] for r in level_rows)
        rows.extend(level_rows)
    return rows


@router.get(
    "",
    response_model=list[NavNodeOut],
    summary="Navigation tree",
    responses={
        400: {"description": "Invalid levels value"},
        404: {"description": "Parent node not found"},
    },
)
def navigation(
    parent: str | None = Query(None, description="Start below this node ID (roots when omitted)"),
    levels: int = Query(1, ge=1, le=_cfg.nav_max_levels,
                        description="Number of levels to return (at most NAV_MAX_LEVELS)"),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict]:
    """Return the ordered navigation tree below *parent*."""
    if parent is not None:
        parent = parent.strip()
        if not parent:
            raise ValueError("parent must not be blank")
        exists = conn.execute("SELECT 1 FROM nodes WHERE id = ?", (parent,)).fetchone()
        if exists is None:
            raise HTTPException(status_code=404, detail=f"Node '{parent}' not found")

    rows = fetch_levels(conn, parent, levels)
    logger.debug("navigation parent=%s levels=%d rows=%d", parent, levels, len(rows))
    return tree_to_dicts(build_tree(rows, root_parent=parent))
