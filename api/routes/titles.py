"""
GET /api/v1/titles endpoint.

Lists the CFR titles (depth-0 nodes) in numeric order.
"""

import sqlite3

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.database import get_db
from api.models import TitleOut
from utils.tree import number_sort_key

router = APIRouter(prefix="/titles", tags=["hierarchy"])

_CACHE_HEADER = {"Cache-Control": "public, max-age=3600"}


@router.get(
    "",
    response_model=list[TitleOut],
    summary="List CFR titles",
)
def list_titles(conn: sqlite3.Connection = Depends(get_db)) -> JSONResponse:
    """Return every title's number and name, "2" before "10"."""
    rows = conn.execute(
        "SELECT number, node_name FROM nodes WHERE depth = 0"
    ).fetchall()
    data = sorted((dict(r) for r in rows),
                  key=lambda r: (number_sort_key(r["number"]), r["node_name"] or ""))
    return JSONResponse(content=data, headers=_CACHE_HEADER)
