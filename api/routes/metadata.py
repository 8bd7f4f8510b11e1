"""GET /api/v1/metadata endpoint.

Returns summary metadata about the eCFR store: table counts, the titles
present, hierarchy depth, level-type counts, correction date coverage and
agency counts.

Useful for:
  - Client overview panels
  - Health monitoring and completeness checks
"""

import sqlite3

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.database import get_db
from utils.metadata import collect_metadata

router = APIRouter(prefix="/metadata", tags=["meta"])


@router.get(
    "",
    summary="Database metadata and coverage statistics",
    response_description="Summary metadata about the eCFR store",
)
def get_metadata(
    conn: sqlite3.Connection = Depends(get_db),
) -> JSONResponse:
    """Return table row counts, titles, level types and correction coverage."""
    return JSONResponse(
        content=collect_metadata(conn),
        headers={"Cache-Control": "public, max-age=3600"},
    )
