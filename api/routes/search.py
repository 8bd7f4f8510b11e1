"""
GET /api/v1/search endpoint.

Searches regulation text two ways and merges the results:

- exact: chunks containing the whole query phrase (case-insensitive LIKE),
  plus the chunks of a node whose citation equals the query
- fulltext: FTS5 MATCH over the sanitized OR-of-terms query, BM25 ranked

Exact hits rank first; each chunk appears once.  An optional repeated
``title`` parameter scopes both searches to those CFR titles.
"""

import logging
import sqlite3
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from api.database import get_db
from api.models import SearchResponse
from utils.config import AppConfig
from utils.database import query_to_dicts
from utils.formatting import highlighted_snippet
from utils.query import title_scope_clause
from utils.search_merge import merge_ranked
from utils.strings import escape_like, normalize_whitespace, sanitize_fts5_query

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/search", tags=["search"])

_cfg = AppConfig.from_env()

_CHUNK_COLUMNS = """
    cc.id, cc.section_id, cc.chunk_number, cc.content,
    n.level_type, n.number, n.node_name, n.citation, n.parent, n.link
"""


def _exact_select(phrase: str, titles: list[int] | None, limit: int) -> tuple[str, list[Any]]:
    """Build the phrase/citation query; citation matches sort first."""
    scope, scope_params = title_scope_clause(titles)
    sql = f"""
        SELECT {_CHUNK_COLUMNS}, NULL AS score
        FROM content_chunks cc
        JOIN nodes n ON n.id = cc.section_id
        WHERE (cc.content LIKE ? ESCAPE '\\' OR n.citation = ? COLLATE NOCASE)
        {"AND " + scope if scope else ""}
        ORDER BY CASE WHEN n.citation = ? COLLATE NOCASE THEN 0 ELSE 1 END,
                 cc.section_id, cc.chunk_number, cc.id
        LIMIT ?
    """
    params = [f"%{escape_like(phrase)}%", phrase, *scope_params, phrase, limit]
    return sql, params


def _fulltext_select(fts_query: str, titles: list[int] | None, limit: int) -> tuple[str, list[Any]]:
    """Build the BM25-ranked FTS5 query via subquery JOIN."""
    scope, scope_params = title_scope_clause(titles)
    sql = f"""
        SELECT {_CHUNK_COLUMNS}, fts.score
        FROM content_chunks cc
        JOIN (
            SELECT rowid, bm25(content_chunks_fts) AS score
            FROM content_chunks_fts
            WHERE content_chunks_fts MATCH ?
        ) fts ON cc.rowid = fts.rowid
        JOIN nodes n ON n.id = cc.section_id
        {"WHERE " + scope if scope else ""}
        ORDER BY fts.score ASC, cc.id
        LIMIT ?
    """
    return sql, [fts_query, *scope_params, limit]


def _result_item(hit: dict[str, Any], terms: list[str]) -> dict[str, Any]:
    # bm25() is negative with lower = better; flip so higher = more relevant
    score = hit.get("score")
    return {
        "id": hit["id"],
        "content": hit["content"],
        "snippet": highlighted_snippet(hit["content"], terms),
        "chunkNumber": hit["chunk_number"],
        "match_type": hit["match_type"],
        "score": round(-score, 4) if score is not None else None,
        "section": {
            "id": hit["section_id"],
            "levelType": hit["level_type"],
            "number": hit["number"],
            "name": hit["node_name"],
            "citation": hit["citation"],
            "parent": hit["parent"],
            "link": hit["link"],
        },
    }


@router.get(
    "",
    response_model=SearchResponse,
    summary="Search regulation text",
    responses={
        400: {"description": "Missing or unsearchable query", "content": {"application/json": {"example": {"error": "Search query is required", "status_code": 400}}}},
    },
)
def search(
    q: str = Query(..., description="Search query string"),
    title: list[int] | None = Query(None, description="Restrict to these CFR title numbers"),
    limit: int = Query(_cfg.search_result_limit, ge=1, le=100, description="Maximum results"),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict:
    """Return exact phrase/citation matches first, then BM25-ranked full-text matches."""
    # Guard against FastAPI FieldInfo defaults when called directly from tests
    if not isinstance(title, list):
        title = None
    if not isinstance(limit, int):
        limit = _cfg.search_result_limit

    phrase = normalize_whitespace(q or "")
    if not phrase:
        raise HTTPException(status_code=400, detail="Search query is required")
    fts_query = sanitize_fts5_query(phrase)
    if not fts_query:
        raise HTTPException(status_code=400, detail="Search query has no searchable terms")
    terms = [t.strip('"') for t in fts_query.split(" OR ")]

    sql, params = _exact_select(phrase, title, limit)
    exact = query_to_dicts(conn, sql, params)
    sql, params = _fulltext_select(fts_query, title, limit)
    fuzzy = query_to_dicts(conn, sql, params)

    merged = merge_ranked(exact, fuzzy, limit)
    logger.debug("search q=%r exact=%d fulltext=%d merged=%d",
                 phrase, len(exact), len(fuzzy), len(merged))
    results = [_result_item(hit, terms) for hit in merged]
    return {"query": q, "total": len(results), "results": results}
