"""Database metadata collection utilities.

Provides functions to collect summary metadata about the eCFR store:
table counts, the titles present, hierarchy depth, level-type counts and
correction date coverage.

Usage:
    from utils.metadata import collect_metadata

    meta = collect_metadata(conn)
    # meta == {"tables": {...}, "titles": [...], "level_types": {...}, ...}
"""

from __future__ import annotations

import sqlite3
from datetime import datetime

KNOWN_TABLES = [
    "nodes", "content_chunks", "agencies", "agency_node_mappings", "corrections",
]


def collect_metadata(conn: sqlite3.Connection) -> dict:
    """Collect summary metadata about the eCFR store.

    Returns a dict with:
        - generated_at: timestamp of this summary
        - tables: row counts per table (None when a table is missing)
        - titles: distinct title numbers, in numeric order
        - max_depth: deepest hierarchy level stored
        - level_types: node count per level type
        - corrections: earliest/latest correction dates and distinct years
        - agencies: root and total agency counts

    Args:
        conn: Open SQLite connection with row_factory=sqlite3.Row.
    """
    meta: dict = {
        "generated_at": datetime.now().isoformat(),
    }

    # ── Table row counts ─────────────────────────────────────────────────
    tables = {}
    for table in KNOWN_TABLES:
        try:
            count = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
            tables[table] = count
        except sqlite3.OperationalError:
            tables[table] = None  # table doesn't exist
    meta["tables"] = tables

    # ── Titles and depth ─────────────────────────────────────────────────
    try:
        rows = conn.execute(
            "SELECT number FROM nodes WHERE depth = 0 AND number IS NOT NULL "
            "ORDER BY CAST(number AS INTEGER), number"
        ).fetchall()
        meta["titles"] = [r[0] for r in rows]
        meta["max_depth"] = conn.execute(
            "SELECT MAX(depth) FROM nodes"
        ).fetchone()[0]
    except sqlite3.OperationalError:
        meta["titles"] = []
        meta["max_depth"] = None

    # ── Level types ──────────────────────────────────────────────────────
    try:
        rows = conn.execute(
            "SELECT level_type, COUNT(*) FROM nodes "
            "WHERE level_type IS NOT NULL GROUP BY level_type ORDER BY level_type"
        ).fetchall()
        meta["level_types"] = {r[0]: r[1] for r in rows}
    except sqlite3.OperationalError:
        meta["level_types"] = {}

    # ── Correction coverage ──────────────────────────────────────────────
    try:
        row = conn.execute(
            "SELECT MIN(error_occurred), MAX(error_occurred) FROM corrections"
        ).fetchone()
        years = conn.execute(
            "SELECT DISTINCT strftime('%Y', error_occurred) AS y FROM corrections "
            "WHERE error_occurred IS NOT NULL ORDER BY y DESC"
        ).fetchall()
        meta["corrections"] = {
            "earliest": row[0],
            "latest": row[1],
            "years": [int(r[0]) for r in years if r[0]],
        }
    except sqlite3.OperationalError:
        meta["corrections"] = None

    # ── Agencies ─────────────────────────────────────────────────────────
    try:
        row = conn.execute(
            "SELECT COUNT(*), SUM(CASE WHEN parent_id IS NULL THEN 1 ELSE 0 END) "
            "FROM agencies"
        ).fetchone()
        meta["agencies"] = {"total": row[0], "root": row[1] or 0}
    except sqlite3.OperationalError:
        meta["agencies"] = None

    return meta
