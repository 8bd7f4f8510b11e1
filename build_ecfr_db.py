"""
eCFR Analyzer Database Builder

Loads a JSON snapshot of the Code of Federal Regulations hierarchy, content
chunks, agencies and corrections into a SQLite database with full-text
search (FTS5) over the regulation text.

Snapshot layout (every key optional)::

    {
      "nodes":                [{"id", "parent", "citation", "link", "node_type",
                                "level_type", "number", "node_name",
                                "num_corrections", "metadata"}],
      "content_chunks":       [{"id", "section_id", "chunk_number", "content"}],
      "agencies":             [{"id", "parent_id", "name", "short_name", "slug",
                                "num_cfr", "num_children", "num_sections",
                                "num_words", "num_corrections"}],
      "agency_node_mappings": [{"agency_id", "node_id"}],
      "corrections":          [{"id", "node_id", "agency_id", "title",
                                "error_occurred", "error_corrected",
                                "correction_duration", "corrective_action"}]
    }

Usage:
    python build_ecfr_db.py snapshot.json                  # Build or update the database
    python build_ecfr_db.py snapshot.json --rebuild        # Force full rebuild
    python build_ecfr_db.py snapshot.json --db my.sqlite   # Custom database path
"""

import argparse
import json
import logging
import sqlite3
import sys
import time
from collections import Counter
from datetime import date
from pathlib import Path
from typing import Any

from utils.config import KnownValues
from utils.database import (
    batch_insert,
    create_fts5_index,
    disable_fts5_triggers,
    enable_fts5_triggers,
    get_table_count,
    init_pragmas,
)

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path("ecfr.sqlite")

_FTS_TABLE = "content_chunks_fts"
_FTS_COLUMNS = ["content"]


def create_database(db_path: Path) -> sqlite3.Connection:
    """Create the SQLite database with all tables, indexes and FTS triggers."""
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    init_pragmas(conn)

    conn.executescript("""
        -- CFR hierarchy: one row per title, chapter, part, section, ...
        CREATE TABLE IF NOT EXISTS nodes (
            id TEXT PRIMARY KEY,
            parent TEXT,
            citation TEXT,
            -- Path form of the node: /title=4/chapter=I/part=21
            link TEXT,
            -- 'structure' for hierarchy levels, 'content' for text-bearing nodes
            node_type TEXT,
            level_type TEXT,
            number TEXT,
            node_name TEXT,
            -- Distance from the title (titles are depth 0)
            depth INTEGER NOT NULL DEFAULT 0,
            num_corrections INTEGER NOT NULL DEFAULT 0,
            -- JSON object
            metadata TEXT
        );

        -- Regulation text, split into ordered chunks per section
        CREATE TABLE IF NOT EXISTS content_chunks (
            id TEXT PRIMARY KEY,
            section_id TEXT NOT NULL,
            chunk_number INTEGER NOT NULL DEFAULT 0,
            content TEXT NOT NULL DEFAULT ''
        );

        CREATE TABLE IF NOT EXISTS agencies (
            id TEXT PRIMARY KEY,
            parent_id TEXT,
            name TEXT NOT NULL,
            short_name TEXT,
            slug TEXT,
            num_cfr INTEGER NOT NULL DEFAULT 0,
            num_children INTEGER NOT NULL DEFAULT 0,
            num_sections INTEGER NOT NULL DEFAULT 0,
            num_words INTEGER NOT NULL DEFAULT 0,
            num_corrections INTEGER NOT NULL DEFAULT 0
        );

        CREATE TABLE IF NOT EXISTS agency_node_mappings (
            agency_id TEXT NOT NULL,
            node_id TEXT NOT NULL,
            PRIMARY KEY (agency_id, node_id)
        );

        -- Change log: when an error occurred in a node and when it was fixed
        CREATE TABLE IF NOT EXISTS corrections (
            id TEXT PRIMARY KEY,
            node_id TEXT,
            agency_id TEXT,
            title INTEGER,
            error_occurred TEXT,
            error_corrected TEXT,
            -- Days between error_occurred and error_corrected
            correction_duration INTEGER,
            corrective_action TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_nodes_parent ON nodes(parent);
        CREATE INDEX IF NOT EXISTS idx_nodes_link ON nodes(link);
        CREATE INDEX IF NOT EXISTS idx_nodes_citation ON nodes(citation);
        CREATE INDEX IF NOT EXISTS idx_nodes_depth ON nodes(depth);
        CREATE INDEX IF NOT EXISTS idx_nodes_corrections ON nodes(num_corrections);
        CREATE INDEX IF NOT EXISTS idx_chunks_section
            ON content_chunks(section_id, chunk_number);
        CREATE INDEX IF NOT EXISTS idx_agencies_parent ON agencies(parent_id);
        CREATE INDEX IF NOT EXISTS idx_mappings_node ON agency_node_mappings(node_id);
        CREATE INDEX IF NOT EXISTS idx_corrections_occurred ON corrections(error_occurred);
        CREATE INDEX IF NOT EXISTS idx_corrections_node ON corrections(node_id);
        CREATE INDEX IF NOT EXISTS idx_corrections_agency ON corrections(agency_id);
        CREATE INDEX IF NOT EXISTS idx_corrections_duration
            ON corrections(correction_duration);
    """)

    create_fts5_index(conn, "content_chunks", _FTS_TABLE, _FTS_COLUMNS)
    enable_fts5_triggers(conn, "content_chunks", _FTS_TABLE, _FTS_COLUMNS)
    conn.commit()
    return conn


# ── Snapshot helpers ──────────────────────────────────────────────────────────

def _compute_depths(nodes: list[dict]) -> dict[str, int]:
    """Return the depth of every node id (number of resolvable ancestors).

    Parent chains that leave the snapshot stop there; a chain that loops
    back on itself stops at the first repeated node.
    """
    parent_of = {n["id"]: n.get("parent") for n in nodes}
    depths: dict[str, int] = {}
    for node_id in parent_of:
        chain = []
        seen = set()
        current = node_id
        while current in parent_of and current not in depths and current not in seen:
            seen.add(current)
            chain.append(current)
            current = parent_of[current]
        base = depths[current] + 1 if current in depths else 0
        for offset, ancestor in enumerate(reversed(chain)):
            depths[ancestor] = base + offset
    return depths


def _duration_days(occurred: str | None, corrected: str | None) -> int | None:
    if not occurred or not corrected:
        return None
    try:
        return (date.fromisoformat(corrected[:10]) - date.fromisoformat(occurred[:10])).days
    except ValueError:
        logger.warning("Unparseable correction dates %r / %r", occurred, corrected)
        return None


def _or_default(value: Any, default: Any) -> Any:
    return default if value is None else value


def _read_snapshot(source: Path | str | dict) -> dict:
    if isinstance(source, dict):
        return source
    with open(source, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Snapshot {source} must be a JSON object")
    return data


def load_snapshot(conn: sqlite3.Connection, source: Path | str | dict) -> dict[str, int]:
    """Insert a snapshot into an open database created by create_database().

    Rows replace existing rows with the same primary key, so loading the
    same snapshot twice is harmless.  ``depth`` is computed from the parent
    chain, ``correction_duration`` from the two dates when absent, and
    ``num_corrections`` / ``num_children`` from the snapshot itself when the
    source does not provide them.

    Args:
        conn: Connection returned by create_database().
        source: Path to a snapshot JSON file, or the already-parsed dict.

    Returns:
        Dict of table name -> rows in that table after the load.

    Raises:
        ValueError: If a node, chunk, agency or correction has no id.
    """
    data = _read_snapshot(source)
    nodes = [dict(n) for n in data.get("nodes") or []]
    chunks = data.get("content_chunks") or []
    agencies = data.get("agencies") or []
    mappings = data.get("agency_node_mappings") or []
    corrections = data.get("corrections") or []

    for kind, rows in (("node", nodes), ("content chunk", chunks),
                       ("agency", agencies), ("correction", corrections)):
        for row in rows:
            if not row.get("id"):
                raise ValueError(f"Snapshot {kind} without id: {row!r}")

    unknown_levels = sorted({
        n["level_type"] for n in nodes
        if n.get("level_type") and not KnownValues.is_valid_level_type(n["level_type"])
    })
    if unknown_levels:
        logger.warning("Unknown level types %s will sort after known levels", unknown_levels)

    depths = _compute_depths(nodes)
    node_corrections = Counter(c.get("node_id") for c in corrections)
    agency_children = Counter(a.get("parent_id") for a in agencies if a.get("parent_id"))

    node_rows = []
    for n in nodes:
        metadata = n.get("metadata")
        node_rows.append((
            n["id"], n.get("parent"), n.get("citation"), n.get("link"),
            n.get("node_type"), n.get("level_type"), n.get("number"),
            n.get("node_name"), depths.get(n["id"], 0),
            _or_default(n.get("num_corrections"), node_corrections.get(n["id"], 0)),
            json.dumps(metadata) if metadata is not None else None,
        ))
    batch_insert(conn, """
        INSERT OR REPLACE INTO nodes
            (id, parent, citation, link, node_type, level_type, number,
             node_name, depth, num_corrections, metadata)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """, node_rows)

    # Bulk-load chunks without per-row trigger work, then rebuild the index.
    disable_fts5_triggers(conn, "content_chunks")
    batch_insert(conn, """
        INSERT OR REPLACE INTO content_chunks (id, section_id, chunk_number, content)
        VALUES (?, ?, ?, ?)
    """, [
        (c["id"], c.get("section_id"), c.get("chunk_number") or 0, c.get("content") or "")
        for c in chunks
    ])
    create_fts5_index(conn, "content_chunks", _FTS_TABLE, _FTS_COLUMNS, rebuild=True)
    enable_fts5_triggers(conn, "content_chunks", _FTS_TABLE, _FTS_COLUMNS)

    batch_insert(conn, """
        INSERT OR REPLACE INTO agencies
            (id, parent_id, name, short_name, slug, num_cfr, num_children,
             num_sections, num_words, num_corrections)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """, [
        (a["id"], a.get("parent_id"), a.get("name") or "", a.get("short_name"),
         a.get("slug"), a.get("num_cfr") or 0,
         _or_default(a.get("num_children"), agency_children.get(a["id"], 0)),
         a.get("num_sections") or 0, a.get("num_words") or 0,
         a.get("num_corrections") or 0)
        for a in agencies
    ])

    batch_insert(conn, """
        INSERT OR IGNORE INTO agency_node_mappings (agency_id, node_id) VALUES (?, ?)
    """, [(m["agency_id"], m["node_id"]) for m in mappings])

    batch_insert(conn, """
        INSERT OR REPLACE INTO corrections
            (id, node_id, agency_id, title, error_occurred, error_corrected,
             correction_duration, corrective_action)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
    """, [
        (c["id"], c.get("node_id"), c.get("agency_id"), c.get("title"),
         c.get("error_occurred"), c.get("error_corrected"),
         _or_default(c.get("correction_duration"),
                     _duration_days(c.get("error_occurred"), c.get("error_corrected"))),
         c.get("corrective_action"))
        for c in corrections
    ])

    return {
        table: get_table_count(conn, table)
        for table in ("nodes", "content_chunks", "agencies",
                      "agency_node_mappings", "corrections")
    }


def build_database(snapshot: Path, db_path: Path, rebuild: bool = False) -> dict[str, int]:
    """Create (or update) *db_path* from a snapshot file.

    Raises:
        FileNotFoundError: If the snapshot does not exist.
    """
    if not snapshot.exists():
        raise FileNotFoundError(f"Snapshot not found: {snapshot}")
    if rebuild:
        for suffix in ("", "-wal", "-shm"):
            Path(f"{db_path}{suffix}").unlink(missing_ok=True)
        logger.info("Removed existing database %s", db_path)

    start = time.time()
    conn = create_database(db_path)
    try:
        counts = load_snapshot(conn, snapshot)
        conn.execute("PRAGMA optimize")
    finally:
        conn.close()
    logger.info(
        "Built %s in %.1fs: %s", db_path, time.time() - start,
        ", ".join(f"{t}={c}" for t, c in counts.items()),
    )
    return counts


def main():
    """Parse command-line arguments and build the database."""
    parser = argparse.ArgumentParser(description="Build eCFR Analyzer database")
    parser.add_argument("snapshot", type=Path,
                        help="JSON snapshot to load")
    parser.add_argument("--db", type=Path, default=DEFAULT_DB_PATH,
                        help=f"Database path (default: {DEFAULT_DB_PATH})")
    parser.add_argument("--rebuild", action="store_true",
                        help="Force full rebuild (delete existing database)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    try:
        counts = build_database(args.snapshot, args.db, rebuild=args.rebuild)
    except (FileNotFoundError, ValueError) as e:
        print(f"ERROR: {e}")
        sys.exit(1)
    for table, count in counts.items():
        print(f"  {table:<22} {count:>8,}")


if __name__ == "__main__":
    main()
