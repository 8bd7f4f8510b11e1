"""Database utilities for eCFR Analyzer tools.

Provides reusable functions for:
- Database pragmas
- Batch insert operations
- Table introspection and counts
- FTS5 index creation and its sync triggers
"""

import sqlite3
from typing import Any, Dict, List, Sequence


def init_pragmas(conn: sqlite3.Connection) -> None:
    """Initialize SQLite performance and reliability pragmas for a build.

    - WAL mode so the API can read while a rebuild writes
    - NORMAL synchronous mode for speed without data loss
    - Memory temp store and a larger page cache

    Args:
        conn: SQLite connection to configure
    """
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.execute("PRAGMA temp_store=MEMORY")
    conn.execute("PRAGMA cache_size=-64000")


def batch_insert(conn: sqlite3.Connection, query: str, rows: Sequence[tuple],
                 batch_size: int = 1000) -> int:
    """Execute batch insert operations efficiently.

    Inserts rows in batches to balance memory usage and performance.
    Commits after each batch to prevent transaction bloat.

    Args:
        conn: SQLite connection
        query: SQL INSERT query with ? placeholders
        rows: Tuples to insert
        batch_size: Number of rows per batch (default: 1000)

    Returns:
        Total number of rows inserted

    Example:
        rows = [("title-4", None, "/title=4"), ...]
        batch_insert(conn, 'INSERT INTO nodes (id, parent, link) VALUES (?, ?, ?)', rows)
    """
    total_inserted = 0

    for i in range(0, len(rows), batch_size):
        batch = rows[i:i + batch_size]
        conn.executemany(query, batch)
        conn.commit()
        total_inserted += len(batch)

    return total_inserted


def get_table_count(conn: sqlite3.Connection, table: str) -> int:
    """Get row count for a table.

    Args:
        conn: SQLite connection
        table: Table name (trusted, never user input)

    Returns:
        Number of rows in table
    """
    result = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
    return result[0] if result else 0


def table_exists(conn: sqlite3.Connection, table: str) -> bool:
    """Check if a table (or virtual table) exists in the database."""
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
        (table,)
    )
    return cursor.fetchone() is not None


def create_fts5_index(conn: sqlite3.Connection, table: str, fts_table: str,
                      columns: List[str], rebuild: bool = False) -> None:
    """Create or rebuild an external-content FTS5 full-text search index.

    The index reads its text from *table* by rowid, so only the token data
    is stored twice.

    Args:
        conn: SQLite connection
        table: Source table name
        fts_table: FTS5 table name
        columns: List of column names to index
        rebuild: If True, re-read every row of *table* into the index

    Example:
        create_fts5_index(conn, 'content_chunks', 'content_chunks_fts',
                          ['content'], rebuild=True)
    """
    cols_str = ', '.join(columns)

    conn.execute(f"""
        CREATE VIRTUAL TABLE IF NOT EXISTS {fts_table}
        USING fts5({cols_str}, content='{table}', content_rowid='rowid')
    """)

    if rebuild:
        conn.execute(f"INSERT INTO {fts_table}({fts_table}) VALUES('rebuild')")

    conn.commit()


def disable_fts5_triggers(conn: sqlite3.Connection, table: str) -> None:
    """Temporarily drop FTS5 sync triggers for a bulk insert.

    Must call enable_fts5_triggers() and rebuild the FTS5 table afterward.

    Args:
        conn: SQLite connection
        table: Source table name (triggers are named {table}_ai, {table}_ad, {table}_au)
    """
    for suffix in ['ai', 'ad', 'au']:
        conn.execute(f"DROP TRIGGER IF EXISTS {table}_{suffix}")


def enable_fts5_triggers(conn: sqlite3.Connection, table: str, fts_table: str,
                         columns: List[str]) -> None:
    """Create the triggers that keep *fts_table* in sync with *table*.

    Args:
        conn: SQLite connection
        table: Source table name
        fts_table: FTS5 table name
        columns: Indexed column names, in index order
    """
    cols = ", ".join(columns)
    new_vals = ", ".join(f"new.{c}" for c in columns)
    old_vals = ", ".join(f"old.{c}" for c in columns)

    conn.execute(f"""
        CREATE TRIGGER IF NOT EXISTS {table}_ai AFTER INSERT ON {table} BEGIN
            INSERT INTO {fts_table}(rowid, {cols}) VALUES (new.rowid, {new_vals});
        END
    """)

    conn.execute(f"""
        CREATE TRIGGER IF NOT EXISTS {table}_ad AFTER DELETE ON {table} BEGIN
            INSERT INTO {fts_table}({fts_table}, rowid, {cols})
            VALUES('delete', old.rowid, {old_vals});
        END
    """)

    conn.execute(f"""
        CREATE TRIGGER IF NOT EXISTS {table}_au AFTER UPDATE ON {table} BEGIN
            INSERT INTO {fts_table}({fts_table}, rowid, {cols})
            VALUES('delete', old.rowid, {old_vals});
            INSERT INTO {fts_table}(rowid, {cols}) VALUES (new.rowid, {new_vals});
        END
    """)

    conn.commit()


def query_to_dicts(conn: sqlite3.Connection, query: str,
                   params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
    """Execute query and return results as list of dicts.

    Args:
        conn: SQLite connection (must have row_factory set to sqlite3.Row)
        query: SQL query string
        params: Query parameters

    Returns:
        List of row dicts
    """
    cursor = conn.execute(query, tuple(params))
    return [dict(row) for row in cursor.fetchall()]
