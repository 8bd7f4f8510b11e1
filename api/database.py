"""
Database connection management for the API.

Provides a get_db() dependency that opens a per-request SQLite connection and
closes it after the response is sent.  The database path is resolved once at
startup from the APP_DB_PATH environment variable (default: ecfr.sqlite) and
can be overridden by create_app(db_path=...).

Connections are query-only: the API never writes to the store.  A missing
database file gives a friendly 503 instead of a cryptic SQLite error.
"""

import os
import sqlite3
from collections.abc import Generator
from pathlib import Path

from fastapi import HTTPException

_DB_PATH: Path = Path(os.getenv("APP_DB_PATH", "ecfr.sqlite"))


def get_db_path() -> Path:
    """Return the configured database path."""
    return _DB_PATH


def set_db_path(db_path: Path) -> None:
    """Point every subsequent connection at *db_path*."""
    global _DB_PATH
    _DB_PATH = Path(db_path)


def _make_conn(db_path: Path) -> sqlite3.Connection:
    """Open a single query-only SQLite connection with standard pragmas.

    Args:
        db_path: Path to the SQLite database file.
    """
    conn = sqlite3.connect(str(db_path), check_same_thread=False, timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA query_only=ON")
    conn.execute("PRAGMA busy_timeout=5000")
    return conn


def get_db() -> Generator[sqlite3.Connection, None, None]:
    """FastAPI dependency: yield a SQLite connection, close on exit.

    Raises HTTP 503 if the database file is missing.

    Usage in a route::

        from api.database import get_db
        from fastapi import Depends

        @router.get("/example")
        def example(conn=Depends(get_db)):
            ...
    """
    db_path = get_db_path()
    if not db_path.exists():
        raise HTTPException(
            status_code=503,
            detail=(
                f"Database not found at '{db_path}'. "
                "Run 'python build_ecfr_db.py <snapshot.json>' to build it."
            ),
        )
    conn = _make_conn(db_path)
    try:
        yield conn
    finally:
        conn.close()
