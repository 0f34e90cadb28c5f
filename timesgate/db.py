"""SQLite storage for per-device settings.

The database lives at ``$TIMESGATE_DATA_DIR/timesgate.db`` (default
``./data``) and holds a single ``kv_store`` table.
"""

from __future__ import annotations

import os
import sqlite3
import threading
from pathlib import Path

_DB_PATH: Path | None = None
_LOCAL = threading.local()

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS kv_store (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    updated_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""


def _db_path() -> Path:
    global _DB_PATH
    if _DB_PATH is None:
        data_dir = Path(os.environ.get("TIMESGATE_DATA_DIR", "./data"))
        data_dir.mkdir(parents=True, exist_ok=True)
        _DB_PATH = data_dir / "timesgate.db"
    return _DB_PATH


def set_db_path(path: str | Path) -> None:
    """Point at another database file and drop cached connections (tests)."""
    global _DB_PATH, _LOCAL
    _DB_PATH = Path(path)
    _LOCAL = threading.local()


def get_db() -> sqlite3.Connection:
    """Return this thread's connection, opening it on first use."""
    conn = getattr(_LOCAL, "conn", None)
    if conn is None:
        conn = sqlite3.connect(str(_db_path()), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        _LOCAL.conn = conn
    return conn


def init_db(path: str | Path | None = None) -> None:
    """Create the ``kv_store`` table if it does not exist."""
    if path:
        set_db_path(path)
    conn = get_db()
    conn.executescript(_SCHEMA_SQL)
    conn.commit()
