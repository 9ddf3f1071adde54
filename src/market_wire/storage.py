from __future__ import annotations

import os
import sqlite3
from pathlib import Path
from typing import Union


def _ensure_dir(path: Union[str, Path]) -> None:
    parent = Path(path).parent
    if str(parent) not in ("", "."):
        parent.mkdir(parents=True, exist_ok=True)


def init_optimized_connection(
    db_path: Union[str, Path], timeout: int = 30
) -> sqlite3.Connection:
    """Open a SQLite connection with WAL and the usual performance pragmas.

    The connection may be used from any thread; callers serialise access
    with their own lock.

    Environment Variables
    --------------------
    SQLITE_WAL_MODE : str
        Enable Write-Ahead Logging (1=on, 0=off, default: 1)
    SQLITE_SYNCHRONOUS : str
        Synchronous mode (FULL, NORMAL, OFF; default: NORMAL)
    SQLITE_CACHE_SIZE : str
        Cache size in pages (default: 10000)
    """
    _ensure_dir(db_path)
    conn = sqlite3.connect(str(db_path), timeout=timeout, check_same_thread=False)

    if os.getenv("SQLITE_WAL_MODE", "1") == "1":
        conn.execute("PRAGMA journal_mode=WAL")
        # checkpoint every 500 pages so the WAL file stays small
        conn.execute("PRAGMA wal_autocheckpoint=500")

    synchronous_mode = os.getenv("SQLITE_SYNCHRONOUS", "NORMAL")
    conn.execute(f"PRAGMA synchronous={synchronous_mode}")

    cache_size = int(os.getenv("SQLITE_CACHE_SIZE", "10000"))
    conn.execute(f"PRAGMA cache_size={cache_size}")

    conn.execute("PRAGMA temp_store=MEMORY")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def close_connection(conn: sqlite3.Connection) -> None:
    """Checkpoint and truncate the WAL, then close."""
    try:
        conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
    finally:
        conn.close()
