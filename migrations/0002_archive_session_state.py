from __future__ import annotations

import sqlite3
from datetime import datetime, timezone


def _has_column(conn: sqlite3.Connection, table: str, column: str) -> bool:
    cur = conn.cursor()
    cur.execute(f"PRAGMA table_info({table})")
    return any(str(row[1]) == column for row in cur.fetchall())


def upgrade(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    now = datetime.now(timezone.utc).isoformat()
    additions = [
        ("state", "TEXT NOT NULL DEFAULT 'empty'"),
        ("escalate_ts", "INTEGER"),
        ("anchor_ts", "INTEGER"),
        ("created_at_utc", "TEXT"),
        ("updated_at_utc", "TEXT"),
    ]
    for name, col_type in additions:
        if not _has_column(conn, "archive_sessions", name):
            cur.execute(f"ALTER TABLE archive_sessions ADD COLUMN {name} {col_type}")

    cur.execute(
        "UPDATE archive_sessions SET created_at_utc = COALESCE(created_at_utc, ?), "
        "updated_at_utc = COALESCE(updated_at_utc, ?)",
        (now, now),
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_archive_sessions_expires_ts ON archive_sessions(expires_ts)")
    conn.commit()
