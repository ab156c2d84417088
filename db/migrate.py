from __future__ import annotations

import hashlib
import importlib.util
import re
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from archive.errors import SchemaError


MIGRATION_RE = re.compile(r"^(\d{4})_([a-zA-Z0-9_]+)\.(sql|py)$")

REQUIRED_SCHEMA: dict[str, list[str]] = {
    "posts": ["day", "message_id", "channel_id", "user_id", "created_ts", "archived_at_utc", "confirmed"],
    "media_attachments": ["id", "post_day", "position", "url"],
    "archive_sessions": [
        "user_id",
        "channel_id",
        "message_id",
        "media_urls_json",
        "detected_days_json",
        "confidence",
        "state",
        "expires_ts",
        "escalate_ts",
        "anchor_ts",
    ],
    "notification_settings": [
        "id",
        "notification_channel_id",
        "timezone",
        "reminder_enabled",
        "reminder_time",
        "last_reminder_sent_day",
        "last_reminder_check_ts",
    ],
}


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def connect_sqlite(db_path: str) -> sqlite3.Connection:
    # check_same_thread=False because the event loop hands work to asyncio.to_thread
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.execute("PRAGMA foreign_keys=ON;")
    if db_path != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


def _checksum_file(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def _ensure_migration_table(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            checksum TEXT NOT NULL,
            applied_at_utc TEXT NOT NULL
        )
        """
    )
    conn.commit()


def _applied_versions(conn: sqlite3.Connection) -> dict[str, tuple[str, str]]:
    rows = conn.execute("SELECT version, name, checksum FROM schema_migrations").fetchall()
    return {str(version): (str(name), str(checksum)) for version, name, checksum in rows}


def _discover(migrations_dir: str) -> list[tuple[str, str, str, Path]]:
    base = Path(migrations_dir)
    if not base.is_dir():
        raise SchemaError(f"Migrations directory not found: {migrations_dir}")
    found: list[tuple[str, str, str, Path]] = []
    for p in sorted(base.iterdir()):
        m = MIGRATION_RE.match(p.name) if p.is_file() else None
        if m:
            found.append((m.group(1), m.group(2), m.group(3), p))
    return found


def _run_python_migration(conn: sqlite3.Connection, path: Path) -> None:
    spec = importlib.util.spec_from_file_location(f"walpurgis_migration_{path.stem}", str(path))
    if spec is None or spec.loader is None:
        raise SchemaError(f"Could not load migration module: {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    upgrade = getattr(module, "upgrade", None)
    if not callable(upgrade):
        raise SchemaError(f"Python migration missing upgrade(conn): {path}")
    upgrade(conn)


def apply_sqlite_migrations(conn: sqlite3.Connection, migrations_dir: str) -> list[str]:
    """
    Apply pending NNNN_name.sql / NNNN_name.py migrations in version order.

    Already-applied versions are skipped, but only if the file on disk still
    matches the recorded name and checksum. Returns the versions applied now.
    """
    _ensure_migration_table(conn)
    applied = _applied_versions(conn)
    newly_applied: list[str] = []

    for version, name, ext, path in _discover(migrations_dir):
        checksum = _checksum_file(path)
        if version in applied:
            old_name, old_checksum = applied[version]
            if (old_name, old_checksum) != (name, checksum):
                raise SchemaError(
                    f"Migration {version} was applied as {old_name!r} with different content; "
                    f"refusing to continue with {path.name}."
                )
            continue

        print(f"[DB] Applying migration {version}_{name}.{ext}")
        if ext == "sql":
            conn.executescript(path.read_text(encoding="utf-8"))
        else:
            _run_python_migration(conn, path)
        conn.execute(
            "INSERT INTO schema_migrations (version, name, checksum, applied_at_utc) VALUES (?, ?, ?, ?)",
            (version, name, checksum, _utc_now_iso()),
        )
        conn.commit()
        newly_applied.append(version)

    return newly_applied


def table_columns_sync(conn: sqlite3.Connection, table: str) -> list[str]:
    # rows: (cid, name, type, notnull, dflt_value, pk)
    return [str(r[1]) for r in conn.execute(f"PRAGMA table_info({table})").fetchall()]


def verify_schema_sync(conn: sqlite3.Connection, required: dict[str, list[str]] | None = None) -> None:
    problems: list[str] = []
    for table, cols in (required or REQUIRED_SCHEMA).items():
        have = set(table_columns_sync(conn, table))
        if not have:
            problems.append(f"{table}: table missing")
            continue
        missing = [c for c in cols if c not in have]
        print(f"[DB] {table} schema OK={not missing} missing={missing}")
        if missing:
            problems.append(f"{table}: missing {missing}")
    if problems:
        raise SchemaError("Schema verification failed: " + "; ".join(problems))

