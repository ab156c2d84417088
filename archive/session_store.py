from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from archive.classifier import CONFIDENCE_NONE


@dataclass(slots=True)
class SessionRecord:
    user_id: int
    channel_id: int
    message_id: int
    expires_ts: int
    media_urls: list[str] = field(default_factory=list)
    detected_days: list[int] = field(default_factory=list)
    confidence: str = CONFIDENCE_NONE
    state: str = "empty"
    escalate_ts: int | None = None
    anchor_ts: int | None = None
    created_at_utc: str = ""
    updated_at_utc: str = ""


_SESSION_COLUMNS = (
    "user_id, channel_id, message_id, media_urls_json, detected_days_json, confidence, "
    "state, expires_ts, escalate_ts, anchor_ts, created_at_utc, updated_at_utc"
)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _loads_list(raw: Any) -> list[Any]:
    try:
        value = json.loads(raw or "[]")
    except (TypeError, ValueError):
        return []
    return value if isinstance(value, list) else []


def _row_to_session(row: tuple[Any, ...] | None) -> SessionRecord | None:
    if row is None:
        return None
    return SessionRecord(
        user_id=int(row[0]),
        channel_id=int(row[1]),
        message_id=int(row[2]),
        media_urls=[str(u) for u in _loads_list(row[3])],
        detected_days=[int(d) for d in _loads_list(row[4])],
        confidence=str(row[5] or CONFIDENCE_NONE),
        state=str(row[6] or "empty"),
        expires_ts=int(row[7]),
        escalate_ts=int(row[8]) if row[8] is not None else None,
        anchor_ts=int(row[9]) if row[9] is not None else None,
        created_at_utc=str(row[10] or ""),
        updated_at_utc=str(row[11] or ""),
    )


def get_session_sync(conn: sqlite3.Connection, user_id: int) -> SessionRecord | None:
    row = conn.execute(
        f"SELECT {_SESSION_COLUMNS} FROM archive_sessions WHERE user_id = ? LIMIT 1",
        (int(user_id),),
    ).fetchone()
    return _row_to_session(row)


def get_session_by_anchor_sync(conn: sqlite3.Connection, message_id: int) -> SessionRecord | None:
    row = conn.execute(
        f"SELECT {_SESSION_COLUMNS} FROM archive_sessions WHERE message_id = ? LIMIT 1",
        (int(message_id),),
    ).fetchone()
    return _row_to_session(row)


def upsert_session_sync(conn: sqlite3.Connection, session: SessionRecord) -> SessionRecord:
    now = _utc_now_iso()
    created = session.created_at_utc or now
    conn.execute(
        f"""
        INSERT INTO archive_sessions ({_SESSION_COLUMNS})
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(user_id) DO UPDATE SET
            channel_id = excluded.channel_id,
            message_id = excluded.message_id,
            media_urls_json = excluded.media_urls_json,
            detected_days_json = excluded.detected_days_json,
            confidence = excluded.confidence,
            state = excluded.state,
            expires_ts = excluded.expires_ts,
            escalate_ts = excluded.escalate_ts,
            anchor_ts = excluded.anchor_ts,
            updated_at_utc = excluded.updated_at_utc
        """,
        (
            int(session.user_id),
            int(session.channel_id),
            int(session.message_id),
            json.dumps(list(session.media_urls), ensure_ascii=False),
            json.dumps([int(d) for d in session.detected_days]),
            session.confidence,
            session.state,
            int(session.expires_ts),
            int(session.escalate_ts) if session.escalate_ts is not None else None,
            int(session.anchor_ts) if session.anchor_ts is not None else None,
            created,
            now,
        ),
    )
    conn.commit()
    session.created_at_utc = created
    session.updated_at_utc = now
    return session


def delete_session_sync(conn: sqlite3.Connection, user_id: int) -> bool:
    cur = conn.cursor()
    cur.execute("DELETE FROM archive_sessions WHERE user_id = ?", (int(user_id),))
    conn.commit()
    return cur.rowcount > 0


def _claim(conn: sqlite3.Connection, where: str, value: int) -> SessionRecord | None:
    # Select and delete inside one transaction: only the first claimant gets the row.
    cur = conn.cursor()
    try:
        cur.execute("BEGIN IMMEDIATE")
        cur.execute(f"SELECT {_SESSION_COLUMNS} FROM archive_sessions WHERE {where} = ? LIMIT 1", (int(value),))
        session = _row_to_session(cur.fetchone())
        if session is not None:
            cur.execute("DELETE FROM archive_sessions WHERE user_id = ?", (session.user_id,))
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise
    return session


def claim_session_sync(conn: sqlite3.Connection, user_id: int) -> SessionRecord | None:
    return _claim(conn, "user_id", user_id)


def claim_session_by_anchor_sync(conn: sqlite3.Connection, message_id: int) -> SessionRecord | None:
    return _claim(conn, "message_id", message_id)


def delete_expired_sessions_sync(conn: sqlite3.Connection, now_ts: int) -> list[int]:
    cur = conn.cursor()
    cur.execute("SELECT user_id FROM archive_sessions WHERE expires_ts <= ?", (int(now_ts),))
    user_ids = [int(r[0]) for r in cur.fetchall()]
    if user_ids:
        cur.execute("DELETE FROM archive_sessions WHERE expires_ts <= ?", (int(now_ts),))
    conn.commit()
    return user_ids


def list_sessions_sync(conn: sqlite3.Connection) -> list[SessionRecord]:
    rows = conn.execute(f"SELECT {_SESSION_COLUMNS} FROM archive_sessions ORDER BY expires_ts ASC").fetchall()
    return [s for s in (_row_to_session(r) for r in rows) if s is not None]
