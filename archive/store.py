from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from archive.errors import DuplicateError, StoreFailure, ValidationError


@dataclass(slots=True)
class ArchivePost:
    day: int
    message_id: int
    channel_id: int
    user_id: int
    created_ts: int
    archived_at_utc: str = ""
    confirmed: bool = True
    media_urls: list[str] = field(default_factory=list)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# sqlite INTEGER is a signed 64-bit value.
MAX_DAY = 2**63 - 1


def validate_day(raw: Any) -> int:
    try:
        day = int(raw)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Day must be an integer: {raw!r}") from e
    if day < 1:
        raise ValidationError(f"Day must be positive: {day}")
    if day > MAX_DAY:
        raise ValidationError(f"Day is too large: {day}")
    return day


_POST_COLUMNS = "day, message_id, channel_id, user_id, created_ts, archived_at_utc, confirmed"


def _media_for_day(cur: sqlite3.Cursor, day: int) -> list[str]:
    cur.execute(
        "SELECT url FROM media_attachments WHERE post_day = ? ORDER BY position ASC, id ASC",
        (int(day),),
    )
    return [str(r[0]) for r in cur.fetchall()]


def _row_to_post(cur: sqlite3.Cursor, row: tuple[Any, ...] | None) -> ArchivePost | None:
    if row is None:
        return None
    day = int(row[0])
    return ArchivePost(
        day=day,
        message_id=int(row[1]),
        channel_id=int(row[2]),
        user_id=int(row[3]),
        created_ts=int(row[4]),
        archived_at_utc=str(row[5] or ""),
        confirmed=bool(row[6]),
        media_urls=_media_for_day(cur, day),
    )


def create_post_with_media_sync(
    conn: sqlite3.Connection,
    *,
    day: int,
    message_id: int,
    channel_id: int,
    user_id: int,
    created_ts: int,
    media_urls: list[str],
    confirmed: bool = True,
) -> ArchivePost:
    """
    Insert one post and all of its media rows as a single transaction.

    Raises DuplicateError when the day already exists, ValidationError for a
    non-positive day, StoreFailure for anything else sqlite complains about.
    Nothing is left behind on failure.
    """
    day = validate_day(day)
    urls = [str(u) for u in (media_urls or []) if str(u or "").strip()]
    archived_at = _utc_now_iso()
    cur = conn.cursor()
    try:
        cur.execute("BEGIN")
        cur.execute(
            f"INSERT INTO posts ({_POST_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (day, int(message_id), int(channel_id), int(user_id), int(created_ts), archived_at, 1 if confirmed else 0),
        )
        cur.executemany(
            "INSERT INTO media_attachments (post_day, position, url) VALUES (?, ?, ?)",
            [(day, pos, url) for pos, url in enumerate(urls)],
        )
        conn.commit()
    except sqlite3.IntegrityError as e:
        conn.rollback()
        if "posts.day" in str(e) or "UNIQUE" in str(e).upper() or "PRIMARY KEY" in str(e).upper():
            raise DuplicateError(day) from e
        raise StoreFailure(f"Archive write rejected for day {day}: {e}") from e
    except sqlite3.Error as e:
        conn.rollback()
        raise StoreFailure(f"Archive write failed for day {day}: {e}") from e

    return ArchivePost(
        day=day,
        message_id=int(message_id),
        channel_id=int(channel_id),
        user_id=int(user_id),
        created_ts=int(created_ts),
        archived_at_utc=archived_at,
        confirmed=bool(confirmed),
        media_urls=urls,
    )


def fetch_post_by_day_sync(conn: sqlite3.Connection, day: int) -> ArchivePost | None:
    cur = conn.cursor()
    cur.execute(f"SELECT {_POST_COLUMNS} FROM posts WHERE day = ? LIMIT 1", (validate_day(day),))
    return _row_to_post(cur, cur.fetchone())


def fetch_posts_by_message_sync(conn: sqlite3.Connection, message_id: int) -> list[ArchivePost]:
    cur = conn.cursor()
    cur.execute(f"SELECT {_POST_COLUMNS} FROM posts WHERE message_id = ? ORDER BY day ASC", (int(message_id),))
    rows = cur.fetchall()
    out: list[ArchivePost] = []
    for row in rows:
        post = _row_to_post(cur, row)
        if post is not None:
            out.append(post)
    return out


def delete_post_by_day_sync(conn: sqlite3.Connection, day: int) -> bool:
    cur = conn.cursor()
    try:
        cur.execute("BEGIN")
        cur.execute("DELETE FROM media_attachments WHERE post_day = ?", (int(day),))
        cur.execute("DELETE FROM posts WHERE day = ?", (int(day),))
        deleted = cur.rowcount > 0
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        raise StoreFailure(f"Delete failed for day {day}: {e}") from e
    return deleted


def delete_posts_by_message_sync(conn: sqlite3.Connection, message_id: int) -> list[int]:
    cur = conn.cursor()
    try:
        cur.execute("BEGIN")
        cur.execute("SELECT day FROM posts WHERE message_id = ? ORDER BY day ASC", (int(message_id),))
        days = [int(r[0]) for r in cur.fetchall()]
        if days:
            marks = ", ".join("?" for _ in days)
            cur.execute(f"DELETE FROM media_attachments WHERE post_day IN ({marks})", tuple(days))
            cur.execute(f"DELETE FROM posts WHERE day IN ({marks})", tuple(days))
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        raise StoreFailure(f"Delete failed for message {message_id}: {e}") from e
    return days


def max_day_sync(conn: sqlite3.Connection) -> int | None:
    row = conn.execute("SELECT MAX(day) FROM posts").fetchone()
    if row is None or row[0] is None:
        return None
    return int(row[0])


def newest_post_sync(conn: sqlite3.Connection) -> ArchivePost | None:
    cur = conn.cursor()
    cur.execute(f"SELECT {_POST_COLUMNS} FROM posts ORDER BY day DESC LIMIT 1")
    return _row_to_post(cur, cur.fetchone())


def archived_days_in_range_sync(conn: sqlite3.Connection, start_day: int, end_day: int) -> list[int]:
    lo, hi = sorted((int(start_day), int(end_day)))
    rows = conn.execute(
        "SELECT day FROM posts WHERE day BETWEEN ? AND ? ORDER BY day ASC",
        (lo, hi),
    ).fetchall()
    return [int(r[0]) for r in rows]
