from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from archive.errors import ValidationError


SETTINGS_ROW_ID = 1
_REMINDER_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")

UPDATABLE_FIELDS = {
    "notification_channel_id",
    "timezone",
    "reminder_enabled",
    "reminder_time",
    "last_reminder_sent_day",
    "last_reminder_check_ts",
}


@dataclass(slots=True)
class NotificationSettings:
    notification_channel_id: int | None = None
    timezone: str | None = None
    reminder_enabled: bool = False
    reminder_time: str | None = None
    last_reminder_sent_day: int | None = None
    last_reminder_check_ts: int | None = None
    updated_at_utc: str | None = None


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_reminder_time(raw: str) -> str:
    m = _REMINDER_TIME_RE.match(str(raw or "").strip())
    if not m:
        raise ValidationError(f"Reminder time must be HH:MM (24h), got {raw!r}")
    return f"{int(m.group(1)):02d}:{m.group(2)}"


def validate_timezone(name: str) -> str:
    tz_name = str(name or "").strip()
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(f"Unknown timezone: {name!r}") from e
    return tz_name


def _row_to_settings(row: tuple[Any, ...] | None) -> NotificationSettings:
    if row is None:
        return NotificationSettings()
    return NotificationSettings(
        notification_channel_id=int(row[0]) if row[0] is not None else None,
        timezone=str(row[1]) if row[1] else None,
        reminder_enabled=bool(row[2]),
        reminder_time=str(row[3]) if row[3] else None,
        last_reminder_sent_day=int(row[4]) if row[4] is not None else None,
        last_reminder_check_ts=int(row[5]) if row[5] is not None else None,
        updated_at_utc=str(row[6]) if row[6] else None,
    )


def get_settings_sync(conn: sqlite3.Connection) -> NotificationSettings:
    row = conn.execute(
        """
        SELECT notification_channel_id, timezone, reminder_enabled, reminder_time,
               last_reminder_sent_day, last_reminder_check_ts, updated_at_utc
        FROM notification_settings
        WHERE id = ?
        LIMIT 1
        """,
        (SETTINGS_ROW_ID,),
    ).fetchone()
    return _row_to_settings(row)


def update_settings_sync(conn: sqlite3.Connection, fields: dict[str, Any]) -> NotificationSettings:
    """Upsert the settings row with `fields` and return the merged settings."""
    unknown = [k for k in fields if k not in UPDATABLE_FIELDS]
    if unknown:
        raise ValueError(f"Unknown settings fields: {unknown}")

    values: dict[str, Any] = dict(fields)
    if values.get("reminder_time") is not None:
        values["reminder_time"] = normalize_reminder_time(values["reminder_time"])
    if values.get("timezone") is not None:
        values["timezone"] = validate_timezone(values["timezone"])
    if "reminder_enabled" in values:
        values["reminder_enabled"] = 1 if values["reminder_enabled"] else 0

    conn.execute("INSERT OR IGNORE INTO notification_settings (id, reminder_enabled) VALUES (?, 0)", (SETTINGS_ROW_ID,))
    if values:
        assignments = [f"{key} = ?" for key in values]
        params = list(values.values())
        assignments.append("updated_at_utc = ?")
        params.append(_utc_now_iso())
        params.append(SETTINGS_ROW_ID)
        conn.execute(
            f"UPDATE notification_settings SET {', '.join(assignments)} WHERE id = ?",
            tuple(params),
        )
    conn.commit()
    return get_settings_sync(conn)
