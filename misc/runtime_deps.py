from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class RuntimeDeps:
    # core
    db_lock: Any
    db_conn: Any

    # archive intake
    tracked_user_id: int
    session_manager: Any
    event_from_message: Callable
    dialogue: Any

    # admin resolution
    admin_role_id: int
    owner_user_ids: set[int]
    modal_timeout_seconds: int

    # reminders
    reminder_service: Any


@dataclass(frozen=True)
class RuntimeBootDeps:
    archive_channel_ids: set[int]
    restore_sessions_func: Callable
    start_reminders_func: Callable
