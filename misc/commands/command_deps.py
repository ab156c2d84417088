from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from typing import Callable


def _default_false(*args, **kwargs) -> bool:
    return False


@dataclass(frozen=True)
class CommandDeps:
    # Core/shared
    db_lock: Any = None
    db_conn: Any = None
    send_chunked: Callable | None = None
    dialogue: Any = None

    # Store functions
    archived_days_in_range_sync: Callable | None = None
    max_day_sync: Callable | None = None
    fetch_post_by_day_sync: Callable | None = None
    delete_post_by_day_sync: Callable | None = None
    delete_posts_by_message_sync: Callable | None = None
    get_settings_sync: Callable | None = None
    update_settings_sync: Callable | None = None
    list_sessions_sync: Callable | None = None

    # Services
    session_manager: Any = None
    reminder_service: Any = None

    status_page_days: int = 50


@dataclass(frozen=True)
class CommandGates:
    can_resolve_archive: Callable[[Any], bool] = _default_false
