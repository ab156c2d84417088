from __future__ import annotations

import asyncio
import importlib
import sys
from pathlib import Path
from types import SimpleNamespace

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))


class _DummySessionManager:
    async def restore_sessions(self):
        return 0

    async def handle_event(self, event):
        return "empty"

    async def resolve(self, anchor_ref, action, args=(), channel_id=None):
        return (True, "ok")

    async def submit_day(self, anchor_ref, raw_day, channel_id=None):
        return (True, "ok")

    async def manual_archive(self, channel_id, message_id, raw_day):
        return (True, "ok")


class _DummyReminderService:
    default_timezone = "UTC"

    async def start(self):
        return False

    async def reschedule(self):
        return False


async def _noop_async(*args, **kwargs):
    return None


def _try_import_or_skip(module_name: str, pip_name: str | None = None) -> bool:
    try:
        importlib.import_module(module_name)
        return True
    except ModuleNotFoundError:
        install_name = pip_name or module_name
        print(
            f"Smoke wiring check skipped: missing dependency '{module_name}'. "
            f"Install the project and retry (e.g. `pip install {install_name}` "
            f"or `pip install -e .`)."
        )
        return False


def _main() -> int:
    if not _try_import_or_skip("discord", "discord.py"):
        return 0

    import discord
    from discord.ext import commands
    from misc.runtime_wiring import wire_bot_runtime

    intents = discord.Intents.none()
    bot = commands.Bot(command_prefix="!", intents=intents)
    db_lock = asyncio.Lock()
    db_conn = object()

    wire_bot_runtime(
        bot,
        db_lock=db_lock,
        db_conn=db_conn,
        send_chunked=_noop_async,
        dialogue=SimpleNamespace(render=lambda key, **values: key),
        tracked_user_id=123456789012345678,
        archive_channel_ids={223456789012345678},
        admin_role_id=0,
        owner_user_ids={323456789012345678},
        modal_timeout_seconds=300,
        can_resolve_archive=lambda user: True,
        session_manager=_DummySessionManager(),
        reminder_service=_DummyReminderService(),
        event_from_message=lambda message: None,
        archived_days_in_range_sync=lambda conn, start, end: [],
        max_day_sync=lambda conn: None,
        fetch_post_by_day_sync=lambda conn, day: None,
        delete_post_by_day_sync=lambda conn, day: False,
        delete_posts_by_message_sync=lambda conn, message_id: [],
        get_settings_sync=lambda conn: None,
        update_settings_sync=lambda conn, fields: None,
        list_sessions_sync=lambda conn: [],
    )

    expected_commands = {
        "archive.status",
        "archive.manual",
        "archive.delete",
        "archive.reminder",
        "archive.sessions",
        "archive.search",
    }
    existing_commands = set(bot.all_commands.keys())
    missing = sorted(expected_commands - existing_commands)
    if missing:
        raise RuntimeError(f"Missing expected commands: {missing}")

    # @bot.event binds handlers as instance attributes.
    missing_events = [name for name in ("on_ready", "on_message", "on_interaction") if name not in vars(bot)]
    if missing_events:
        raise RuntimeError(f"Runtime events were not registered: {missing_events}")

    print("Smoke wiring check passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
