import os
import sqlite3
import asyncio
import discord
from discord.ext import commands
from archive.errors import SchemaError
from archive.session_manager import ArchiveSessionManager
from archive.session_store import list_sessions_sync
from archive.settings_store import get_settings_sync, update_settings_sync
from archive.store import (
    archived_days_in_range_sync,
    delete_post_by_day_sync,
    delete_posts_by_message_sync,
    fetch_post_by_day_sync,
    max_day_sync,
)
from archive.timers import TimerRegistry
from config.defaults import COMMAND_PREFIX
from config.defaults import DEFAULT_ARCHIVE_CHANNEL_IDS
from config.defaults import DEFAULT_DB_PATH
from config.defaults import DEFAULT_DIALOGUE_FILENAME
from config.defaults import DEFAULT_LOOKBEHIND_LIMIT
from config.defaults import DEFAULT_MEDIA_ONLY_DELAY_SECONDS
from config.defaults import DEFAULT_MIGRATIONS_DIRNAME
from config.defaults import DEFAULT_MODAL_TIMEOUT_SECONDS
from config.defaults import DEFAULT_SESSION_LIFETIME_SECONDS
from config.defaults import DEFAULT_TIMEZONE
from config.env import env_int, env_str, parse_id_set
from db.migrate import apply_sqlite_migrations, connect_sqlite, verify_schema_sync
from jobs.reminders import ReminderService
from misc.admin_prompts import AdminPromptDispatcher
from misc.dialogue import DialogueCatalog
from misc.discord_adapters import ChannelSender, DiscordEventSource, event_from_message
from misc.discord_gates import can_resolve_archive
from misc.runtime_wiring import wire_bot_runtime

REPO_ROOT = os.path.dirname(os.path.abspath(__file__))

# =========================
# ENV
# =========================
DISCORD_TOKEN = os.getenv("DISCORD_TOKEN")
if not DISCORD_TOKEN:
    raise RuntimeError("Missing DISCORD_TOKEN env var")

TRACKED_USER_ID = env_int("WALPURGIS_TRACKED_USER_ID", 0)
if not TRACKED_USER_ID:
    raise RuntimeError("Missing WALPURGIS_TRACKED_USER_ID env var")

DB_PATH = env_str("WALPURGIS_DB_PATH", DEFAULT_DB_PATH)
ARCHIVE_CHANNEL_IDS = parse_id_set(os.getenv("WALPURGIS_ARCHIVE_CHANNEL_IDS", DEFAULT_ARCHIVE_CHANNEL_IDS))
ADMIN_CHANNEL_ID = env_int("WALPURGIS_ADMIN_CHANNEL_ID", 0)
ADMIN_ROLE_ID = env_int("WALPURGIS_ADMIN_ROLE_ID", 0)
OWNER_USER_IDS = parse_id_set(os.getenv("WALPURGIS_OWNER_USER_IDS"))
DEFAULT_TZ = env_str("WALPURGIS_DEFAULT_TIMEZONE", DEFAULT_TIMEZONE)

SESSION_LIFETIME_SECONDS = env_int("WALPURGIS_SESSION_LIFETIME_SECONDS", DEFAULT_SESSION_LIFETIME_SECONDS)
MEDIA_ONLY_DELAY_SECONDS = env_int("WALPURGIS_MEDIA_ONLY_DELAY_SECONDS", DEFAULT_MEDIA_ONLY_DELAY_SECONDS)
LOOKBEHIND_LIMIT = env_int("WALPURGIS_LOOKBEHIND_LIMIT", DEFAULT_LOOKBEHIND_LIMIT)
MODAL_TIMEOUT_SECONDS = env_int("WALPURGIS_MODAL_TIMEOUT_SECONDS", DEFAULT_MODAL_TIMEOUT_SECONDS)
DIALOGUE_PATH = env_str(
    "WALPURGIS_DIALOGUE_PATH",
    os.path.join(REPO_ROOT, "config", DEFAULT_DIALOGUE_FILENAME),
)

print(
    f"[CFG] tracked_user={TRACKED_USER_ID} archive_channels={len(ARCHIVE_CHANNEL_IDS) or 'all'} "
    f"admin_channel={ADMIN_CHANNEL_ID or '(settings)'} admin_role={ADMIN_ROLE_ID or '-'} "
    f"owner_ids={len(OWNER_USER_IDS)} default_tz={DEFAULT_TZ}"
)
print(
    f"[CFG] session_lifetime_s={SESSION_LIFETIME_SECONDS} media_only_delay_s={MEDIA_ONLY_DELAY_SECONDS} "
    f"lookbehind={LOOKBEHIND_LIMIT} modal_timeout_s={MODAL_TIMEOUT_SECONDS} dialogue={DIALOGUE_PATH}"
)

DISCORD_MAX_MESSAGE_LEN = 1900  # keep under 2000 hard limit

def chunk_text(text: str, limit: int = DISCORD_MAX_MESSAGE_LEN) -> list[str]:
    text = text or ""
    if len(text) <= limit:
        return [text]

    chunks = []
    remaining = text

    while len(remaining) > limit:
        # Prefer splitting on newline, then space
        split_at = remaining.rfind("\n", 0, limit)
        if split_at == -1:
            split_at = remaining.rfind(" ", 0, limit)
        if split_at == -1:
            split_at = limit

        chunk = remaining[:split_at].strip()
        if chunk:
            chunks.append(chunk)

        remaining = remaining[split_at:].strip()

    if remaining:
        chunks.append(remaining)

    return chunks


async def send_chunked(channel: discord.abc.Messageable, text: str) -> None:
    for part in chunk_text(text, DISCORD_MAX_MESSAGE_LEN):
        await channel.send(part)

# =========================
# SQLITE
# =========================
def init_db(db_path: str) -> sqlite3.Connection:
    conn = connect_sqlite(db_path)
    migrations_dir = os.path.join(REPO_ROOT, DEFAULT_MIGRATIONS_DIRNAME)
    applied = apply_sqlite_migrations(conn, migrations_dir)
    print(f"[DB] migrations applied this boot: {applied or 'none'}")
    verify_schema_sync(conn)
    return conn

try:
    db_conn = init_db(DB_PATH)
except (sqlite3.Error, SchemaError, OSError) as e:
    print(f"[DB] fatal: could not open or migrate {DB_PATH}: {e}")
    raise SystemExit(1)
print(f"[DB] Using DB_PATH={DB_PATH}")
db_lock = asyncio.Lock()

dialogue = DialogueCatalog(DIALOGUE_PATH)
dialogue.strings()

# =========================
# DISCORD BOT
# =========================
intents = discord.Intents.default()
intents.message_content = True

bot = commands.Bot(command_prefix=COMMAND_PREFIX, intents=intents)


def user_can_resolve_archive(user) -> bool:
    return can_resolve_archive(user, admin_role_id=ADMIN_ROLE_ID, owner_user_ids=OWNER_USER_IDS)


async def settings_channel_id() -> int:
    async with db_lock:
        settings = await asyncio.to_thread(get_settings_sync, db_conn)
    return int(settings.notification_channel_id or 0)


session_manager = ArchiveSessionManager(
    db_lock=db_lock,
    db_conn=db_conn,
    tracked_user_id=TRACKED_USER_ID,
    source=DiscordEventSource(bot=bot),
    prompts=AdminPromptDispatcher(
        bot=bot,
        admin_channel_id=ADMIN_CHANNEL_ID,
        admin_role_id=ADMIN_ROLE_ID,
        fallback_channel_func=settings_channel_id,
    ),
    dialogue=dialogue,
    timers=TimerRegistry(),
    session_lifetime_seconds=SESSION_LIFETIME_SECONDS,
    media_only_delay_seconds=MEDIA_ONLY_DELAY_SECONDS,
    lookbehind_limit=LOOKBEHIND_LIMIT,
)

reminder_service = ReminderService(
    db_lock=db_lock,
    db_conn=db_conn,
    sender=ChannelSender(bot=bot),
    dialogue=dialogue,
    default_timezone=DEFAULT_TZ,
    default_channel_id=ADMIN_CHANNEL_ID,
)

wire_bot_runtime(
    bot,
    db_lock=db_lock,
    db_conn=db_conn,
    send_chunked=send_chunked,
    dialogue=dialogue,
    tracked_user_id=TRACKED_USER_ID,
    archive_channel_ids=ARCHIVE_CHANNEL_IDS,
    admin_role_id=ADMIN_ROLE_ID,
    owner_user_ids=OWNER_USER_IDS,
    modal_timeout_seconds=MODAL_TIMEOUT_SECONDS,
    can_resolve_archive=user_can_resolve_archive,
    session_manager=session_manager,
    reminder_service=reminder_service,
    event_from_message=event_from_message,
    archived_days_in_range_sync=archived_days_in_range_sync,
    max_day_sync=max_day_sync,
    fetch_post_by_day_sync=fetch_post_by_day_sync,
    delete_post_by_day_sync=delete_post_by_day_sync,
    delete_posts_by_message_sync=delete_posts_by_message_sync,
    get_settings_sync=get_settings_sync,
    update_settings_sync=update_settings_sync,
    list_sessions_sync=list_sessions_sync,
)

bot.run(DISCORD_TOKEN)
