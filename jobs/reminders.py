from __future__ import annotations

import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from archive.settings_store import NotificationSettings, get_settings_sync, update_settings_sync
from archive.store import newest_post_sync


def _parse_hhmm(value: str) -> tuple[int, int]:
    hh, mm = (value or "").strip().split(":", 1)
    return int(hh), int(mm)


def _tzinfo(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo((name or "UTC").strip() or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def last_expected_fire(reminder_time: str, timezone_name: str | None, now_utc: datetime) -> datetime:
    """Most recent instant (UTC) at or before now_utc when the daily trigger should have fired."""
    tz = _tzinfo(timezone_name)
    hh, mm = _parse_hhmm(reminder_time)
    local_now = now_utc.astimezone(tz)
    candidate = local_now.replace(hour=hh, minute=mm, second=0, microsecond=0)
    if candidate > local_now:
        candidate = (local_now - timedelta(days=1)).replace(hour=hh, minute=mm, second=0, microsecond=0)
    return candidate.astimezone(timezone.utc)


def next_fire(reminder_time: str, timezone_name: str | None, now_utc: datetime) -> datetime:
    tz = _tzinfo(timezone_name)
    hh, mm = _parse_hhmm(reminder_time)
    local_now = now_utc.astimezone(tz)
    candidate = local_now.replace(hour=hh, minute=mm, second=0, microsecond=0)
    if candidate <= local_now:
        candidate = (local_now + timedelta(days=1)).replace(hour=hh, minute=mm, second=0, microsecond=0)
    return candidate.astimezone(timezone.utc)


def is_schedulable(settings: NotificationSettings) -> bool:
    return bool(settings.reminder_enabled and settings.reminder_time)


async def reminder_loop(*, reminder_service, reminder_time: str, timezone_name: str) -> None:
    while True:
        now = datetime.fromtimestamp(reminder_service.now_ts(), tz=timezone.utc)
        due = next_fire(reminder_time, timezone_name, now)
        await asyncio.sleep(max(1.0, (due - now).total_seconds()))
        try:
            await reminder_service.run_check()
        except Exception as e:
            print(f"[Reminder] loop error: {e}")


class ReminderService:
    """
    Daily "missing archive" reminder.

    A send is marked in notification_settings before delivery and rolled
    back if delivery fails or is cancelled, so each missing day is announced at most once
    and a failed send is retried on the next run.
    """

    def __init__(
        self,
        *,
        db_lock,
        db_conn,
        sender,
        dialogue,
        default_timezone: str = "UTC",
        default_channel_id: int = 0,
        now_func: Callable[[], float] | None = None,
    ) -> None:
        self.db_lock = db_lock
        self.db_conn = db_conn
        self.sender = sender
        self.dialogue = dialogue
        self.default_timezone = (default_timezone or "UTC").strip() or "UTC"
        self.default_channel_id = int(default_channel_id or 0)
        self._now_func = now_func or time.time
        self._task: asyncio.Task | None = None

    def now_ts(self) -> int:
        return int(self._now_func())

    async def _db(self, fn, *args, **kwargs):
        async with self.db_lock:
            return await asyncio.to_thread(fn, self.db_conn, *args, **kwargs)

    def _timezone_for(self, settings: NotificationSettings) -> str:
        return settings.timezone or self.default_timezone

    async def start(self) -> bool:
        await self.run_catch_up()
        return await self.reschedule()

    async def run_catch_up(self) -> bool:
        settings = await self._db(get_settings_sync)
        if not is_schedulable(settings):
            print("[Reminder] catch-up skipped: reminder disabled or not configured")
            return False
        now = datetime.fromtimestamp(self.now_ts(), tz=timezone.utc)
        expected = last_expected_fire(settings.reminder_time, self._timezone_for(settings), now)
        last_check = int(settings.last_reminder_check_ts or 0)
        if int(expected.timestamp()) <= last_check:
            print("[Reminder] catch-up: no missed runs")
            return False
        print(f"[Reminder] catch-up: missed run expected={expected.isoformat()} last_check={last_check}")
        await self.run_check()
        return True

    def stop(self) -> None:
        task = self._task
        if task is not None and not task.done():
            task.cancel()
        self._task = None

    async def reschedule(self) -> bool:
        self.stop()
        settings = await self._db(get_settings_sync)
        if not is_schedulable(settings):
            print("[Reminder] not scheduled: reminder disabled or not configured")
            return False
        tz_name = self._timezone_for(settings)
        now = datetime.fromtimestamp(self.now_ts(), tz=timezone.utc)
        self._task = asyncio.create_task(
            reminder_loop(reminder_service=self, reminder_time=settings.reminder_time, timezone_name=tz_name)
        )
        print(f"[Reminder] scheduled time={settings.reminder_time} tz={tz_name} next={next_fire(settings.reminder_time, tz_name, now).isoformat()}")
        return True

    @property
    def scheduled(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_check(self) -> tuple[bool, str]:
        run_ts = self.now_ts()
        try:
            return await self._check(run_ts)
        finally:
            await self._db(update_settings_sync, {"last_reminder_check_ts": run_ts})

    async def _check(self, run_ts: int) -> tuple[bool, str]:
        settings = await self._db(get_settings_sync)
        channel_id = int(settings.notification_channel_id or self.default_channel_id or 0)
        if not channel_id:
            print("[Reminder] skipped: no notification channel configured")
            return False, "No notification channel configured."

        newest = await self._db(newest_post_sync)
        if newest is None:
            print("[Reminder] skipped: archive is empty")
            return False, "Archive is empty."

        tz = _tzinfo(self._timezone_for(settings))
        today = datetime.fromtimestamp(run_ts, tz=timezone.utc).astimezone(tz).date()
        newest_date = datetime.fromtimestamp(int(newest.created_ts), tz=timezone.utc).astimezone(tz).date()
        if newest_date >= today:
            print(f"[Reminder] up to date: newest day={newest.day} date={newest_date.isoformat()}")
            return False, "Archive is up to date."

        missing = newest.day + 1
        if settings.last_reminder_sent_day == missing:
            print(f"[Reminder] already sent for day={missing}; skipping")
            return False, f"Reminder for Day {missing} was already sent."

        previous = settings.last_reminder_sent_day
        await self._db(update_settings_sync, {"last_reminder_sent_day": missing})
        text = self.dialogue.render("notification.reminder.missing_day", expected_day=missing, max_day=newest.day)
        try:
            await self.sender.send(channel_id, text)
        except asyncio.CancelledError:
            await self._db(update_settings_sync, {"last_reminder_sent_day": previous})
            print(f"[Reminder] send cancelled for day={missing}; rolled back to {previous}")
            raise
        except Exception as e:
            # Any failure means nothing was delivered, so the day stays eligible.
            await self._db(update_settings_sync, {"last_reminder_sent_day": previous})
            print(f"[Reminder] send failed for day={missing}; rolled back to {previous}: {type(e).__name__}: {e}")
            return False, f"Reminder for Day {missing} could not be delivered."
        print(f"[Reminder] sent for day={missing} channel={channel_id}")
        return True, f"Reminder sent for Day {missing}."
