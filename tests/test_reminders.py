from __future__ import annotations

import asyncio
import unittest
from datetime import datetime, timezone
from pathlib import Path

from archive.errors import DeliveryFailure
from archive.settings_store import NotificationSettings, get_settings_sync, update_settings_sync
from archive.store import create_post_with_media_sync
from db.migrate import apply_sqlite_migrations, connect_sqlite
from jobs.reminders import ReminderService, is_schedulable, last_expected_fire, next_fire


NOTIFY_CHANNEL = 555


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


def _ts(*args) -> int:
    return int(datetime(*args, tzinfo=timezone.utc).timestamp())


class _Clock:
    def __init__(self, now: int):
        self.now = int(now)

    def __call__(self) -> float:
        return float(self.now)


class _FakeSender:
    def __init__(self, *, fail: bool = False):
        self.fail = fail
        self.sent: list[tuple[int, str]] = []

    async def send(self, channel_id: int, text: str) -> None:
        if self.fail:
            raise DeliveryFailure("channel gone")
        self.sent.append((int(channel_id), text))


class _RaisingSender:
    def __init__(self, error: BaseException):
        self.error = error

    async def send(self, channel_id: int, text: str) -> None:
        raise self.error


class _Dialogue:
    def render(self, key: str, **values) -> str:
        return f"{key} expected={values.get('expected_day')} max={values.get('max_day')}"


class ScheduleMathTests(unittest.TestCase):
    def test_next_and_last_fire_in_utc(self):
        now = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
        self.assertEqual(next_fire("09:30", "UTC", now), datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc))
        self.assertEqual(last_expected_fire("09:30", "UTC", now), datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc))
        self.assertEqual(next_fire("11:00", "UTC", now), datetime(2026, 3, 1, 11, 0, tzinfo=timezone.utc))
        self.assertEqual(last_expected_fire("11:00", "UTC", now), datetime(2026, 2, 28, 11, 0, tzinfo=timezone.utc))

    def test_local_timezone_is_honored(self):
        # Berlin is UTC+1 in January.
        now = datetime(2026, 1, 10, 18, 30, tzinfo=timezone.utc)
        self.assertEqual(next_fire("20:00", "Europe/Berlin", now), datetime(2026, 1, 10, 19, 0, tzinfo=timezone.utc))

    def test_unknown_timezone_falls_back_to_utc(self):
        now = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
        self.assertEqual(next_fire("12:00", "Nowhere/Special", now), datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))

    def test_is_schedulable(self):
        self.assertFalse(is_schedulable(NotificationSettings()))
        self.assertFalse(is_schedulable(NotificationSettings(reminder_enabled=True)))
        self.assertTrue(is_schedulable(NotificationSettings(reminder_enabled=True, reminder_time="20:00")))


class ReminderServiceTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.conn = connect_sqlite(":memory:")
        apply_sqlite_migrations(self.conn, str(_repo_root() / "migrations"))
        update_settings_sync(
            self.conn,
            {
                "reminder_enabled": True,
                "reminder_time": "20:00",
                "timezone": "UTC",
                "notification_channel_id": NOTIFY_CHANNEL,
            },
        )
        self.clock = _Clock(_ts(2026, 3, 10, 20, 0))
        self.sender = _FakeSender()
        self.service = self._service(self.sender)

    async def asyncTearDown(self):
        self.service.stop()
        self.conn.close()

    def _service(self, sender) -> ReminderService:
        return ReminderService(
            db_lock=asyncio.Lock(),
            db_conn=self.conn,
            sender=sender,
            dialogue=_Dialogue(),
            default_timezone="UTC",
            now_func=self.clock,
        )

    def _seed(self, day: int, created_ts: int):
        create_post_with_media_sync(
            self.conn,
            day=day,
            message_id=1000 + day,
            channel_id=1,
            user_id=2,
            created_ts=created_ts,
            media_urls=["https://cdn.example/x.png"],
        )

    async def test_missing_day_is_announced_once(self):
        self._seed(10, _ts(2026, 3, 9, 12, 0))

        sent, _ = await self.service.run_check()
        self.assertTrue(sent)
        self.assertEqual(self.sender.sent, [(NOTIFY_CHANNEL, "notification.reminder.missing_day expected=11 max=10")])
        settings = get_settings_sync(self.conn)
        self.assertEqual(settings.last_reminder_sent_day, 11)
        self.assertEqual(settings.last_reminder_check_ts, self.clock.now)

        self.clock.now += 86400
        sent, _ = await self.service.run_check()
        self.assertFalse(sent)
        self.assertEqual(len(self.sender.sent), 1)

    async def test_up_to_date_archive_sends_nothing(self):
        self._seed(10, _ts(2026, 3, 10, 8, 0))
        sent, _ = await self.service.run_check()
        self.assertFalse(sent)
        self.assertEqual(self.sender.sent, [])
        self.assertEqual(get_settings_sync(self.conn).last_reminder_check_ts, self.clock.now)

    async def test_empty_archive_sends_nothing(self):
        sent, _ = await self.service.run_check()
        self.assertFalse(sent)
        self.assertEqual(self.sender.sent, [])

    async def test_day_boundary_uses_configured_timezone(self):
        # 23:30 UTC on the 9th is already the 10th in Tokyo.
        update_settings_sync(self.conn, {"timezone": "Asia/Tokyo"})
        self._seed(10, _ts(2026, 3, 9, 23, 30))
        self.clock.now = _ts(2026, 3, 10, 11, 0)
        sent, _ = await self.service.run_check()
        self.assertFalse(sent)

    async def test_failed_delivery_rolls_back_and_retries(self):
        self._seed(10, _ts(2026, 3, 9, 12, 0))
        self.service = self._service(_FakeSender(fail=True))

        sent, _ = await self.service.run_check()
        self.assertFalse(sent)
        settings = get_settings_sync(self.conn)
        self.assertIsNone(settings.last_reminder_sent_day)
        self.assertEqual(settings.last_reminder_check_ts, self.clock.now)

        self.service = self._service(self.sender)
        sent, _ = await self.service.run_check()
        self.assertTrue(sent)
        self.assertEqual(get_settings_sync(self.conn).last_reminder_sent_day, 11)

    async def test_unexpected_send_error_rolls_back(self):
        self._seed(10, _ts(2026, 3, 9, 12, 0))
        self.service = self._service(_RaisingSender(ConnectionResetError("socket closed")))

        sent, msg = await self.service.run_check()
        self.assertFalse(sent)
        self.assertIn("could not be delivered", msg)
        self.assertIsNone(get_settings_sync(self.conn).last_reminder_sent_day)

    async def test_cancelled_send_rolls_back_and_propagates(self):
        self._seed(10, _ts(2026, 3, 9, 12, 0))
        update_settings_sync(self.conn, {"last_reminder_sent_day": 9})
        self.service = self._service(_RaisingSender(asyncio.CancelledError()))

        with self.assertRaises(asyncio.CancelledError):
            await self.service.run_check()
        self.assertEqual(get_settings_sync(self.conn).last_reminder_sent_day, 9)

    async def test_catch_up_runs_single_missed_check(self):
        self._seed(10, _ts(2026, 3, 8, 12, 0))
        update_settings_sync(self.conn, {"last_reminder_check_ts": _ts(2026, 3, 7, 20, 0)})
        self.clock.now = _ts(2026, 3, 10, 9, 0)

        self.assertTrue(await self.service.run_catch_up())
        self.assertEqual(len(self.sender.sent), 1)
        self.assertFalse(await self.service.run_catch_up())
        self.assertEqual(len(self.sender.sent), 1)

    async def test_catch_up_skipped_when_disabled(self):
        update_settings_sync(self.conn, {"reminder_enabled": False})
        self._seed(10, _ts(2026, 3, 8, 12, 0))
        self.assertFalse(await self.service.run_catch_up())
        self.assertEqual(self.sender.sent, [])

    async def test_reschedule_tracks_settings(self):
        self.assertTrue(await self.service.reschedule())
        self.assertTrue(self.service.scheduled)

        update_settings_sync(self.conn, {"reminder_enabled": False})
        self.assertFalse(await self.service.reschedule())
        self.assertFalse(self.service.scheduled)

    async def test_missing_channel_skips(self):
        update_settings_sync(self.conn, {"notification_channel_id": None})
        self._seed(10, _ts(2026, 3, 9, 12, 0))
        sent, _ = await self.service.run_check()
        self.assertFalse(sent)
        self.assertEqual(self.sender.sent, [])


if __name__ == "__main__":
    unittest.main()
