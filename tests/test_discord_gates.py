from __future__ import annotations

import unittest
from types import SimpleNamespace
from unittest import mock

try:
    from misc.discord_gates import can_resolve_archive, message_in_archive_channels
except ModuleNotFoundError:
    can_resolve_archive = None
    message_in_archive_channels = None


@unittest.skipIf(message_in_archive_channels is None, "discord.py not installed")
class DiscordGatesTests(unittest.TestCase):
    def test_dm_is_never_an_archive_channel(self):
        message = SimpleNamespace(
            guild=None,
            channel=SimpleNamespace(id=123),
        )
        self.assertFalse(message_in_archive_channels(message, {123}))

    def test_empty_allowlist_watches_every_guild_channel(self):
        message = SimpleNamespace(
            guild=SimpleNamespace(id=1),
            channel=SimpleNamespace(id=999),
        )
        self.assertTrue(message_in_archive_channels(message, set()))

    def test_listed_channel_is_watched(self):
        message = SimpleNamespace(
            guild=SimpleNamespace(id=1),
            channel=SimpleNamespace(id=123),
        )
        self.assertTrue(message_in_archive_channels(message, {123}))

    def test_unlisted_channel_is_skipped(self):
        message = SimpleNamespace(
            guild=SimpleNamespace(id=1),
            channel=SimpleNamespace(id=999),
        )
        self.assertFalse(message_in_archive_channels(message, {123}))

    def test_thread_parent_allowlist_is_honored(self):
        class FakeThread:
            def __init__(self, channel_id: int, parent_id: int):
                self.id = int(channel_id)
                self.parent = SimpleNamespace(id=int(parent_id))

        message = SimpleNamespace(
            guild=SimpleNamespace(id=1),
            channel=FakeThread(channel_id=777, parent_id=123),
        )
        with mock.patch("misc.discord_gates.discord.Thread", FakeThread):
            self.assertTrue(message_in_archive_channels(message, {123}))


@unittest.skipIf(can_resolve_archive is None, "discord.py not installed")
class ArchiveAuthorizationTests(unittest.TestCase):
    def _user(self, user_id: int = 5, *, manage_guild=False, administrator=False, role_ids=()):
        return SimpleNamespace(
            id=user_id,
            guild_permissions=SimpleNamespace(manage_guild=manage_guild, administrator=administrator),
            roles=[SimpleNamespace(id=r) for r in role_ids],
        )

    def test_owner_is_allowed(self):
        self.assertTrue(can_resolve_archive(self._user(42), owner_user_ids={42}))

    def test_manage_guild_or_admin_is_allowed(self):
        self.assertTrue(can_resolve_archive(self._user(manage_guild=True)))
        self.assertTrue(can_resolve_archive(self._user(administrator=True)))

    def test_admin_role_is_allowed(self):
        self.assertTrue(can_resolve_archive(self._user(role_ids=(9, 10)), admin_role_id=10))

    def test_everyone_else_is_denied(self):
        self.assertFalse(can_resolve_archive(self._user(role_ids=(9,)), admin_role_id=10, owner_user_ids={1}))
        self.assertFalse(can_resolve_archive(None))
        self.assertFalse(can_resolve_archive(SimpleNamespace(id=3)))


if __name__ == "__main__":
    unittest.main()
