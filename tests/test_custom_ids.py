from __future__ import annotations

import unittest

from archive.custom_ids import (
    ACTION_FORCE,
    ACTION_IGNORE,
    ACTION_SUBMIT_DAY,
    MAX_CUSTOM_ID_LEN,
    NAMESPACE_ARCHIVE,
    archive_button_id,
    archive_modal_id,
    decode_id,
    encode_id,
    int_arg,
)


class CustomIdTests(unittest.TestCase):
    def test_button_id_carries_anchor_channel_and_day(self):
        raw = archive_button_id(ACTION_FORCE, 1122334455667788, 99887766, 12)
        self.assertEqual(raw, "archive:force:1122334455667788:99887766:12")

        parsed = decode_id(raw)
        self.assertEqual(parsed.namespace, NAMESPACE_ARCHIVE)
        self.assertEqual(parsed.action, ACTION_FORCE)
        self.assertEqual(int_arg(parsed, 0), 1122334455667788)
        self.assertEqual(int_arg(parsed, 1), 99887766)
        self.assertEqual(parsed.arg(2), "12")
        self.assertIsNone(parsed.arg(3))

    def test_ignore_has_no_day(self):
        parsed = decode_id(archive_button_id(ACTION_IGNORE, 5, 6))
        self.assertEqual(parsed.args, ("5", "6"))

    def test_modal_id(self):
        parsed = decode_id(archive_modal_id(5, 6))
        self.assertEqual(parsed.action, ACTION_SUBMIT_DAY)
        self.assertEqual(int_arg(parsed, 0), 5)

    def test_unknown_button_action_is_rejected(self):
        with self.assertRaises(ValueError):
            archive_button_id("explode", 1, 2)

    def test_encode_rejects_separator_and_overlong_ids(self):
        with self.assertRaises(ValueError):
            encode_id("archive", "force", "a:b")
        with self.assertRaises(ValueError):
            encode_id("archive", "force", "x" * MAX_CUSTOM_ID_LEN)

    def test_decode_garbage(self):
        self.assertIsNone(decode_id(None))
        self.assertIsNone(decode_id(""))
        self.assertIsNone(decode_id("archive"))
        self.assertIsNone(decode_id(":force"))
        self.assertIsNone(int_arg(decode_id("archive:force:abc"), 0))


if __name__ == "__main__":
    unittest.main()
