from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path

import yaml

from misc.dialogue import FALLBACK_TEXT, DialogueCatalog


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


class DialogueCatalogTests(unittest.TestCase):
    def setUp(self):
        self._td = tempfile.TemporaryDirectory()
        self.path = Path(self._td.name) / "dialogue.yml"
        self._write({"error": {"generic": "Oops."}, "archive": {"resolved": "Archived as Day {day}."}})

    def tearDown(self):
        self._td.cleanup()

    def _write(self, payload: dict):
        self.path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")

    def test_nested_keys_are_dotted(self):
        catalog = DialogueCatalog(str(self.path))
        self.assertTrue(catalog.has("archive.resolved"))
        self.assertEqual(catalog.render("archive.resolved", day=7), "Archived as Day 7.")

    def test_missing_key_falls_back_to_generic(self):
        catalog = DialogueCatalog(str(self.path))
        self.assertEqual(catalog.render("archive.nope"), "Oops.")

    def test_missing_generic_uses_builtin_text(self):
        self._write({"archive": {"resolved": "x"}})
        self.assertEqual(DialogueCatalog(str(self.path)).render("archive.nope"), FALLBACK_TEXT)

    def test_unknown_placeholder_is_left_in_place(self):
        catalog = DialogueCatalog(str(self.path))
        self.assertEqual(catalog.render("archive.resolved"), "Archived as Day {day}.")

    def test_file_change_is_picked_up(self):
        catalog = DialogueCatalog(str(self.path))
        catalog.render("archive.resolved", day=1)
        self._write({"error": {"generic": "Oops."}, "archive": {"resolved": "Saved Day {day}."}})
        stat = self.path.stat()
        os.utime(self.path, (stat.st_atime, stat.st_mtime + 10))
        self.assertEqual(catalog.render("archive.resolved", day=2), "Saved Day 2.")

    def test_shipped_catalog_has_every_prompt(self):
        catalog = DialogueCatalog(str(_repo_root() / "config" / "dialogue.yml"))
        for key in (
            "archive.prompt.sequence",
            "archive.prompt.multi_day",
            "archive.prompt.low_confidence",
            "archive.prompt.media_only",
            "archive.button.force",
            "archive.button.confirm",
            "archive.button.ignore",
            "archive.button.add",
            "archive.button.not_archive",
            "archive.modal.title",
            "archive.modal.label",
            "archive.resolved",
            "archive.expired",
            "notification.reminder.missing_day",
        ):
            self.assertTrue(catalog.has(key), key)

    def test_missing_file_raises(self):
        with self.assertRaises(RuntimeError):
            DialogueCatalog(str(Path(self._td.name) / "absent.yml")).strings()


if __name__ == "__main__":
    unittest.main()
