from __future__ import annotations

import shutil
import tempfile
import unittest
from pathlib import Path

from archive.errors import SchemaError
from db.migrate import (
    apply_sqlite_migrations,
    connect_sqlite,
    table_columns_sync,
    verify_schema_sync,
)


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


class MigrationTests(unittest.TestCase):
    def setUp(self):
        self.conn = connect_sqlite(":memory:")

    def tearDown(self):
        self.conn.close()

    def test_fresh_database_gets_full_schema(self):
        applied = apply_sqlite_migrations(self.conn, str(_repo_root() / "migrations"))
        self.assertEqual(applied, ["0001", "0002"])
        verify_schema_sync(self.conn)
        self.assertIn("anchor_ts", table_columns_sync(self.conn, "archive_sessions"))

    def test_second_run_is_a_no_op(self):
        apply_sqlite_migrations(self.conn, str(_repo_root() / "migrations"))
        self.assertEqual(apply_sqlite_migrations(self.conn, str(_repo_root() / "migrations")), [])

    def test_edited_migration_is_refused(self):
        with tempfile.TemporaryDirectory() as td:
            target = Path(td) / "migrations"
            shutil.copytree(_repo_root() / "migrations", target)
            apply_sqlite_migrations(self.conn, str(target))

            core = target / "0001_archive_core.sql"
            core.write_text(core.read_text(encoding="utf-8") + "\n-- edited\n", encoding="utf-8")
            with self.assertRaises(SchemaError):
                apply_sqlite_migrations(self.conn, str(target))

    def test_missing_directory_is_an_error(self):
        with self.assertRaises(SchemaError):
            apply_sqlite_migrations(self.conn, str(_repo_root() / "no_such_migrations"))

    def test_verify_reports_missing_columns(self):
        apply_sqlite_migrations(self.conn, str(_repo_root() / "migrations"))
        with self.assertRaises(SchemaError):
            verify_schema_sync(self.conn, {"posts": ["day", "not_a_column"]})
        with self.assertRaises(SchemaError):
            verify_schema_sync(self.conn, {"no_such_table": ["id"]})


if __name__ == "__main__":
    unittest.main()
