"""Runs the Alembic migration chain against a throwaway SQLite file."""

import argparse
import tempfile
import unittest
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

ROOT = Path(__file__).resolve().parent.parent


def _alembic_config(db_url: str) -> Config:
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "alembic"))
    cfg.cmd_opts = argparse.Namespace(x=[f"db_url={db_url}"])
    return cfg


class TestUsersMigration(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.db_url = f"sqlite:///{Path(self._tmp.name) / 'migrate.db'}"
        self.cfg = _alembic_config(self.db_url)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_upgrade_uses_command_line_url(self) -> None:
        command.upgrade(self.cfg, "head")
        engine = create_engine(self.db_url)
        try:
            inspector = inspect(engine)
            self.assertIn("users", inspector.get_table_names())
            columns = {c["name"] for c in inspector.get_columns("users")}
            self.assertTrue({"refresh_token", "external_id", "is_active"} <= columns)
            unique = {ix["name"] for ix in inspector.get_indexes("users") if ix["unique"]}
            self.assertEqual(unique, {"ix_users_username", "ix_users_email"})
        finally:
            engine.dispose()

    def test_downgrade_drops_table(self) -> None:
        command.upgrade(self.cfg, "head")
        command.downgrade(self.cfg, "base")
        engine = create_engine(self.db_url)
        try:
            self.assertNotIn("users", inspect(engine).get_table_names())
        finally:
            engine.dispose()


if __name__ == "__main__":
    unittest.main()
