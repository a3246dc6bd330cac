"""Tests for the migration runner."""

import importlib
from unittest.mock import AsyncMock, MagicMock

import pytest

from fintrack.db.schema.migrate import (
    MIGRATIONS_DIR,
    migrate,
    pending_migrations,
    split_sql_statements,
)

# The package re-exports migrate(), which shadows the submodule attribute
migrate_module = importlib.import_module("fintrack.db.schema.migrate")


class TestSplitStatements:

    def test_splits_top_level(self):
        sql = "CREATE TABLE a (id INT);\nCREATE INDEX idx ON a (id);"

        assert split_sql_statements(sql) == [
            "CREATE TABLE a (id INT);",
            "CREATE INDEX idx ON a (id);",
        ]

    def test_keeps_semicolons_in_literals(self):
        sql = "INSERT INTO t VALUES ('a;b');\nSELECT 1;"

        assert split_sql_statements(sql)[0] == "INSERT INTO t VALUES ('a;b');"

    def test_keeps_dollar_quoted_bodies(self):
        sql = (
            "CREATE FUNCTION touch() RETURNS trigger AS $$\n"
            "BEGIN NEW.updated_at = now(); RETURN NEW; END;\n"
            "$$ LANGUAGE plpgsql;\n"
            "SELECT 1;"
        )

        statements = split_sql_statements(sql)

        assert len(statements) == 2
        assert "RETURN NEW; END;" in statements[0]

    def test_drops_comments(self):
        sql = "-- header; with a semicolon\n/* block; comment */\nSELECT 1;"

        assert split_sql_statements(sql) == ["SELECT 1;"]

    def test_keeps_unterminated_tail(self):
        assert split_sql_statements("SELECT 1;\nSELECT 2") == ["SELECT 1;", "SELECT 2"]

    def test_initial_migration_parses(self):
        sql = (MIGRATIONS_DIR / "001_initial.sql").read_text(encoding="utf-8")

        statements = split_sql_statements(sql)

        assert any("CREATE TABLE IF NOT EXISTS subscriptions" in s for s in statements)
        assert all(s.endswith(";") for s in statements)


class TestPendingMigrations:

    def test_sorted_and_filtered(self, tmp_path):
        for name in ("010_later.sql", "002_second.sql", "001_first.sql", "notes.sql", "003_x.txt"):
            (tmp_path / name).write_text("SELECT 1;")

        pending = pending_migrations(tmp_path, applied={1})

        assert [(v, p.name) for v, p in pending] == [(2, "002_second.sql"), (10, "010_later.sql")]

    def test_bundled_migrations_present(self):
        assert pending_migrations(MIGRATIONS_DIR, applied=set())[0][0] == 1


def _migration_conn(applied_versions, lock_acquired=True):
    conn = AsyncMock()
    conn.fetchval.return_value = lock_acquired
    conn.fetch.return_value = [{"version": v} for v in applied_versions]
    tx = MagicMock()
    tx.__aenter__ = AsyncMock(return_value=None)
    tx.__aexit__ = AsyncMock(return_value=None)
    conn.transaction = MagicMock(return_value=tx)
    return conn


def _patch_pool(monkeypatch, conn):
    acquire = MagicMock()
    acquire.__aenter__ = AsyncMock(return_value=conn)
    acquire.__aexit__ = AsyncMock(return_value=None)
    pool = MagicMock()
    pool.acquire.return_value = acquire

    async def _get_pool():
        return pool

    monkeypatch.setattr(migrate_module, "get_pool", _get_pool)


class TestMigrate:

    @pytest.mark.asyncio
    async def test_applies_pending_in_order(self, monkeypatch, tmp_path):
        (tmp_path / "001_a.sql").write_text("CREATE TABLE a (id INT);")
        (tmp_path / "002_b.sql").write_text("CREATE TABLE b (id INT); CREATE TABLE c (id INT);")
        conn = _migration_conn(applied_versions=[1])
        _patch_pool(monkeypatch, conn)

        applied = await migrate(tmp_path)

        assert applied == 1
        executed = [c.args[0] for c in conn.execute.call_args_list]
        assert "CREATE TABLE b (id INT);" in executed
        assert "CREATE TABLE c (id INT);" in executed
        assert "CREATE TABLE a (id INT);" not in executed
        assert any(c.args[1:] == (2, "002_b.sql") for c in conn.execute.call_args_list)
        assert "pg_advisory_unlock" in executed[-1]

    @pytest.mark.asyncio
    async def test_nothing_pending(self, monkeypatch, tmp_path):
        (tmp_path / "001_a.sql").write_text("SELECT 1;")
        conn = _migration_conn(applied_versions=[1])
        _patch_pool(monkeypatch, conn)

        assert await migrate(tmp_path) == 0
        conn.transaction.assert_not_called()

    @pytest.mark.asyncio
    async def test_lock_held_elsewhere(self, monkeypatch, tmp_path):
        conn = _migration_conn(applied_versions=[], lock_acquired=False)
        _patch_pool(monkeypatch, conn)

        with pytest.raises(RuntimeError, match="currently running"):
            await migrate(tmp_path)

    @pytest.mark.asyncio
    async def test_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            await migrate(tmp_path / "missing")
