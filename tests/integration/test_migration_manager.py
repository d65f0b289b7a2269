"""Integration tests for the migration manager against a temp SQLite file."""

import logging
import re
from datetime import datetime, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy import text

from src.database import build_engine
from src.kernel.migrations import (
    LEDGER_TABLE,
    MigrationError,
    MigrationManager,
    display_name,
    generate_migration,
)
from src.kernel.migrations.manager import split_up_down
from src.kernel.migrations.splitter import strip_comments

REPO_MIGRATIONS = Path(__file__).resolve().parents[2] / "migrations"


@pytest_asyncio.fixture
async def engine(tmp_path: Path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'migrations-test.db'}")
    yield engine
    await engine.dispose()


@pytest.fixture
def units_dir(tmp_path: Path) -> Path:
    path = tmp_path / "units"
    path.mkdir()
    return path


def write_unit(directory: Path, stem: str, body: str) -> Path:
    path = directory / f"{stem}.sql"
    path.write_text(body, encoding="utf-8")
    return path


async def table_exists(engine, name: str) -> bool:
    async with engine.connect() as conn:
        result = await conn.execute(
            text("SELECT name FROM sqlite_master WHERE type = 'table' AND name = :name"),
            {"name": name},
        )
        return result.first() is not None


async def ledger_versions(engine) -> list:
    async with engine.connect() as conn:
        result = await conn.execute(text(f"SELECT version FROM {LEDGER_TABLE} ORDER BY version"))
        return [row.version for row in result]


class TestMigrate:

    @pytest.mark.asyncio
    async def test_applies_units_in_version_order(self, engine, units_dir):
        write_unit(units_dir, "002_second", "CREATE TABLE second_t (a_id INTEGER REFERENCES first_t(id));")
        write_unit(units_dir, "001_first", "CREATE TABLE first_t (id INTEGER PRIMARY KEY);")
        manager = MigrationManager(engine, units_dir)

        applied = await manager.migrate()

        assert [unit.version for unit in applied] == ["001_first", "002_second"]
        assert await ledger_versions(engine) == ["001_first", "002_second"]
        assert await table_exists(engine, "second_t")

    @pytest.mark.asyncio
    async def test_files_without_version_prefix_are_skipped(self, engine, units_dir, caplog):
        write_unit(units_dir, "20260101000000_a", "CREATE TABLE a_t (id INTEGER);")
        write_unit(units_dir, "notes", "CREATE TABLE notes_t (id INTEGER);")
        manager = MigrationManager(engine, units_dir)

        with caplog.at_level(logging.WARNING, logger="src.kernel.migrations.manager"):
            assert [unit.version for unit in manager.discover()] == ["20260101000000_a"]
        assert "without a version prefix" in caplog.text

        await manager.migrate()
        assert await ledger_versions(engine) == ["20260101000000_a"]
        assert not await table_exists(engine, "notes_t")

    @pytest.mark.asyncio
    async def test_second_run_has_nothing_pending(self, engine, units_dir, caplog):
        write_unit(units_dir, "001_first", "CREATE TABLE first_t (id INTEGER PRIMARY KEY);")
        manager = MigrationManager(engine, units_dir)
        await manager.migrate()

        with caplog.at_level(logging.INFO, logger="src.kernel.migrations.manager"):
            assert await manager.migrate() == []
        assert "No pending migrations" in caplog.text
        assert await ledger_versions(engine) == ["001_first"]

    @pytest.mark.asyncio
    async def test_failing_unit_leaves_no_trace(self, engine, units_dir):
        write_unit(
            units_dir,
            "001_broken",
            "CREATE TABLE widgets (id INTEGER PRIMARY KEY);\n"
            "INSERT INTO no_such_table VALUES (1);\n",
        )
        manager = MigrationManager(engine, units_dir)

        with pytest.raises(MigrationError) as exc_info:
            await manager.migrate()

        assert exc_info.value.version == "001_broken"
        assert not await table_exists(engine, "widgets")
        assert await ledger_versions(engine) == []

    @pytest.mark.asyncio
    async def test_failure_stops_later_units_and_keeps_earlier_ones(self, engine, units_dir):
        write_unit(units_dir, "001_ok", "CREATE TABLE ok_t (id INTEGER);")
        write_unit(units_dir, "002_broken", "CREATE TABLE broken_t (id INTEGER);\nSELECT * FROM missing;")
        write_unit(units_dir, "003_later", "CREATE TABLE later_t (id INTEGER);")
        manager = MigrationManager(engine, units_dir)

        with pytest.raises(MigrationError):
            await manager.migrate()

        assert await ledger_versions(engine) == ["001_ok"]
        assert await table_exists(engine, "ok_t")
        assert not await table_exists(engine, "broken_t")
        assert not await table_exists(engine, "later_t")
        assert [unit.version for unit in await manager.pending()] == ["002_broken", "003_later"]

    @pytest.mark.asyncio
    async def test_self_registering_unit_is_not_recorded_twice(self, engine, units_dir):
        write_unit(
            units_dir,
            "001_bootstrap",
            "CREATE TABLE boot_t (id INTEGER);\n"
            f"INSERT INTO {LEDGER_TABLE} (version, name) VALUES ('001_bootstrap', 'Bootstrap');\n"
            "-- migrate:down\n"
            "DROP TABLE boot_t;\n",
        )
        manager = MigrationManager(engine, units_dir)

        await manager.migrate()

        assert await ledger_versions(engine) == ["001_bootstrap"]
        record = (await manager.applied())["001_bootstrap"]
        assert record.rollback_sql == "DROP TABLE boot_t;"

    @pytest.mark.asyncio
    async def test_ledger_mention_in_comment_does_not_count_as_self_registering(self, engine, units_dir):
        write_unit(
            units_dir,
            "001_commented",
            f"-- never INSERT INTO {LEDGER_TABLE} by hand\n"
            "CREATE TABLE c_t (id INTEGER);\n",
        )
        manager = MigrationManager(engine, units_dir)
        await manager.migrate()
        assert await ledger_versions(engine) == ["001_commented"]

    @pytest.mark.asyncio
    async def test_repository_units_apply_cleanly(self, engine):
        manager = MigrationManager(engine, REPO_MIGRATIONS)
        applied = await manager.migrate()

        assert applied
        assert await table_exists(engine, "users")
        assert await manager.pending() == []

    def test_repository_units_avoid_sqlite_only_syntax(self):
        # The shipped units must also run on PostgreSQL
        sqlite_only = [
            re.compile(r"\bCOLLATE\s+NOCASE\b", re.IGNORECASE),
            re.compile(r"\bAUTOINCREMENT\b", re.IGNORECASE),
            re.compile(r"\bDATETIME\b", re.IGNORECASE),
            re.compile(r"\bCREATE\s+TRIGGER\b", re.IGNORECASE),
            re.compile(r"\bBOOLEAN\b[^,]*\bDEFAULT\s+[01]\b", re.IGNORECASE),
        ]
        for path in sorted(REPO_MIGRATIONS.glob("*.sql")):
            sql = strip_comments(path.read_text(encoding="utf-8"))
            for pattern in sqlite_only:
                assert not pattern.search(sql), f"{path.name}: {pattern.pattern}"


class TestRollback:

    @pytest.mark.asyncio
    async def test_rollback_reverts_last_unit(self, engine, units_dir):
        write_unit(units_dir, "001_first", "CREATE TABLE first_t (id INTEGER);\n-- migrate:down\nDROP TABLE first_t;\n")
        write_unit(units_dir, "002_second", "CREATE TABLE second_t (id INTEGER);\n-- migrate:down\nDROP TABLE second_t;\n")
        manager = MigrationManager(engine, units_dir)
        await manager.migrate()

        result = await manager.rollback()

        assert result.rolled_back is True
        assert result.record.version == "002_second"
        assert not await table_exists(engine, "second_t")
        assert await table_exists(engine, "first_t")
        assert [unit.version for unit in await manager.pending()] == ["002_second"]

    @pytest.mark.asyncio
    async def test_rollback_of_repository_unit(self, engine):
        manager = MigrationManager(engine, REPO_MIGRATIONS)
        await manager.migrate()

        result = await manager.rollback()

        assert result.rolled_back is True
        assert not await table_exists(engine, "users")

    @pytest.mark.asyncio
    async def test_unit_with_trigger_applies_and_rolls_back(self, engine, units_dir):
        write_unit(
            units_dir,
            "001_touched",
            "CREATE TABLE touched_t (id INTEGER PRIMARY KEY, hits INTEGER NOT NULL DEFAULT 0);\n"
            "CREATE TRIGGER trg_touched AFTER INSERT ON touched_t\n"
            "BEGIN\n"
            "    UPDATE touched_t SET hits = hits + 1 WHERE id = NEW.id;\n"
            "END;\n"
            "-- migrate:down\n"
            "DROP TRIGGER IF EXISTS trg_touched;\n"
            "DROP TABLE IF EXISTS touched_t;\n",
        )
        manager = MigrationManager(engine, units_dir)
        await manager.migrate()

        async with engine.begin() as conn:
            await conn.execute(text("INSERT INTO touched_t (id) VALUES (1)"))
            hits = (await conn.execute(text("SELECT hits FROM touched_t WHERE id = 1"))).scalar_one()
        assert hits == 1

        result = await manager.rollback()
        assert result.rolled_back is True
        assert not await table_exists(engine, "touched_t")

    @pytest.mark.asyncio
    async def test_unit_without_down_script_is_kept_with_warning(self, engine, units_dir, caplog):
        write_unit(units_dir, "001_forever", "CREATE TABLE forever_t (id INTEGER);\n")
        manager = MigrationManager(engine, units_dir)
        await manager.migrate()

        with caplog.at_level(logging.WARNING, logger="src.kernel.migrations.manager"):
            result = await manager.rollback()

        assert result.rolled_back is False
        assert result.record.version == "001_forever"
        assert "no rollback script" in caplog.text
        assert await ledger_versions(engine) == ["001_forever"]
        assert await table_exists(engine, "forever_t")

    @pytest.mark.asyncio
    async def test_nothing_to_roll_back(self, engine, units_dir):
        result = await MigrationManager(engine, units_dir).rollback()
        assert result.record is None
        assert result.rolled_back is False

    @pytest.mark.asyncio
    async def test_failing_down_script_keeps_ledger_row(self, engine, units_dir):
        write_unit(units_dir, "001_first", "CREATE TABLE first_t (id INTEGER);\n-- migrate:down\nDROP TABLE first_t;\nDROP TABLE missing_t;\n")
        manager = MigrationManager(engine, units_dir)
        await manager.migrate()

        with pytest.raises(MigrationError):
            await manager.rollback()

        assert await ledger_versions(engine) == ["001_first"]
        assert await table_exists(engine, "first_t")


class TestStatusAndGenerate:

    @pytest.mark.asyncio
    async def test_generated_unit_goes_from_pending_to_applied(self, engine, units_dir):
        path = generate_migration(units_dir, "add widgets table", now=datetime(2026, 3, 4, 5, 6, 7, tzinfo=timezone.utc))
        assert path.name == "20260304050607_add_widgets_table.sql"
        manager = MigrationManager(engine, units_dir)

        [before] = await manager.status()
        assert before.name == "Add Widgets Table"
        assert before.state == "pending"
        assert before.applied_at is None

        await manager.migrate()

        [after] = await manager.status()
        assert after.state == "applied"
        assert after.applied_at

    @pytest.mark.asyncio
    async def test_generate_refuses_to_overwrite(self, units_dir):
        now = datetime(2026, 3, 4, 5, 6, 7, tzinfo=timezone.utc)
        generate_migration(units_dir, "add widgets", now=now)
        with pytest.raises(FileExistsError):
            generate_migration(units_dir, "add widgets", now=now)

    def test_generate_requires_a_name(self, units_dir):
        with pytest.raises(ValueError):
            generate_migration(units_dir, "  !!  ")

    @pytest.mark.asyncio
    async def test_status_on_missing_directory(self, engine, tmp_path):
        manager = MigrationManager(engine, tmp_path / "does-not-exist")
        assert await manager.status() == []


def test_display_name():
    assert display_name("20260101120000_add_widgets_table") == "Add Widgets Table"
    assert display_name("001_FIRST") == "First"


def test_split_up_down():
    up, down = split_up_down("CREATE TABLE t (id INTEGER);\n-- migrate:down\nDROP TABLE t;\n")
    assert up.strip() == "CREATE TABLE t (id INTEGER);"
    assert down == "DROP TABLE t;"

    _, comment_only = split_up_down("SELECT 1;\n-- migrate:down\n-- nothing to undo\n")
    assert comment_only is None

    _, missing = split_up_down("SELECT 1;\n")
    assert missing is None
