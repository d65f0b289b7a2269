"""
Schema migration manager.

Migration units are ``<version>_<name>.sql`` files applied in ascending
version order. Each unit runs inside its own transaction together with its
ledger row, so a unit is either fully applied or not applied at all.

Unit file layout::

    -- forward statements
    CREATE TABLE widgets (...);

    -- migrate:down
    DROP TABLE widgets;

Everything after the ``-- migrate:down`` line is the rollback script; it is
stored in the ledger when the unit is applied.
"""

import asyncio
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from src.kernel.migrations.splitter import split_sql_statements, strip_comments
from src.logging_config import get_logger

logger = get_logger(__name__)

LEDGER_TABLE = "schema_migrations"

_LEDGER_DDL = {
    "sqlite": f"""
        CREATE TABLE IF NOT EXISTS {LEDGER_TABLE} (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            version TEXT UNIQUE NOT NULL,
            name TEXT,
            applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            rollback_sql TEXT
        )
    """,
    "postgresql": f"""
        CREATE TABLE IF NOT EXISTS {LEDGER_TABLE} (
            id SERIAL PRIMARY KEY,
            version TEXT UNIQUE NOT NULL,
            name TEXT,
            applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            rollback_sql TEXT
        )
    """,
}

DOWN_MARKER = "-- migrate:down"
_DOWN_MARKER_LINE = re.compile(r"^[ \t]*--[ \t]*migrate:down[ \t]*$", re.IGNORECASE | re.MULTILINE)
_SELF_REGISTERING = re.compile(rf"\bINTO\s+{LEDGER_TABLE}\b", re.IGNORECASE)
_VERSION_PREFIX = re.compile(r"^\d+_")


class MigrationError(Exception):
    """A migration unit or rollback failed; its transaction was rolled back."""

    def __init__(self, version: str, message: str):
        self.version = version
        super().__init__(f"Migration {version} failed: {message}")


def display_name(stem: str) -> str:
    """``20260101120000_add_widgets_table`` -> ``Add Widgets Table``."""
    words = _VERSION_PREFIX.sub("", stem).replace("_", " ").split()
    return " ".join(word[:1].upper() + word[1:].lower() for word in words)


def split_up_down(script: str) -> Tuple[str, Optional[str]]:
    """Separate the forward script from the optional rollback script."""
    match = _DOWN_MARKER_LINE.search(script)
    if not match:
        return script, None
    down = script[match.end():].strip()
    if not strip_comments(down).strip():
        down = ""
    return script[:match.start()], (down or None)


@dataclass(frozen=True)
class MigrationUnit:
    """One migration file on disk."""

    version: str
    name: str
    path: Path

    @classmethod
    def from_path(cls, path: Path) -> "MigrationUnit":
        return cls(version=path.stem, name=display_name(path.stem), path=path)


@dataclass(frozen=True)
class MigrationRecord:
    """One row of the ledger table."""

    version: str
    name: Optional[str]
    applied_at: str
    rollback_sql: Optional[str] = None


@dataclass(frozen=True)
class MigrationStatus:
    version: str
    name: str
    applied_at: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.applied_at is not None

    @property
    def state(self) -> str:
        return "applied" if self.applied else "pending"


@dataclass(frozen=True)
class RollbackResult:
    """Outcome of ``rollback()``; ``record`` is None when nothing was applied."""

    record: Optional[MigrationRecord]
    rolled_back: bool


class MigrationManager:
    """
    Applies, rolls back and reports migration units against one database.

    Assumes a single runner at a time; there is no cross-process lock.
    """

    def __init__(self, engine: AsyncEngine, migrations_dir: Path | str):
        self.engine = engine
        self.migrations_dir = Path(migrations_dir)

    async def ensure_ledger(self) -> None:
        """Create the ledger table if it does not exist."""
        ddl = _LEDGER_DDL.get(self.engine.dialect.name, _LEDGER_DDL["sqlite"])
        async with self.engine.begin() as conn:
            await conn.exec_driver_sql(ddl)

    def discover(self) -> List[MigrationUnit]:
        """All ``<version>_<name>.sql`` unit files, sorted by version."""
        if not self.migrations_dir.is_dir():
            return []
        units = []
        for path in self.migrations_dir.glob("*.sql"):
            if not _VERSION_PREFIX.match(path.stem):
                logger.warning("Skipping file without a version prefix", extra={"file": path.name})
                continue
            units.append(MigrationUnit.from_path(path))
        return sorted(units, key=lambda unit: unit.version)

    async def applied(self) -> Dict[str, MigrationRecord]:
        """Ledger rows keyed by version."""
        async with self.engine.connect() as conn:
            result = await conn.execute(
                text(
                    f"SELECT version, name, applied_at, rollback_sql "
                    f"FROM {LEDGER_TABLE} ORDER BY version"
                )
            )
            return {
                row.version: MigrationRecord(
                    version=row.version,
                    name=row.name,
                    applied_at=str(row.applied_at),
                    rollback_sql=row.rollback_sql,
                )
                for row in result
            }

    async def pending(self) -> List[MigrationUnit]:
        await self.ensure_ledger()
        applied = await self.applied()
        return [unit for unit in self.discover() if unit.version not in applied]

    async def migrate(self) -> List[MigrationUnit]:
        """
        Apply every pending unit in version order.

        Stops at the first failing unit and raises MigrationError; units
        applied before it stay applied.
        """
        pending = await self.pending()
        if not pending:
            logger.info("No pending migrations")
            return []

        logger.info("Applying migrations", extra={"pending": len(pending)})
        applied: List[MigrationUnit] = []
        for unit in pending:
            await self._apply(unit)
            applied.append(unit)
        logger.info("All migrations applied", extra={"applied": len(applied)})
        return applied

    async def _apply(self, unit: MigrationUnit) -> None:
        script = await asyncio.to_thread(unit.path.read_text, encoding="utf-8")
        up_sql, down_sql = split_up_down(script)
        statements = split_sql_statements(up_sql)
        self_registering = bool(_SELF_REGISTERING.search(strip_comments(up_sql)))

        logger.info("Applying migration", extra={"version": unit.version, "statements": len(statements)})
        try:
            async with self.engine.begin() as conn:
                for statement in statements:
                    await conn.exec_driver_sql(statement)
                if not self_registering:
                    await conn.execute(
                        text(
                            f"INSERT INTO {LEDGER_TABLE} (version, name, applied_at, rollback_sql) "
                            "VALUES (:version, :name, :applied_at, :rollback_sql)"
                        ),
                        {
                            "version": unit.version,
                            "name": unit.name,
                            "applied_at": _utcnow(),
                            "rollback_sql": down_sql,
                        },
                    )
                elif down_sql:
                    await conn.execute(
                        text(
                            f"UPDATE {LEDGER_TABLE} SET rollback_sql = :rollback_sql "
                            "WHERE version = :version AND rollback_sql IS NULL"
                        ),
                        {"version": unit.version, "rollback_sql": down_sql},
                    )
        except Exception as exc:
            logger.error(
                "Migration failed, transaction rolled back",
                extra={"version": unit.version, "error": str(exc)},
            )
            raise MigrationError(unit.version, str(exc)) from exc

        logger.info("Migration applied", extra={"version": unit.version})

    async def rollback(self) -> RollbackResult:
        """
        Undo the most recently applied unit using its stored rollback script.

        A unit without a rollback script is left in place with a warning.
        """
        await self.ensure_ledger()
        applied = await self.applied()
        if not applied:
            logger.info("No migrations to roll back")
            return RollbackResult(record=None, rolled_back=False)

        last = applied[max(applied)]
        if not last.rollback_sql:
            logger.warning("Migration has no rollback script", extra={"version": last.version})
            return RollbackResult(record=last, rolled_back=False)

        try:
            async with self.engine.begin() as conn:
                for statement in split_sql_statements(last.rollback_sql):
                    await conn.exec_driver_sql(statement)
                await conn.execute(
                    text(f"DELETE FROM {LEDGER_TABLE} WHERE version = :version"),
                    {"version": last.version},
                )
        except Exception as exc:
            logger.error(
                "Rollback failed, transaction rolled back",
                extra={"version": last.version, "error": str(exc)},
            )
            raise MigrationError(last.version, str(exc)) from exc

        logger.info("Migration rolled back", extra={"version": last.version})
        return RollbackResult(record=last, rolled_back=True)

    async def status(self) -> List[MigrationStatus]:
        """Every discovered unit with its applied timestamp, if any."""
        await self.ensure_ledger()
        applied = await self.applied()
        return [
            MigrationStatus(
                version=unit.version,
                name=unit.name,
                applied_at=applied[unit.version].applied_at if unit.version in applied else None,
            )
            for unit in self.discover()
        ]

    def generate(self, name: str, now: Optional[datetime] = None) -> Path:
        """Write a new empty unit into this manager's directory."""
        return generate_migration(self.migrations_dir, name, now)


def generate_migration(migrations_dir: Path | str, name: str, now: Optional[datetime] = None) -> Path:
    """
    Write an empty, timestamp-prefixed unit file and return its path.

    Does not touch the database.

    Raises:
        ValueError: name has no usable characters
        FileExistsError: a unit with the same version already exists
    """
    migrations_dir = Path(migrations_dir)
    slug = re.sub(r"[^a-z0-9]+", "_", name.strip().lower()).strip("_")
    if not slug:
        raise ValueError("Migration name is required")

    now = now or datetime.now(timezone.utc)
    version = f"{now:%Y%m%d%H%M%S}_{slug}"
    title = display_name(version)
    path = migrations_dir / f"{version}.sql"

    template = (
        f"-- Migration: {title}\n"
        f"-- Created: {now:%Y-%m-%d}\n"
        "\n"
        "-- Add your SQL here, for example:\n"
        "-- CREATE TABLE IF NOT EXISTS example_table (\n"
        "--   id TEXT PRIMARY KEY,\n"
        "--   name TEXT NOT NULL,\n"
        "--   created_at TEXT DEFAULT (datetime('now'))\n"
        "-- );\n"
        "\n"
        f"{DOWN_MARKER}\n"
        "-- Statements that undo the forward script, for example:\n"
        "-- DROP TABLE IF EXISTS example_table;\n"
    )

    migrations_dir.mkdir(parents=True, exist_ok=True)
    with path.open("x", encoding="utf-8") as fh:
        fh.write(template)
    logger.info("Migration created", extra={"version": version, "path": str(path)})
    return path


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")
