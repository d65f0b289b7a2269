"""
Command-line entry point for schema migrations.

Usage:
    crm-migrate migrate            # or: up
    crm-migrate rollback           # or: down
    crm-migrate status
    crm-migrate generate "add widgets table"   # or: create
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Sequence

from src.config import Settings, get_settings
from src.database import build_engine
from src.kernel.migrations import MigrationError, MigrationManager, generate_migration
from src.logging_config import configure_logging, get_logger

logger = get_logger(__name__)

_ALIASES = {
    "up": "migrate",
    "down": "rollback",
    "create": "generate",
}


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="CRM schema migration manager")
    parser.add_argument(
        "command",
        choices=["migrate", "up", "rollback", "down", "status", "generate", "create"],
        help="Operation to run",
    )
    parser.add_argument("name", nargs="?", help="Migration name (generate only)")
    parser.add_argument("--database-url", help="Override DATABASE_URL")
    parser.add_argument("--migrations-dir", help="Override MIGRATIONS_DIR")
    return parser.parse_args(argv)


async def _run(command: str, args: argparse.Namespace, settings: Settings) -> int:
    engine = build_engine(args.database_url or settings.database_url)
    manager = MigrationManager(engine, Path(args.migrations_dir or settings.migrations_dir))
    try:
        if command == "migrate":
            applied = await manager.migrate()
            if applied:
                for unit in applied:
                    print(f"Applied   {unit.version}  {unit.name}")
            else:
                print("No pending migrations")
        elif command == "rollback":
            result = await manager.rollback()
            if result.record is None:
                print("No migrations to roll back")
            elif result.rolled_back:
                print(f"Rolled back {result.record.version}")
            else:
                print(f"Warning: migration {result.record.version} has no rollback script")
        elif command == "status":
            statuses = await manager.status()
            if not statuses:
                print("No migration files found")
            for status in statuses:
                suffix = f" ({status.applied_at})" if status.applied else ""
                print(f"{status.state:<8} | {status.version} | {status.name}{suffix}")
    finally:
        await engine.dispose()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )
    command = _ALIASES.get(args.command, args.command)

    if command == "generate":
        if not args.name:
            print("Error: a migration name is required", file=sys.stderr)
            print('Usage: crm-migrate generate "add user preferences"', file=sys.stderr)
            return 1
        try:
            path = generate_migration(Path(args.migrations_dir or settings.migrations_dir), args.name)
        except (ValueError, FileExistsError) as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        print(f"Created {path}")
        return 0

    try:
        return asyncio.run(_run(command, args, settings))
    except MigrationError as exc:
        logger.error("Migration command failed", extra={"command": command, "version": exc.version})
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
