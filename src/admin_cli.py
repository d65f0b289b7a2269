"""
Command-line user administration for bootstrapping and recovery.

Usage:
    crm-admin create-admin "Jane Owner" owner@example.com
    crm-admin reset-password owner@example.com

Passwords are prompted for unless ``--password`` is given. ``create-admin`` applies
pending migrations first, so it works against a fresh database.
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import sys
from pathlib import Path
from typing import Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from src.config import Settings, get_settings
from src.database import build_engine, build_session_maker
from src.kernel.identity.identity_service import IdentityService
from src.kernel.identity.password import hash_password
from src.kernel.migrations import MigrationError, MigrationManager
from src.kernel.models.user import UserRole
from src.logging_config import configure_logging, get_logger

logger = get_logger(__name__)


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="CRM user administration")
    parser.add_argument("--database-url", help="Override DATABASE_URL")
    parser.add_argument("--migrations-dir", help="Override MIGRATIONS_DIR")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-admin", help="Create an administrator account")
    create.add_argument("name")
    create.add_argument("email")
    create.add_argument("--password")

    reset = sub.add_parser("reset-password", help="Set a new password for an account")
    reset.add_argument("email")
    reset.add_argument("--password")
    return parser.parse_args(argv)


async def create_admin(
    database_url: str,
    name: str,
    email: str,
    password: str,
    migrations_dir: Optional[Path] = None,
) -> bool:
    """Create an administrator. Returns False if the email is taken."""
    engine = build_engine(database_url)
    try:
        if migrations_dir is not None:
            await MigrationManager(engine, migrations_dir).migrate()
        async with build_session_maker(engine)() as session:
            try:
                user = await IdentityService(session).register_user(
                    name=name,
                    email=email,
                    password=password,
                    role=UserRole.ADMINISTRATOR,
                )
            except ValueError:
                return False
            await session.commit()
            logger.info("Administrator created", extra={"user_id": str(user.id)})
            return True
    finally:
        await engine.dispose()


async def reset_password(database_url: str, email: str, password: str) -> bool:
    """Replace a user's password hash. Returns False for an unknown email."""
    engine = build_engine(database_url)
    try:
        async with build_session_maker(engine)() as session:
            user = await IdentityService(session).get_user_by_email(email)
            if user is None:
                return False
            user.password_hash = hash_password(password)
            await session.commit()
            logger.warning("Password reset from command line", extra={"user_id": str(user.id)})
            return True
    finally:
        await engine.dispose()


def _read_password(given: Optional[str]) -> str:
    if given:
        return given
    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Repeat password: "):
        raise ValueError("Passwords do not match")
    return password


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    settings: Settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )
    database_url = args.database_url or settings.database_url
    migrations_dir = Path(args.migrations_dir or settings.migrations_dir)

    try:
        password = _read_password(args.password)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    if len(password) < 8:
        print("Error: password must be at least 8 characters", file=sys.stderr)
        return 1

    if args.command == "create-admin":
        operation = create_admin(database_url, args.name, args.email, password, migrations_dir)
    else:
        operation = reset_password(database_url, args.email, password)
    try:
        done = asyncio.run(operation)
    except MigrationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except SQLAlchemyError as exc:
        logger.error("Admin command failed", extra={"command": args.command, "error": str(exc)})
        print("Error: database is not ready. Run `crm-migrate migrate` first.", file=sys.stderr)
        return 1

    if args.command == "create-admin":
        if not done:
            print(f"Error: {args.email} is already registered", file=sys.stderr)
            return 1
        print(f"Created administrator {args.email}")
    else:
        if not done:
            print(f"Error: no user with email {args.email}", file=sys.stderr)
            return 1
        print(f"Password updated for {args.email}")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
