"""
Schema migrations: versioned SQL units tracked in a ledger table.
"""

from src.kernel.migrations.manager import (
    LEDGER_TABLE,
    MigrationError,
    MigrationManager,
    MigrationRecord,
    MigrationStatus,
    MigrationUnit,
    RollbackResult,
    display_name,
    generate_migration,
)
from src.kernel.migrations.splitter import split_sql_statements

__all__ = [
    "LEDGER_TABLE",
    "MigrationError",
    "MigrationManager",
    "MigrationRecord",
    "MigrationStatus",
    "MigrationUnit",
    "RollbackResult",
    "display_name",
    "generate_migration",
    "split_sql_statements",
]
