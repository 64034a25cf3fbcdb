"""
Database connection and initialization.
"""
from __future__ import annotations

import locale
import sqlite3
import unicodedata
from pathlib import Path

from .migrations import DatabaseMigrator
from .writer import DatabaseWriter

MEMORY_DB = ":memory:"
COLLATION_NAME = "localizedCaseInsensitive"


def _fold(s: str) -> str:
    """Case-fold and strip accents: 'Éric' -> 'eric'."""
    decomposed = unicodedata.normalize("NFKD", s.casefold())
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def localized_case_insensitive_compare(a: str, b: str) -> int:
    """
    Collation for name-like columns. Case never matters; accents only break
    ties between otherwise equal names. Uses the process locale (LC_COLLATE).
    """
    result = locale.strcoll(_fold(a), _fold(b))
    if result == 0:
        result = locale.strcoll(a.casefold(), b.casefold())
    return (result > 0) - (result < 0)


def get_connection(db_path: str | Path = MEMORY_DB) -> sqlite3.Connection:
    """
    Return a new SQLite connection configured for DatabaseWriter.
    Transactions are explicit (isolation_level=None); statements are not
    cached so the change tracker sees every statement being prepared.
    """
    if str(db_path) != MEMORY_DB:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        str(db_path),
        isolation_level=None,
        check_same_thread=False,
        cached_statements=0,
    )
    conn.row_factory = sqlite3.Row
    conn.create_collation(COLLATION_NAME, localized_case_insensitive_compare)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def open_database(
    db_path: str | Path = MEMORY_DB,
    migrator: DatabaseMigrator | None = None,
    erase_database_on_schema_change: bool = False,
) -> DatabaseWriter:
    """
    Open the store, apply pending migrations, and return its single writer.
    Raises MigrationError (and closes the connection) if the schema cannot be
    brought up to date.
    """
    if migrator is None:
        from .schema import default_migrator
        migrator = default_migrator()
    if erase_database_on_schema_change:
        migrator.erase_database_on_schema_change = True
    conn = get_connection(db_path)
    try:
        migrator.migrate(conn, connection_factory=get_connection)
    except BaseException:
        conn.close()
        raise
    return DatabaseWriter(conn)
