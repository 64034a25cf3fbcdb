"""
Ordered, named schema migrations.
Each step runs at most once per store, inside its own transaction, and is
recorded in the migrations table when it commits.
"""
from __future__ import annotations

import logging
import sqlite3
from typing import Callable

logger = logging.getLogger(__name__)

MIGRATIONS_TABLE = "playerbase_migrations"

Migration = Callable[[sqlite3.Connection], None]


class MigrationError(RuntimeError):
    """A migration step failed, or the store was migrated by unknown steps."""

    def __init__(self, message: str, identifier: str | None = None) -> None:
        super().__init__(message)
        self.identifier = identifier


class DatabaseMigrator:
    """
    Applies registered migrations in registration order.

    erase_database_on_schema_change: development only. When the registered
    steps no longer produce the schema found in the store, every table is
    dropped and the store is migrated from scratch. Never enable it for data
    you want to keep.
    """

    def __init__(self, erase_database_on_schema_change: bool = False) -> None:
        self.erase_database_on_schema_change = erase_database_on_schema_change
        self._migrations: list[tuple[str, Migration]] = []

    def register_migration(self, identifier: str, migrate: Migration) -> None:
        if identifier in self.migration_identifiers:
            raise ValueError(f"Migration {identifier!r} is already registered")
        self._migrations.append((identifier, migrate))

    @property
    def migration_identifiers(self) -> list[str]:
        return [identifier for identifier, _ in self._migrations]

    def applied_migrations(self, conn: sqlite3.Connection) -> list[str]:
        """Identifiers recorded in the store, in the order they were applied."""
        row = conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            (MIGRATIONS_TABLE,),
        ).fetchone()
        if row is None:
            return []
        rows = conn.execute(f"SELECT identifier FROM {MIGRATIONS_TABLE} ORDER BY rowid").fetchall()
        return [r[0] for r in rows]

    def has_completed_migrations(self, conn: sqlite3.Connection) -> bool:
        return set(self.migration_identifiers) <= set(self.applied_migrations(conn))

    def migrate(
        self,
        conn: sqlite3.Connection,
        up_to: str | None = None,
        connection_factory: Callable[[str], sqlite3.Connection] | None = None,
    ) -> None:
        """
        Apply pending migrations, up to and including `up_to` when given.
        connection_factory opens the in-memory reference store used by erase mode;
        it must configure connections the way the store's connection is configured.
        """
        identifiers = self.migration_identifiers
        if up_to is not None:
            if up_to not in identifiers:
                raise ValueError(f"Unknown migration: {up_to!r}")
            identifiers = identifiers[: identifiers.index(up_to) + 1]
        if self.erase_database_on_schema_change:
            self._erase_if_schema_changed(conn, connection_factory)
        self._migrate(conn, identifiers)

    # ---------- Internals ----------

    def _migrate(self, conn: sqlite3.Connection, identifiers: list[str]) -> None:
        applied = self.applied_migrations(conn)
        unknown = [i for i in applied if i not in self.migration_identifiers]
        if unknown:
            raise MigrationError(
                f"Database was migrated by unknown migrations: {unknown}. Refusing to proceed."
            )
        conn.execute(f"CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE} (identifier TEXT NOT NULL PRIMARY KEY)")
        steps = dict(self._migrations)
        for identifier in identifiers:
            if identifier in applied:
                continue
            conn.execute("BEGIN IMMEDIATE")
            try:
                steps[identifier](conn)
                conn.execute(f"INSERT INTO {MIGRATIONS_TABLE} (identifier) VALUES (?)", (identifier,))
                conn.execute("COMMIT")
            except Exception as exc:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise MigrationError(f"Migration {identifier!r} failed: {exc}", identifier=identifier) from exc
            logger.info("Applied migration %s", identifier)

    def _erase_if_schema_changed(
        self,
        conn: sqlite3.Connection,
        connection_factory: Callable[[str], sqlite3.Connection] | None,
    ) -> None:
        applied = self.applied_migrations(conn)
        if not applied:
            return
        if any(i not in self.migration_identifiers for i in applied):
            logger.warning("Unknown migrations %s in store: erasing database", applied)
            _erase(conn)
            return
        # Reference: what the registered steps produce for the same applied steps.
        reference = connection_factory(":memory:") if connection_factory else sqlite3.connect(":memory:")
        try:
            self._migrate(reference, [i for i in self.migration_identifiers if i in applied])
            expected = _schema(reference)
        finally:
            reference.close()
        if _schema(conn) != expected:
            logger.warning("Schema changed since migrations were applied: erasing database")
            _erase(conn)


def _schema(conn: sqlite3.Connection) -> list[tuple]:
    rows = conn.execute(
        "SELECT type, name, tbl_name, sql FROM sqlite_master "
        "WHERE name NOT LIKE 'sqlite_%' ORDER BY type, name"
    ).fetchall()
    return [tuple(r) for r in rows]


def _erase(conn: sqlite3.Connection) -> None:
    """Drop every user table, view and trigger. Indexes go with their tables."""
    objects = conn.execute(
        "SELECT type, name FROM sqlite_master "
        "WHERE type IN ('table', 'view', 'trigger') AND name NOT LIKE 'sqlite_%'"
    ).fetchall()
    conn.execute("PRAGMA foreign_keys = OFF")
    try:
        conn.execute("BEGIN IMMEDIATE")
        try:
            for kind, name in objects:
                if kind == "table":
                    conn.execute(f'DROP TABLE IF EXISTS "{name}"')
                elif kind == "view":
                    conn.execute(f'DROP VIEW IF EXISTS "{name}"')
                else:
                    conn.execute(f'DROP TRIGGER IF EXISTS "{name}"')
            has_sequence = conn.execute(
                "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'sqlite_sequence'"
            ).fetchone()
            if has_sequence is not None:
                conn.execute("DELETE FROM sqlite_sequence")
            conn.execute("COMMIT")
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
    finally:
        conn.execute("PRAGMA foreign_keys = ON")
