"""
SQLite schema for players and teams.
Each step is registered once with the migrator and never edited afterwards;
later schema changes go in new steps appended to default_migrator().
"""
from __future__ import annotations

import sqlite3

from .db import COLLATION_NAME
from .migrations import DatabaseMigrator


def create_team_sql() -> str:
    """Teams. teamName sorts case-insensitively; firstTeamDate is an ISO date string."""
    return f"""
    CREATE TABLE team (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        teamName TEXT NOT NULL COLLATE {COLLATION_NAME},
        firstTeamDate TEXT NOT NULL
    );
    """


def create_player_sql() -> str:
    """Players belong to exactly one team; deleting the team deletes its players."""
    return f"""
    CREATE TABLE player (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL COLLATE {COLLATION_NAME},
        score INTEGER NOT NULL,
        teamId INTEGER NOT NULL REFERENCES team(id) ON DELETE CASCADE
    );
    CREATE INDEX player_on_teamId ON player(teamId);
    """


def _execute_script(conn: sqlite3.Connection, script: str) -> None:
    # executescript() would COMMIT the migration transaction; run statements one by one.
    for statement in script.split(";"):
        if statement.strip():
            conn.execute(statement)


def _create_team(conn: sqlite3.Connection) -> None:
    _execute_script(conn, create_team_sql())


def _create_player(conn: sqlite3.Connection) -> None:
    _execute_script(conn, create_player_sql())


def default_migrator() -> DatabaseMigrator:
    """The migrator that defines the application schema. Order matters: team before player."""
    migrator = DatabaseMigrator()
    migrator.register_migration("createTeam", _create_team)
    migrator.register_migration("createPlayer", _create_player)
    return migrator
