"""
Repository interfaces for players and teams.
No business logic: only row-level read/write operations.

Repositories never commit: callers run them inside DatabaseWriter.write(),
which owns the transaction. insert() sets the id before COMMIT, so a caller
whose transaction rolls back must restore or discard the entity.
"""
from __future__ import annotations

import sqlite3
from typing import Iterable

from playerbase.models import Player, Team

from .requests import PlayerRequest, TeamRequest, player_from_row, team_from_row

# Stay well under SQLITE_MAX_VARIABLE_NUMBER.
_DELETE_CHUNK = 500


class RecordNotFoundError(ValueError):
    """update() targeted an id with no row."""


def _delete_ids(conn: sqlite3.Connection, table: str, ids: Iterable[int]) -> int:
    """Delete rows by id; unknown ids are ignored. Returns rows deleted."""
    unique = sorted(set(ids))
    deleted = 0
    for start in range(0, len(unique), _DELETE_CHUNK):
        chunk = unique[start : start + _DELETE_CHUNK]
        placeholders = ", ".join("?" for _ in chunk)
        cur = conn.execute(f"DELETE FROM {table} WHERE id IN ({placeholders})", chunk)
        deleted += cur.rowcount
    return deleted


# ---------- TeamRepository ----------


class TeamRepository:
    """CRUD for teams. Deleting a team deletes its players (ON DELETE CASCADE)."""

    def insert(self, conn: sqlite3.Connection, team: Team) -> Team:
        """Insert a transient team; its id is set from the new row."""
        if team.id is not None:
            raise ValueError(f"Team already has id {team.id}; use update()")
        cur = conn.execute(
            "INSERT INTO team (teamName, firstTeamDate) VALUES (?, ?)",
            (team.team_name, team.first_team_date),
        )
        team.id = cur.lastrowid
        return team

    def update(self, conn: sqlite3.Connection, team: Team) -> Team:
        if team.id is None:
            raise ValueError("Cannot update a team without id; use insert()")
        cur = conn.execute(
            "UPDATE team SET teamName = ?, firstTeamDate = ? WHERE id = ?",
            (team.team_name, team.first_team_date, team.id),
        )
        if cur.rowcount == 0:
            raise RecordNotFoundError(f"Team not found: {team.id}")
        return team

    def save(self, conn: sqlite3.Connection, team: Team) -> Team:
        """Insert when transient; otherwise update, re-inserting under the same id if the row is gone."""
        if team.id is None:
            return self.insert(conn, team)
        try:
            return self.update(conn, team)
        except RecordNotFoundError:
            conn.execute(
                "INSERT INTO team (id, teamName, firstTeamDate) VALUES (?, ?, ?)",
                (team.id, team.team_name, team.first_team_date),
            )
            return team

    def get(self, conn: sqlite3.Connection, team_id: int) -> Team | None:
        row = conn.execute(
            "SELECT id, teamName, firstTeamDate FROM team WHERE id = ?", (team_id,)
        ).fetchone()
        return team_from_row(row) if row is not None else None

    def exists(self, conn: sqlite3.Connection, team_id: int) -> bool:
        return conn.execute("SELECT 1 FROM team WHERE id = ?", (team_id,)).fetchone() is not None

    def ids(self, conn: sqlite3.Connection) -> list[int]:
        return [r[0] for r in conn.execute("SELECT id FROM team ORDER BY id").fetchall()]

    def list_all(self, conn: sqlite3.Connection) -> list[Team]:
        return [
            team_from_row(r)
            for r in conn.execute("SELECT id, teamName, firstTeamDate FROM team ORDER BY id").fetchall()
        ]

    def fetch_count(self, conn: sqlite3.Connection) -> int:
        return TeamRequest().fetch_count(conn)

    def delete_ids(self, conn: sqlite3.Connection, ids: Iterable[int]) -> int:
        return _delete_ids(conn, "team", ids)

    def delete_all(self, conn: sqlite3.Connection) -> int:
        return conn.execute("DELETE FROM team").rowcount


# ---------- PlayerRepository ----------


class PlayerRepository:
    """CRUD for players. team_id must reference an existing team."""

    def insert(self, conn: sqlite3.Connection, player: Player) -> Player:
        """Insert a transient player; its id is set from the new row."""
        if player.id is not None:
            raise ValueError(f"Player already has id {player.id}; use update()")
        cur = conn.execute(
            "INSERT INTO player (name, score, teamId) VALUES (?, ?, ?)",
            (player.name, player.score, player.team_id),
        )
        player.id = cur.lastrowid
        return player

    def update(self, conn: sqlite3.Connection, player: Player) -> Player:
        if player.id is None:
            raise ValueError("Cannot update a player without id; use insert()")
        cur = conn.execute(
            "UPDATE player SET name = ?, score = ?, teamId = ? WHERE id = ?",
            (player.name, player.score, player.team_id, player.id),
        )
        if cur.rowcount == 0:
            raise RecordNotFoundError(f"Player not found: {player.id}")
        return player

    def save(self, conn: sqlite3.Connection, player: Player) -> Player:
        """Insert when transient; otherwise update, re-inserting under the same id if the row is gone."""
        if player.id is None:
            return self.insert(conn, player)
        try:
            return self.update(conn, player)
        except RecordNotFoundError:
            conn.execute(
                "INSERT INTO player (id, name, score, teamId) VALUES (?, ?, ?, ?)",
                (player.id, player.name, player.score, player.team_id),
            )
            return player

    def get(self, conn: sqlite3.Connection, player_id: int) -> Player | None:
        row = conn.execute(
            "SELECT id, name, score, teamId FROM player WHERE id = ?", (player_id,)
        ).fetchone()
        return player_from_row(row) if row is not None else None

    def exists(self, conn: sqlite3.Connection, player_id: int) -> bool:
        return conn.execute("SELECT 1 FROM player WHERE id = ?", (player_id,)).fetchone() is not None

    def ids(self, conn: sqlite3.Connection) -> list[int]:
        return [r[0] for r in conn.execute("SELECT id FROM player ORDER BY id").fetchall()]

    def list_all(self, conn: sqlite3.Connection) -> list[Player]:
        return [
            player_from_row(r)
            for r in conn.execute("SELECT id, name, score, teamId FROM player ORDER BY id").fetchall()
        ]

    def fetch_count(self, conn: sqlite3.Connection) -> int:
        return PlayerRequest().fetch_count(conn)

    def delete_ids(self, conn: sqlite3.Connection, ids: Iterable[int]) -> int:
        return _delete_ids(conn, "player", ids)

    def delete_all(self, conn: sqlite3.Connection) -> int:
        return conn.execute("DELETE FROM player").rowcount
