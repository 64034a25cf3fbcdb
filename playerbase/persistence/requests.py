"""
Composable, immutable requests for players and teams.

    PlayerRequest().ordered_by_score().limit(10).fetch_all(conn)

Every method returns a new request. A new ordering replaces the previous one.
Name-like columns carry the localized case-insensitive collation, so ORDER BY
on them needs no COLLATE clause.
"""
from __future__ import annotations

import sqlite3
from dataclasses import dataclass, replace

from playerbase.models import Player, PlayerWithTeam, Team

_PLAYER_COLUMNS = "player.id, player.name, player.score, player.teamId"
_TEAM_COLUMNS = "team.id, team.teamName, team.firstTeamDate"

ORDER_BY_NAME = ("player.name",)
ORDER_BY_SCORE = ("player.score DESC", "player.name")
ORDER_BY_TEAM_NAME = ("team.teamName", "player.score DESC", "player.name")


def player_from_row(row: sqlite3.Row) -> Player:
    return Player(id=row["id"], name=row["name"], score=row["score"], team_id=row["teamId"])


def team_from_row(row: sqlite3.Row) -> Team:
    return Team(id=row["id"], team_name=row["teamName"], first_team_date=row["firstTeamDate"])


# ---------- PlayerRequest ----------


@dataclass(frozen=True)
class PlayerRequest:
    order: tuple[str, ...] = ()
    team_id: int | None = None
    max_count: int | None = None

    def ordered_by_name(self) -> PlayerRequest:
        return replace(self, order=ORDER_BY_NAME)

    def ordered_by_score(self) -> PlayerRequest:
        """Highest score first; equal scores by name."""
        return replace(self, order=ORDER_BY_SCORE)

    def ordered_by_team_name(self) -> PlayerRequest:
        """By the name of the player's team, then score descending, then name."""
        return replace(self, order=ORDER_BY_TEAM_NAME)

    def filter_team(self, team_id: int) -> PlayerRequest:
        return replace(self, team_id=team_id)

    def limit(self, n: int) -> PlayerRequest:
        if n < 0:
            raise ValueError("limit must be >= 0")
        return replace(self, max_count=n)

    def _needs_team(self) -> bool:
        return any(term.startswith("team.") for term in self.order)

    def _sql(self, columns: str, join_team: bool) -> tuple[str, list]:
        sql = f"SELECT {columns} FROM player"
        args: list = []
        if join_team:
            sql += " JOIN team ON team.id = player.teamId"
        if self.team_id is not None:
            sql += " WHERE player.teamId = ?"
            args.append(self.team_id)
        if self.order:
            sql += " ORDER BY " + ", ".join(self.order)
        if self.max_count is not None:
            sql += " LIMIT ?"
            args.append(self.max_count)
        return sql, args

    def fetch_all(self, conn: sqlite3.Connection) -> list[Player]:
        sql, args = self._sql(_PLAYER_COLUMNS, self._needs_team())
        return [player_from_row(r) for r in conn.execute(sql, args).fetchall()]

    def fetch_one(self, conn: sqlite3.Connection) -> Player | None:
        found = self.limit(1).fetch_all(conn)
        return found[0] if found else None

    def fetch_all_with_team(self, conn: sqlite3.Connection) -> list[PlayerWithTeam]:
        columns = (
            "player.id, player.name, player.score, player.teamId, "
            "team.teamName AS teamName, team.firstTeamDate AS firstTeamDate"
        )
        sql, args = self._sql(columns, join_team=True)
        return [
            PlayerWithTeam(
                player=player_from_row(r),
                team=Team(id=r["teamId"], team_name=r["teamName"], first_team_date=r["firstTeamDate"]),
            )
            for r in conn.execute(sql, args).fetchall()
        ]

    def fetch_count(self, conn: sqlite3.Connection) -> int:
        sql = "SELECT COUNT(*) FROM player"
        args: list = []
        if self.team_id is not None:
            sql += " WHERE teamId = ?"
            args.append(self.team_id)
        count = conn.execute(sql, args).fetchone()[0]
        if self.max_count is not None:
            count = min(count, self.max_count)
        return count


# ---------- TeamRequest ----------


@dataclass(frozen=True)
class TeamRequest:
    order: tuple[str, ...] = ()
    max_count: int | None = None

    def ordered_by_name(self) -> TeamRequest:
        return replace(self, order=("team.teamName",))

    def limit(self, n: int) -> TeamRequest:
        if n < 0:
            raise ValueError("limit must be >= 0")
        return replace(self, max_count=n)

    def fetch_all(self, conn: sqlite3.Connection) -> list[Team]:
        sql = f"SELECT {_TEAM_COLUMNS} FROM team"
        args: list = []
        if self.order:
            sql += " ORDER BY " + ", ".join(self.order)
        if self.max_count is not None:
            sql += " LIMIT ?"
            args.append(self.max_count)
        return [team_from_row(r) for r in conn.execute(sql, args).fetchall()]

    def fetch_one(self, conn: sqlite3.Connection) -> Team | None:
        found = self.limit(1).fetch_all(conn)
        return found[0] if found else None

    def fetch_count(self, conn: sqlite3.Connection) -> int:
        count = conn.execute("SELECT COUNT(*) FROM team").fetchone()[0]
        if self.max_count is not None:
            count = min(count, self.max_count)
        return count
