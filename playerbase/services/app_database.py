"""
Application access to the store: transactional writes, one-shot reads and
live observations of players and teams.
Persistence is delegated to repositories; each public write is exactly one
transaction on the single DatabaseWriter.
"""
from __future__ import annotations

import logging
import sqlite3
from typing import AsyncIterator, Callable, Iterable

from playerbase.config import Settings
from playerbase.models import Player, PlayerWithTeam, Team
from playerbase.persistence.db import open_database
from playerbase.persistence.observation import Cancellable, ValueObservation
from playerbase.persistence.repositories import PlayerRepository, TeamRepository
from playerbase.persistence.requests import PlayerRequest, TeamRequest
from playerbase.persistence.writer import DatabaseWriter

from .generator import DataGenerator, RandomDataGenerator

logger = logging.getLogger(__name__)

DEFAULT_RANDOM_BATCH_SIZE = 8

_PLAYERS_BY_NAME = PlayerRequest().ordered_by_name()
_PLAYERS_BY_SCORE = PlayerRequest().ordered_by_score()
_PLAYERS_BY_TEAM_NAME = PlayerRequest().ordered_by_team_name()
_TEAMS_BY_NAME = TeamRequest().ordered_by_name()


class AppDatabase:
    """
    Owns the store's writer. Pass one instance to whatever needs the data;
    do not open a second writer on the same file.
    """

    def __init__(
        self,
        writer: DatabaseWriter,
        generator: DataGenerator | None = None,
        random_batch_size: int = DEFAULT_RANDOM_BATCH_SIZE,
    ) -> None:
        if random_batch_size < 1:
            raise ValueError("random_batch_size must be >= 1")
        self._writer = writer
        self._generator = generator or RandomDataGenerator()
        self._batch = random_batch_size
        self._players = PlayerRepository()
        self._teams = TeamRepository()

    @classmethod
    def open(cls, settings: Settings, generator: DataGenerator | None = None) -> AppDatabase:
        """Open (and migrate) the store described by settings."""
        writer = open_database(
            settings.db_path,
            erase_database_on_schema_change=settings.erase_database_on_schema_change,
        )
        return cls(
            writer,
            generator=generator or RandomDataGenerator(seed=settings.seed),
            random_batch_size=settings.random_batch_size,
        )

    @property
    def writer(self) -> DatabaseWriter:
        return self._writer

    def close(self) -> None:
        self._writer.close()

    # ---------- Player writes ----------

    def save_player(self, player: Player) -> Player:
        """Insert or update. A new player gets its id set in place."""
        self._save(self._players, player)
        logger.debug("Saved player %s", player.id)
        return player

    def delete_players(self, ids: Iterable[int]) -> None:
        """Delete the given players. Unknown ids are ignored."""
        ids = set(ids)
        deleted = self._writer.write(lambda conn: self._players.delete_ids(conn, ids))
        logger.debug("Deleted %d of %d players", deleted, len(ids))

    def delete_all_players(self) -> None:
        deleted = self._writer.write(self._players.delete_all)
        logger.debug("Deleted all %d players", deleted)

    def refresh_players(self) -> None:
        """
        Random changes for demo purposes, in one transaction.
        Empty table: insert a batch. Otherwise, each with 50% chance: insert a
        player, delete a player, and give each player a new score and team.
        """
        self._writer.write(self._refresh_players)

    def create_random_players_if_empty(self) -> None:
        def create(conn: sqlite3.Connection) -> None:
            if self._players.fetch_count(conn) == 0:
                self._create_random_players(conn)

        self._writer.write(create)

    # ---------- Team writes ----------

    def save_team(self, team: Team) -> Team:
        self._save(self._teams, team)
        logger.debug("Saved team %s", team.id)
        return team

    def delete_teams(self, ids: Iterable[int]) -> None:
        """Delete the given teams and, by cascade, their players. Unknown ids are ignored."""
        ids = set(ids)
        deleted = self._writer.write(lambda conn: self._teams.delete_ids(conn, ids))
        logger.debug("Deleted %d of %d teams", deleted, len(ids))

    def delete_all_teams(self) -> None:
        """Delete every team, and therefore every player."""
        deleted = self._writer.write(self._teams.delete_all)
        logger.debug("Deleted all %d teams", deleted)

    def create_random_teams_if_empty(self) -> None:
        def create(conn: sqlite3.Connection) -> None:
            if self._teams.fetch_count(conn) == 0:
                self._create_random_teams(conn)

        self._writer.write(create)

    # ---------- One-shot reads ----------

    def players_ordered_by_name(self) -> list[Player]:
        return self._writer.read(_PLAYERS_BY_NAME.fetch_all)

    def players_ordered_by_score(self) -> list[Player]:
        return self._writer.read(_PLAYERS_BY_SCORE.fetch_all)

    def players_ordered_by_team_name(self) -> list[PlayerWithTeam]:
        return self._writer.read(_PLAYERS_BY_TEAM_NAME.fetch_all_with_team)

    def teams_ordered_by_name(self) -> list[Team]:
        return self._writer.read(_TEAMS_BY_NAME.fetch_all)

    def player_count(self) -> int:
        return self._writer.read(self._players.fetch_count)

    def team_count(self) -> int:
        return self._writer.read(self._teams.fetch_count)

    # ---------- Live reads ----------

    def observe_players_ordered_by_name(
        self,
        on_change: Callable[[list[Player]], None],
        on_error: Callable[[BaseException], None] | None = None,
        scheduler=None,
    ) -> Cancellable:
        return ValueObservation.tracking(_PLAYERS_BY_NAME.fetch_all).start(
            self._writer, on_change, on_error=on_error, scheduler=scheduler
        )

    def observe_players_ordered_by_score(
        self,
        on_change: Callable[[list[Player]], None],
        on_error: Callable[[BaseException], None] | None = None,
        scheduler=None,
    ) -> Cancellable:
        return ValueObservation.tracking(_PLAYERS_BY_SCORE.fetch_all).start(
            self._writer, on_change, on_error=on_error, scheduler=scheduler
        )

    def observe_players_ordered_by_team_name(
        self,
        on_change: Callable[[list[PlayerWithTeam]], None],
        on_error: Callable[[BaseException], None] | None = None,
        scheduler=None,
    ) -> Cancellable:
        return ValueObservation.tracking(_PLAYERS_BY_TEAM_NAME.fetch_all_with_team).start(
            self._writer, on_change, on_error=on_error, scheduler=scheduler
        )

    def observe_teams_ordered_by_name(
        self,
        on_change: Callable[[list[Team]], None],
        on_error: Callable[[BaseException], None] | None = None,
        scheduler=None,
    ) -> Cancellable:
        return ValueObservation.tracking(_TEAMS_BY_NAME.fetch_all).start(
            self._writer, on_change, on_error=on_error, scheduler=scheduler
        )

    def players_ordered_by_name_values(self) -> AsyncIterator[list[Player]]:
        return ValueObservation.tracking(_PLAYERS_BY_NAME.fetch_all).values(self._writer)

    def players_ordered_by_score_values(self) -> AsyncIterator[list[Player]]:
        return ValueObservation.tracking(_PLAYERS_BY_SCORE.fetch_all).values(self._writer)

    def players_ordered_by_team_name_values(self) -> AsyncIterator[list[PlayerWithTeam]]:
        return ValueObservation.tracking(_PLAYERS_BY_TEAM_NAME.fetch_all_with_team).values(self._writer)

    def teams_ordered_by_name_values(self) -> AsyncIterator[list[Team]]:
        return ValueObservation.tracking(_TEAMS_BY_NAME.fetch_all).values(self._writer)

    def _save(self, repository, entity):
        """Upsert in one transaction. On rollback a new entity gets its id back to None."""
        previous_id = entity.id
        try:
            self._writer.write(lambda conn: repository.save(conn, entity))
        except BaseException:
            entity.id = previous_id
            raise
        return entity

    # ---------- Internals (run inside a write transaction) ----------

    def _refresh_players(self, conn: sqlite3.Connection) -> None:
        if self._players.fetch_count(conn) == 0:
            self._create_random_players(conn)
            return
        gen = self._generator
        team_ids = self._ensure_teams(conn)
        if gen.coin_flip():
            self._players.insert(conn, gen.new_random_player(gen.choice(team_ids)))
        if gen.coin_flip():
            self._players.delete_ids(conn, [gen.choice(self._players.ids(conn))])
        for player in self._players.list_all(conn):
            if gen.coin_flip():
                player.score = gen.random_score()
                player.team_id = gen.choice(team_ids)
                self._players.update(conn, player)

    def _ensure_teams(self, conn: sqlite3.Connection) -> list[int]:
        team_ids = self._teams.ids(conn)
        if not team_ids:
            self._create_random_teams(conn)
            team_ids = self._teams.ids(conn)
        return team_ids

    def _create_random_players(self, conn: sqlite3.Connection) -> None:
        team_ids = self._ensure_teams(conn)
        for _ in range(self._batch):
            self._players.insert(conn, self._generator.new_random_player(self._generator.choice(team_ids)))
        logger.debug("Inserted %d random players", self._batch)

    def _create_random_teams(self, conn: sqlite3.Connection) -> None:
        for _ in range(self._batch):
            self._teams.insert(conn, self._generator.new_random_team())
        logger.debug("Inserted %d random teams", self._batch)
