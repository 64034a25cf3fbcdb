"""
Tests for AppDatabase: transactional writes, demo data, one-shot and live reads.
"""
from __future__ import annotations

import queue
import sqlite3

import pytest

from playerbase.config import Settings
from playerbase.models import Player, Team
from playerbase.services.app_database import AppDatabase
from playerbase.services.generator import RandomDataGenerator

TIMEOUT = 5.0


def test_create_random_players_if_empty_is_idempotent(database):
    database.create_random_players_if_empty()
    assert database.player_count() == 8
    assert database.team_count() == 8
    database.create_random_players_if_empty()
    assert database.player_count() == 8
    assert database.team_count() == 8


def test_random_players_reference_existing_teams(database):
    database.create_random_players_if_empty()
    team_ids = {t.id for t in database.teams_ordered_by_name()}
    for p in database.players_ordered_by_name():
        assert p.team_id in team_ids
        assert p.score % 10 == 0 and 0 <= p.score <= 1000


def test_create_random_teams_if_empty(database, team):
    database.create_random_teams_if_empty()
    assert database.team_count() == 1
    database.delete_all_teams()
    database.create_random_teams_if_empty()
    assert database.team_count() == 8


def test_refresh_on_empty_inserts_batch(database):
    database.refresh_players()
    assert database.player_count() == 8


def test_refresh_on_populated_table_changes_at_most_one_row_count(database):
    database.create_random_players_if_empty()
    for _ in range(5):
        before = database.player_count()
        database.refresh_players()
        assert before - 1 <= database.player_count() <= before + 1


class AlwaysGenerator(RandomDataGenerator):
    """Every 50% decision goes the same way."""

    def coin_flip(self) -> bool:
        return True


def test_refresh_applies_every_change_in_one_transaction(writer):
    database = AppDatabase(writer, generator=AlwaysGenerator(seed=9))
    database.create_random_players_if_empty()
    commits = queue.Queue()
    with database.observe_players_ordered_by_score(commits.put):
        commits.get_nowait()
        database.refresh_players()
        after = commits.get(timeout=TIMEOUT)
        with pytest.raises(queue.Empty):
            commits.get(timeout=0.3)
    # One insert and one delete.
    assert len(after) == 8


def test_custom_batch_size(writer):
    database = AppDatabase(writer, generator=RandomDataGenerator(seed=1), random_batch_size=3)
    database.create_random_players_if_empty()
    assert database.player_count() == 3
    with pytest.raises(ValueError):
        AppDatabase(writer, random_batch_size=0)


def test_save_player_assigns_and_keeps_id(database, team):
    player = database.save_player(Player(None, "Alice", 0, team.id))
    assert player.id is not None
    first_id = player.id
    player.score = 50
    database.save_player(player)
    assert player.id == first_id
    assert database.players_ordered_by_name() == [Player(first_id, "Alice", 50, team.id)]


def test_live_score_subscriber_sees_update(database, team):
    deliveries = queue.Queue()
    with database.observe_players_ordered_by_score(deliveries.put):
        assert deliveries.get_nowait() == []
        alice = database.save_player(Player(None, "Alice", 0, team.id))
        assert deliveries.get(timeout=TIMEOUT) == [Player(alice.id, "Alice", 0, team.id)]
        alice.score = 50
        database.save_player(alice)
        latest = deliveries.get(timeout=TIMEOUT)
        assert latest[0].id == alice.id
        assert latest[0].score == 50


def test_save_player_with_unknown_team_fails_without_effect(database):
    with pytest.raises(sqlite3.IntegrityError):
        database.save_player(Player(None, "Alice", 0, team_id=404))
    assert database.player_count() == 0


def test_rolled_back_insert_leaves_player_transient(database, team, monkeypatch):
    insert = database._players.insert

    def insert_then_fail(conn, player):
        insert(conn, player)
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(database._players, "insert", insert_then_fail)
    player = Player(None, "Alice", 0, team.id)
    with pytest.raises(sqlite3.OperationalError):
        database.save_player(player)
    assert player.id is None
    assert database.player_count() == 0

    monkeypatch.undo()
    assert database.save_player(player).id is not None
    assert database.player_count() == 1


def test_delete_players(database, team):
    ids = [database.save_player(Player(None, n, 0, team.id)).id for n in ("A", "B", "C")]
    database.delete_players({ids[0], 987654})
    assert sorted(p.id for p in database.players_ordered_by_name()) == ids[1:]


def test_delete_all_players_leaves_teams(database):
    database.create_random_players_if_empty()
    database.delete_all_players()
    assert database.players_ordered_by_score() == []
    assert database.team_count() == 8


def test_delete_teams_cascades(database, team):
    other = database.save_team(Team(None, "Paris", "1999-12-31"))
    database.save_player(Player(None, "Arthur", 10, team.id))
    database.save_player(Player(None, "Barbara", 20, other.id))
    database.delete_teams([team.id])
    assert [p.name for p in database.players_ordered_by_name()] == ["Barbara"]
    database.delete_all_teams()
    assert database.player_count() == 0


def test_players_ordered_by_team_name(database):
    b = database.save_team(Team(None, "berlin", "2000-01-01"))
    a = database.save_team(Team(None, "Amsterdam", "2000-01-01"))
    database.save_player(Player(None, "Arthur", 10, b.id))
    database.save_player(Player(None, "Barbara", 20, a.id))
    rows = database.players_ordered_by_team_name()
    assert [(r.team.team_name, r.player.name) for r in rows] == [("Amsterdam", "Barbara"), ("berlin", "Arthur")]


def test_live_team_name_subscription_follows_team_rename(database, team):
    database.save_player(Player(None, "Arthur", 10, team.id))
    deliveries = queue.Queue()
    with database.observe_players_ordered_by_team_name(deliveries.put):
        assert deliveries.get_nowait()[0].team.team_name == "Rome"
        team.team_name = "Roma"
        database.save_team(team)
        assert deliveries.get(timeout=TIMEOUT)[0].team.team_name == "Roma"


def test_live_teams_subscription(database):
    deliveries = queue.Queue()
    with database.observe_teams_ordered_by_name(deliveries.put):
        assert deliveries.get_nowait() == []
        database.create_random_teams_if_empty()
        assert len(deliveries.get(timeout=TIMEOUT)) == 8


def test_open_from_settings_persists(tmp_path):
    settings = Settings(db_path=str(tmp_path / "data" / "players.db"), random_batch_size=4, seed=3)
    database = AppDatabase.open(settings)
    try:
        database.create_random_players_if_empty()
    finally:
        database.close()
    database = AppDatabase.open(settings)
    try:
        assert database.player_count() == 4
    finally:
        database.close()
