"""
Tests for live queries: immediate first value, one delivery per relevant
commit, coalescing to the latest state, cancellation, schedulers.
"""
from __future__ import annotations

import asyncio
import queue
import threading
import time

import pytest

from playerbase.models import Player, Team
from playerbase.persistence.db import get_connection
from playerbase.persistence.observation import QueueScheduler, ValueObservation
from playerbase.persistence.repositories import PlayerRepository, TeamRepository
from playerbase.persistence.requests import PlayerRequest, TeamRequest
from playerbase.persistence.schema import default_migrator
from playerbase.persistence.writer import DatabaseWriter

TIMEOUT = 5.0
QUIET = 0.3


def _insert_team(writer, name: str = "Rome") -> Team:
    return writer.write(lambda c: TeamRepository().insert(c, Team(None, name, "2000-01-01")))


def _insert_player(writer, name: str, score: int, team_id: int) -> Player:
    return writer.write(lambda c: PlayerRepository().insert(c, Player(None, name, score, team_id)))


def _names(players) -> list[str]:
    return [p.name for p in players]


@pytest.fixture
def deliveries():
    return queue.Queue()


def test_first_value_delivered_before_start_returns(writer, deliveries):
    observation = ValueObservation.tracking(PlayerRequest().ordered_by_name().fetch_all)
    with observation.start(writer, deliveries.put):
        assert deliveries.get_nowait() == []


def test_one_insert_one_delivery(writer, deliveries):
    team = _insert_team(writer)
    observation = ValueObservation.tracking(PlayerRequest().ordered_by_name().fetch_all)
    with observation.start(writer, deliveries.put):
        assert deliveries.get_nowait() == []
        _insert_player(writer, "Arthur", 10, team.id)
        assert _names(deliveries.get(timeout=TIMEOUT)) == ["Arthur"]
        with pytest.raises(queue.Empty):
            deliveries.get(timeout=QUIET)


def test_two_inserts_in_one_transaction_one_delivery(writer, deliveries):
    team = _insert_team(writer)
    observation = ValueObservation.tracking(PlayerRequest().ordered_by_name().fetch_all)

    def insert_two(conn):
        PlayerRepository().insert(conn, Player(None, "Barbara", 20, team.id))
        PlayerRepository().insert(conn, Player(None, "Arthur", 10, team.id))

    with observation.start(writer, deliveries.put):
        deliveries.get_nowait()
        writer.write(insert_two)
        assert _names(deliveries.get(timeout=TIMEOUT)) == ["Arthur", "Barbara"]
        with pytest.raises(queue.Empty):
            deliveries.get(timeout=QUIET)


def test_unrelated_table_and_rollback_do_not_deliver(writer, deliveries):
    observation = ValueObservation.tracking(PlayerRequest().fetch_all)
    with observation.start(writer, deliveries.put):
        deliveries.get_nowait()
        _insert_team(writer)

        def failing(conn):
            PlayerRepository().insert(conn, Player(None, "Ghost", 0, team_id=None))

        with pytest.raises(Exception):
            writer.write(failing)
        with pytest.raises(queue.Empty):
            deliveries.get(timeout=QUIET)


def test_team_name_ordering_observes_both_tables(writer, deliveries):
    team = _insert_team(writer, "Rome")
    _insert_player(writer, "Arthur", 10, team.id)
    observation = ValueObservation.tracking(PlayerRequest().ordered_by_team_name().fetch_all_with_team)
    with observation.start(writer, deliveries.put):
        first = deliveries.get_nowait()
        assert first[0].team.team_name == "Rome"
        writer.write(lambda c: TeamRepository().update(c, Team(team.id, "Berlin", "2000-01-01")))
        renamed = deliveries.get(timeout=TIMEOUT)
        assert renamed[0].team.team_name == "Berlin"


def test_cascade_delete_is_delivered(writer, deliveries):
    team = _insert_team(writer)
    _insert_player(writer, "Arthur", 10, team.id)
    observation = ValueObservation.tracking(PlayerRequest().fetch_all)
    with observation.start(writer, deliveries.put):
        assert len(deliveries.get_nowait()) == 1
        writer.write(lambda c: TeamRepository().delete_ids(c, [team.id]))
        assert deliveries.get(timeout=TIMEOUT) == []


def test_rapid_commits_end_with_latest_state_in_order(writer, deliveries):
    team = _insert_team(writer)
    observation = ValueObservation.tracking(PlayerRequest().fetch_count)
    with observation.start(writer, deliveries.put):
        assert deliveries.get_nowait() == 0
        for i in range(20):
            _insert_player(writer, f"P{i}", i * 10, team.id)
        seen = []
        while not seen or seen[-1] != 20:
            seen.append(deliveries.get(timeout=TIMEOUT))
        assert seen == sorted(seen)
        assert len(seen) <= 20


def test_cancel_stops_deliveries(writer, deliveries):
    team = _insert_team(writer)
    cancellable = ValueObservation.tracking(PlayerRequest().fetch_all).start(writer, deliveries.put)
    deliveries.get_nowait()
    cancellable.cancel()
    cancellable.cancel()
    assert cancellable.is_cancelled
    _insert_player(writer, "Arthur", 10, team.id)
    with pytest.raises(queue.Empty):
        deliveries.get(timeout=QUIET)


def test_remove_duplicates_skips_equal_values(writer, deliveries):
    team = _insert_team(writer)
    observation = ValueObservation.tracking(TeamRequest().fetch_count).remove_duplicates()
    with observation.start(writer, deliveries.put):
        assert deliveries.get_nowait() == 1
        writer.write(lambda c: TeamRepository().update(c, Team(team.id, "Roma", "2000-01-01")))
        with pytest.raises(queue.Empty):
            deliveries.get(timeout=QUIET)
        _insert_team(writer, "Paris")
        assert deliveries.get(timeout=TIMEOUT) == 2


def test_fetch_error_ends_observation(writer, deliveries):
    team = _insert_team(writer)
    errors = queue.Queue()

    def fetch(conn):
        players = PlayerRequest().fetch_all(conn)
        if players:
            raise LookupError("cannot fetch")
        return players

    cancellable = ValueObservation.tracking(fetch).start(writer, deliveries.put, on_error=errors.put)
    assert deliveries.get_nowait() == []
    _insert_player(writer, "Arthur", 10, team.id)
    assert isinstance(errors.get(timeout=TIMEOUT), LookupError)
    assert cancellable.is_cancelled
    _insert_player(writer, "Barbara", 20, team.id)
    with pytest.raises(queue.Empty):
        deliveries.get(timeout=QUIET)


def test_queue_scheduler_delivers_on_consumer_thread(writer):
    team = _insert_team(writer)
    scheduler = QueueScheduler()
    received = []
    observation = ValueObservation.tracking(PlayerRequest().fetch_count)
    with observation.start(writer, lambda v: received.append((v, threading.get_ident())), scheduler=scheduler):
        assert received == []
        assert scheduler.run_pending() == 1
        _insert_player(writer, "Arthur", 10, team.id)
        assert scheduler.wait_and_run(timeout=TIMEOUT)
    assert [v for v, _ in received] == [0, 1]
    assert {tid for _, tid in received} == {threading.get_ident()}


def test_async_values_is_lazy_and_restartable(writer):
    team = _insert_team(writer)
    observation = ValueObservation.tracking(PlayerRequest().ordered_by_name().fetch_all)

    async def collect():
        values = observation.values(writer)
        # Nothing subscribed until the first iteration.
        _insert_player(writer, "Barbara", 20, team.id)
        first = await asyncio.wait_for(values.__anext__(), TIMEOUT)
        _insert_player(writer, "Arthur", 10, team.id)
        second = await asyncio.wait_for(values.__anext__(), TIMEOUT)
        await values.aclose()
        again = observation.values(writer)
        restarted = await asyncio.wait_for(again.__anext__(), TIMEOUT)
        await again.aclose()
        return first, second, restarted

    first, second, restarted = asyncio.run(collect())
    assert _names(first) == ["Barbara"]
    assert _names(second) == ["Arthur", "Barbara"]
    assert _names(restarted) == ["Arthur", "Barbara"]


def test_callback_error_does_not_stop_observation(writer, deliveries):
    team = _insert_team(writer)
    calls = []

    def on_change(players):
        calls.append(players)
        if len(calls) == 2:
            raise RuntimeError("callback failed")
        deliveries.put(players)

    with ValueObservation.tracking(PlayerRequest().fetch_all).start(writer, on_change):
        deliveries.get_nowait()
        _insert_player(writer, "Arthur", 10, team.id)
        time.sleep(QUIET)
        _insert_player(writer, "Barbara", 20, team.id)
        assert len(deliveries.get(timeout=TIMEOUT)) == 2


class CommitAfterRegisterWriter(DatabaseWriter):
    """Commits a player from another thread as soon as an observer is registered."""

    team_id = None

    def read_and_observe(self, fn, observer, on_region=None):
        result = super().read_and_observe(fn, observer, on_region)
        t = threading.Thread(target=_insert_player, args=(self, "Arthur", 10, self.team_id))
        t.start()
        t.join()
        return result


def test_commit_right_after_registration_is_delivered(deliveries):
    conn = get_connection()
    default_migrator().migrate(conn)
    writer = CommitAfterRegisterWriter(conn)
    try:
        writer.team_id = _insert_team(writer).id
        observation = ValueObservation.tracking(PlayerRequest().ordered_by_name().fetch_all)
        with observation.start(writer, deliveries.put):
            # The first value may be folded into the refetch; the commit must not be lost.
            latest = _names(deliveries.get(timeout=TIMEOUT))
            while latest != ["Arthur"]:
                latest = _names(deliveries.get(timeout=TIMEOUT))
    finally:
        writer.close()


def test_async_values_keeps_loop_running_while_a_write_holds_the_store(writer):
    team = _insert_team(writer)
    observation = ValueObservation.tracking(PlayerRequest().ordered_by_name().fetch_all)
    started = threading.Event()

    def slow_write(conn):
        PlayerRepository().insert(conn, Player(None, "Arthur", 10, team.id))
        started.set()
        time.sleep(0.5)

    t = threading.Thread(target=writer.write, args=(slow_write,))
    t.start()
    started.wait(TIMEOUT)

    async def collect():
        values = observation.values(writer)
        first = asyncio.ensure_future(values.__anext__())
        ticks = 0
        while not first.done():
            await asyncio.sleep(0.01)
            ticks += 1
        value = first.result()
        await values.aclose()
        return value, ticks

    try:
        value, ticks = asyncio.run(collect())
    finally:
        t.join()
    assert ticks >= 10
    assert _names(value) == ["Arthur"]
