"""
Watch players change live in the terminal.
Opens (or creates) the store, seeds it when empty, starts a live observation
in the chosen order, then refreshes the players at an interval. Every
delivery of the observation is printed.
"""
from __future__ import annotations

import argparse
import json
import logging
import time
from typing import Any

from playerbase.config import load_settings
from playerbase.persistence.observation import QueueScheduler
from playerbase.services.app_database import AppDatabase

_ORDERS = ("name", "score", "team")


def _print_players(order: str, players: list[Any]) -> None:
    print(f"\n  Players by {order} ({len(players)})")
    print("  " + "-" * 56)
    for p in players:
        d = p.to_dict()
        team = d.get("team", {}).get("team_name", d.get("team_id"))
        print(f"  {d['name']:<20} {d['score']:>6}   {team}")


def run(
    order: str = "score",
    refreshes: int = 5,
    interval: float = 1.0,
    db_path: str | None = None,
    as_json: bool = False,
) -> None:
    settings = load_settings()
    if db_path:
        settings = settings.model_copy(update={"db_path": db_path})
    database = AppDatabase.open(settings)
    try:
        database.create_random_players_if_empty()
        # Deliveries are executed on this thread only.
        scheduler = QueueScheduler()

        def on_change(players: list[Any]) -> None:
            if as_json:
                print(json.dumps([p.to_dict() for p in players]))
            else:
                _print_players(order, players)

        observe = {
            "name": database.observe_players_ordered_by_name,
            "score": database.observe_players_ordered_by_score,
            "team": database.observe_players_ordered_by_team_name,
        }[order]
        with observe(on_change, scheduler=scheduler):
            scheduler.run_pending()
            for _ in range(refreshes):
                deadline = time.monotonic() + interval
                while scheduler.wait_and_run(timeout=max(0.0, deadline - time.monotonic())):
                    pass
                database.refresh_players()
            # Let the last refresh arrive.
            scheduler.wait_and_run(timeout=interval)
    finally:
        database.close()


def main():
    parser = argparse.ArgumentParser(description="Observe players while random changes are applied.")
    parser.add_argument("--order", choices=_ORDERS, default="score", help="Player ordering")
    parser.add_argument("--refreshes", type=int, default=5, help="Number of random refreshes")
    parser.add_argument("--interval", type=float, default=1.0, help="Seconds between refreshes")
    parser.add_argument("--db", default=None, help="Database path (default: PLAYERBASE_DB_PATH or data/players.db)")
    parser.add_argument("--json", action="store_true", help="Print each delivery as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run(order=args.order, refreshes=args.refreshes, interval=args.interval, db_path=args.db, as_json=args.json)


if __name__ == "__main__":
    main()
