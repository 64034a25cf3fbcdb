"""
Random demo data. Seeded for reproducible runs; the name lists are only
defaults and can be replaced.
"""
from __future__ import annotations

import random
from datetime import date, timedelta
from typing import Protocol, Sequence, TypeVar, runtime_checkable

from playerbase.models import Player, Team

T = TypeVar("T")

DEFAULT_PLAYER_NAMES = (
    "Arthur", "Anita", "Barbara", "Bernard", "Craig", "Chiara", "David",
    "Dean", "Éric", "Elena", "Fatima", "Frederik", "Gilbert", "Georgette",
    "Henriette", "Hassan", "Ignacio", "Irene", "Julie", "Jack", "Karl",
    "Kristel", "Louis", "Liz", "Masashi", "Mary", "Noam", "Nicole",
    "Ophelie", "Oleg", "Pascal", "Patricia", "Quentin", "Quinn", "Raoul",
    "Rachel", "Stephan", "Susie", "Tristan", "Tatiana", "Ursule", "Urbain",
    "Victor", "Violette", "Wilfried", "Wilhelmina", "Yvon", "Yann",
    "Zazie", "Zoé",
)

DEFAULT_TEAM_NAMES = (
    "Rome", "Berlin", "Bruxelles", "Gand", "Madrid", "Barcelone", "Pescara",
    "Mons", "London", "Paris", "Dublin", "Nantes", "Lille", "Marseille",
    "Casablanca", "Bruges", "Turin", "Milan", "Maastricht", "Amsterdam", "Liège",
    "Courtrai", "Manchester", "Perth", "Sydney", "Melbourne", "Victoria",
    "Los Angeles", "New-York", "Washington", "Metz", "La Louvière",
    "Mexico", "Tokyo", "Bangkok", "Genève", "Mykonos", "Anvers",
    "Fès", "Charleroi", "Brest", "Montpellier", "Cannes",
)

# Team founding dates fall within this many days before today.
_MAX_TEAM_AGE_DAYS = 100 * 365


@runtime_checkable
class DataGenerator(Protocol):
    """What AppDatabase needs to invent demo rows."""

    def coin_flip(self) -> bool:
        ...

    def choice(self, seq: Sequence[T]) -> T:
        ...

    def random_score(self) -> int:
        ...

    def random_team_name(self) -> str:
        ...

    def new_random_player(self, team_id: int) -> Player:
        ...

    def new_random_team(self) -> Team:
        ...


class RandomDataGenerator:
    """Wrapper around random.Random producing players and teams."""

    def __init__(
        self,
        seed: int | None = None,
        names: Sequence[str] = DEFAULT_PLAYER_NAMES,
        team_names: Sequence[str] = DEFAULT_TEAM_NAMES,
        today: date | None = None,
    ) -> None:
        if not names or not team_names:
            raise ValueError("names and team_names must not be empty")
        self._rng = random.Random(seed)
        self._seed = seed
        self._names = tuple(names)
        self._team_names = tuple(team_names)
        self._today = today

    @property
    def seed(self) -> int | None:
        return self._seed

    def coin_flip(self) -> bool:
        return self._rng.random() < 0.5

    def choice(self, seq: Sequence[T]) -> T:
        return self._rng.choice(seq)

    def random_name(self) -> str:
        return self._rng.choice(self._names)

    def random_score(self) -> int:
        """A multiple of 10 in 0..1000."""
        return 10 * self._rng.randint(0, 100)

    def random_team_name(self) -> str:
        return self._rng.choice(self._team_names)

    def random_date(self) -> str:
        today = self._today or date.today()
        return (today - timedelta(days=self._rng.randint(0, _MAX_TEAM_AGE_DAYS))).isoformat()

    def new_random_player(self, team_id: int) -> Player:
        return Player(id=None, name=self.random_name(), score=self.random_score(), team_id=team_id)

    def new_random_team(self) -> Team:
        return Team(id=None, team_name=self.random_team_name(), first_team_date=self.random_date())
