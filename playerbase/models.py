"""
Data models for players and teams.
Domain objects only, no persistence logic.

Identity (id) is None until the entity is first inserted; the repository
assigns it once and never changes it afterwards.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any


# ---------- Team ----------
@dataclass
class Team:
    """
    A team that players belong to.
    first_team_date is stored as text (ISO date, YYYY-MM-DD).
    """
    id: int | None
    team_name: str
    first_team_date: str

    @classmethod
    def new(cls) -> Team:
        """A blank, unsaved team dated today."""
        return cls(id=None, team_name="", first_team_date=date.today().isoformat())

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "team_name": self.team_name,
            "first_team_date": self.first_team_date,
        }


# ---------- Player ----------
@dataclass
class Player:
    """
    A player. team_id references team.id; deleting the team deletes the player.
    """
    id: int | None
    name: str
    score: int
    team_id: int | None

    @classmethod
    def new(cls) -> Player:
        """A blank, unsaved player with zero score and no team."""
        return cls(id=None, name="", score=0, team_id=None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "score": self.score,
            "team_id": self.team_id,
        }


# ---------- PlayerWithTeam (read model) ----------
@dataclass
class PlayerWithTeam:
    """A player joined with its team, as returned by the team-name ordering."""
    player: Player
    team: Team

    def to_dict(self) -> dict[str, Any]:
        d = self.player.to_dict()
        d["team"] = self.team.to_dict()
        return d
