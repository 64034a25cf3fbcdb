"""
Form view-models: hold the edited fields of one player or team, validate
them, and save through AppDatabase. Validation happens before any store access.
"""
from __future__ import annotations

from enum import Enum

from playerbase.models import Player, Team

from .app_database import AppDatabase


class ValidationErrorCode(str, Enum):
    MISSING_NAME = "missing_name"
    MISSING_TEAM = "missing_team"
    MISSING_TEAM_NAME = "missing_team_name"


_MESSAGES = {
    ValidationErrorCode.MISSING_NAME: "Please give a name to this player.",
    ValidationErrorCode.MISSING_TEAM: "Please choose a team for this player.",
    ValidationErrorCode.MISSING_TEAM_NAME: "Please give a name to this team.",
}


class ValidationError(ValueError):
    """Edited values cannot be saved. str(error) is the user-facing message."""

    def __init__(self, code: ValidationErrorCode) -> None:
        super().__init__(_MESSAGES[code])
        self.code = code


# ---------- PlayerFormViewModel ----------


class PlayerFormViewModel:
    """Feeds player creation and edition forms."""

    def __init__(self, database: AppDatabase, player: Player) -> None:
        self._database = database
        self._player = player
        self.name = ""
        self.score = ""
        self.team_id: int | None = None
        self._update_fields_from_player()

    @property
    def player(self) -> Player:
        return self._player

    def save(self) -> Player:
        """Validate, copy the fields into the held player, and save it."""
        if not self.name:
            raise ValidationError(ValidationErrorCode.MISSING_NAME)
        if self.team_id is None:
            raise ValidationError(ValidationErrorCode.MISSING_TEAM)
        self._player.name = self.name
        self._player.team_id = self.team_id
        self._player.score = _parse_score(self.score)
        return self._database.save_player(self._player)

    def reset(self) -> None:
        """Discard edits: fields go back to the held player's values."""
        self._update_fields_from_player()

    def edit_new_player(self) -> None:
        self._player = Player.new()
        self._update_fields_from_player()

    def _update_fields_from_player(self) -> None:
        self.name = self._player.name
        self.team_id = self._player.team_id
        if self._player.score == 0 and self._player.id is None:
            # A new player shows an empty score, not "0".
            self.score = ""
        else:
            self.score = str(self._player.score)


def _parse_score(text: str) -> int:
    try:
        return int(text.strip())
    except ValueError:
        return 0


# ---------- TeamFormViewModel ----------


class TeamFormViewModel:
    """Feeds team creation and edition forms."""

    def __init__(self, database: AppDatabase, team: Team) -> None:
        self._database = database
        self._team = team
        self.team_name = ""
        self.first_team_date = ""
        self._update_fields_from_team()

    @property
    def team(self) -> Team:
        return self._team

    def save(self) -> Team:
        if not self.team_name:
            raise ValidationError(ValidationErrorCode.MISSING_TEAM_NAME)
        self._team.team_name = self.team_name
        if self.first_team_date:
            self._team.first_team_date = self.first_team_date
        return self._database.save_team(self._team)

    def reset(self) -> None:
        self._update_fields_from_team()

    def edit_new_team(self) -> None:
        self._team = Team.new()
        self._update_fields_from_team()

    def _update_fields_from_team(self) -> None:
        self.team_name = self._team.team_name
        self.first_team_date = self._team.first_team_date
