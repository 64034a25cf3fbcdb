"""
Runtime configuration from environment variables.
"""
from __future__ import annotations

import os
from typing import Mapping

from pydantic import BaseModel, Field, field_validator

_TRUE_VALUES = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """
    Store location and demo-data knobs.
    erase_database_on_schema_change is destructive: only for development.
    """
    db_path: str = "data/players.db"
    erase_database_on_schema_change: bool = False
    random_batch_size: int = Field(default=8, ge=1)
    seed: int | None = None

    @field_validator("db_path")
    @classmethod
    def _db_path_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("db_path must not be empty")
        return v


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from PLAYERBASE_* variables; unset variables keep defaults."""
    env = os.environ if environ is None else environ
    values: dict[str, object] = {}
    if env.get("PLAYERBASE_DB_PATH"):
        values["db_path"] = env["PLAYERBASE_DB_PATH"]
    if env.get("PLAYERBASE_ERASE_ON_SCHEMA_CHANGE"):
        values["erase_database_on_schema_change"] = (
            env["PLAYERBASE_ERASE_ON_SCHEMA_CHANGE"].strip().lower() in _TRUE_VALUES
        )
    if env.get("PLAYERBASE_RANDOM_BATCH"):
        values["random_batch_size"] = env["PLAYERBASE_RANDOM_BATCH"].strip()
    if env.get("PLAYERBASE_SEED"):
        values["seed"] = env["PLAYERBASE_SEED"].strip()
    return Settings(**values)
