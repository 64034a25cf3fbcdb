"""
Persistence layer for players and teams.
No business logic: schema, migrations, the writer handle, requests, live queries.
"""
from .db import get_connection, open_database
from .migrations import DatabaseMigrator, MigrationError
from .observation import (
    AsyncioScheduler,
    Cancellable,
    ImmediateScheduler,
    QueueScheduler,
    ValueObservation,
)
from .repositories import PlayerRepository, RecordNotFoundError, TeamRepository
from .requests import PlayerRequest, TeamRequest
from .writer import DatabaseWriter

__all__ = [
    "get_connection",
    "open_database",
    "DatabaseMigrator",
    "MigrationError",
    "DatabaseWriter",
    "ValueObservation",
    "Cancellable",
    "ImmediateScheduler",
    "QueueScheduler",
    "AsyncioScheduler",
    "PlayerRequest",
    "TeamRequest",
    "PlayerRepository",
    "TeamRepository",
    "RecordNotFoundError",
]
