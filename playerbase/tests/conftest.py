"""
Shared fixtures: an in-memory store per test.
"""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Run from project root: python -m pytest playerbase/tests
_root = Path(__file__).resolve().parent.parent.parent
if str(_root) not in sys.path:
    sys.path.insert(0, str(_root))

from playerbase.models import Team
from playerbase.persistence.db import open_database
from playerbase.services.app_database import AppDatabase
from playerbase.services.generator import RandomDataGenerator


@pytest.fixture
def writer():
    """Migrated in-memory store."""
    w = open_database()
    try:
        yield w
    finally:
        w.close()


@pytest.fixture
def database(writer):
    return AppDatabase(writer, generator=RandomDataGenerator(seed=42))


@pytest.fixture
def team(database):
    return database.save_team(Team(id=None, team_name="Rome", first_team_date="2001-04-21"))
