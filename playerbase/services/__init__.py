"""
Service layer: the application database facade, demo data, form view-models.
"""
from .app_database import AppDatabase
from .forms import (
    PlayerFormViewModel,
    TeamFormViewModel,
    ValidationError,
    ValidationErrorCode,
)
from .generator import DataGenerator, RandomDataGenerator

__all__ = [
    "AppDatabase",
    "PlayerFormViewModel",
    "TeamFormViewModel",
    "ValidationError",
    "ValidationErrorCode",
    "DataGenerator",
    "RandomDataGenerator",
]
