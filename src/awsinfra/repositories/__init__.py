"""Repository layer for data access."""

from .base import BaseRepository
from .entry_repository import EntryRepository

__all__ = [
    "BaseRepository",
    "EntryRepository",
]
