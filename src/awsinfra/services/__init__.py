"""Service layer for business logic."""

from .entry_service import CreateEntryRequest, EntryService

__all__ = [
    "CreateEntryRequest",
    "EntryService",
]
