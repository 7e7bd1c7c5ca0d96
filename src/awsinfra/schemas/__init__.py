"""Request and response schemas."""

from .common import ErrorResponse, HealthResponse, validation_details
from .entry import (
    EntryCreate,
    EntryListResponse,
    EntryResponse,
    create_request_from_body,
    entry_to_response,
    parse_entry_create,
)

__all__ = [
    "EntryCreate",
    "EntryListResponse",
    "EntryResponse",
    "ErrorResponse",
    "HealthResponse",
    "create_request_from_body",
    "entry_to_response",
    "parse_entry_create",
    "validation_details",
]
