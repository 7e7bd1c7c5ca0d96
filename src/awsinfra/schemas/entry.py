"""Entry schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ..core.exceptions import InvalidInputError
from ..entities import Entry
from ..services.entry_service import CreateEntryRequest
from .common import validation_details


class EntryCreate(BaseModel):
    """Entry creation body.

    Title rules are enforced by the service so every caller gets the same
    field-level errors; only the JSON shape is checked here.
    """
    title: Optional[str] = None
    content: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class EntryResponse(BaseModel):
    """Public projection of an entry."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: UUID
    title: str
    content: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime
    created_by: str


class EntryListResponse(BaseModel):
    """Paginated entry list response."""
    items: List[EntryResponse]
    limit: int
    offset: int


def create_request_from_body(body: EntryCreate) -> CreateEntryRequest:
    return CreateEntryRequest(title=body.title, content=body.content, metadata=body.metadata)


def entry_to_response(entry: Entry) -> EntryResponse:
    return EntryResponse(
        id=entry.id,
        title=entry.title,
        content=entry.content,
        metadata=dict(entry.metadata),
        created_at=entry.created_at,
        updated_at=entry.updated_at,
        created_by=entry.created_by,
    )


def parse_entry_create(raw: bytes) -> EntryCreate:
    """Decode and shape-check a creation body.

    Raises:
        InvalidInputError: body is not JSON, not an object, or has wrongly typed fields
    """
    try:
        return EntryCreate.model_validate_json(raw or b"null")
    except ValidationError as e:
        raise InvalidInputError("Request validation failed", details=validation_details(e.errors()))
