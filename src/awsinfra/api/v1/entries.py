"""Entry API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status

from ...auth import Principal
from ...core.exceptions import InvalidInputError
from ...dependencies import get_entry_service, get_principal
from ...schemas import (
    EntryCreate,
    EntryListResponse,
    EntryResponse,
    ErrorResponse,
    create_request_from_body,
    entry_to_response,
    parse_entry_create,
)
from ...services import EntryService
from ...services.entry_service import DEFAULT_PAGE_SIZE


ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}

# The body is read inside the handler so authentication runs before it is parsed
CREATE_BODY = {
    "requestBody": {
        "required": True,
        "content": {"application/json": {"schema": EntryCreate.model_json_schema()}},
    }
}

router = APIRouter(prefix="/entries", tags=["Entries"], responses=ERROR_RESPONSES)


def _parse_entry_id(raw: str) -> UUID:
    try:
        return UUID(raw)
    except ValueError:
        raise InvalidInputError.for_field("id", "id must be a UUID")


@router.post(
    "",
    response_model=EntryResponse,
    status_code=status.HTTP_201_CREATED,
    openapi_extra=CREATE_BODY,
)
async def create_entry(
    request: Request,
    principal: Principal = Depends(get_principal),
    entry_service: EntryService = Depends(get_entry_service),
):
    """
    Create a new entry.

    The creator is the authenticated caller. Requires ``entry:create``.
    """
    body = parse_entry_create(await request.body())
    entry = await entry_service.create_entry(principal, create_request_from_body(body))
    return entry_to_response(entry)


@router.get("", response_model=EntryListResponse)
async def list_entries(
    limit: int = Query(DEFAULT_PAGE_SIZE, description="Results per page"),
    offset: int = Query(0, description="Pagination offset"),
    principal: Principal = Depends(get_principal),
    entry_service: EntryService = Depends(get_entry_service),
):
    """List entries, newest first. Requires ``entry:read``."""
    entries = await entry_service.list_entries(principal, limit=limit, offset=offset)
    return EntryListResponse(
        items=[entry_to_response(e) for e in entries],
        limit=limit,
        offset=offset,
    )


@router.get("/{entry_id}", response_model=EntryResponse, responses={404: {"model": ErrorResponse}})
async def get_entry(
    entry_id: str,
    principal: Principal = Depends(get_principal),
    entry_service: EntryService = Depends(get_entry_service),
):
    """Get entry by ID. Requires ``entry:read``."""
    entry = await entry_service.get_entry(principal, _parse_entry_id(entry_id))
    return entry_to_response(entry)
