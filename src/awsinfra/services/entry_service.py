"""Entry service with role-based access control."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID, uuid4

from loguru import logger

from ..auth.principal import ENTRY_CREATE, ENTRY_READ, Principal
from ..core.exceptions import (
    ConflictError,
    ForbiddenError,
    InternalError,
    InvalidInputError,
    ServiceUnavailable,
    StoreUnavailable,
)
from ..entities import TITLE_MAX_LENGTH, Entry
from ..observability import LoggingMetricsSink, MetricsSink, track_operation
from ..repositories.entry_repository import EntryRepository

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CreateEntryRequest:
    """Caller-supplied fields of a new entry."""
    title: Optional[str]
    content: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = field(default=None)


def validate_create_request(request: CreateEntryRequest) -> None:
    """Raise InvalidInputError listing every offending field."""
    errors: List[Dict[str, str]] = []

    title = request.title
    if title is None:
        errors.append({"field": "title", "message": "title is required"})
    elif not isinstance(title, str):
        errors.append({"field": "title", "message": "title must be a string"})
    elif not title.strip():
        errors.append({"field": "title", "message": "title must not be empty"})
    elif len(title) > TITLE_MAX_LENGTH:
        errors.append({
            "field": "title",
            "message": f"title must be at most {TITLE_MAX_LENGTH} characters",
        })

    if request.content is not None and not isinstance(request.content, str):
        errors.append({"field": "content", "message": "content must be a string"})

    if request.metadata is not None and not isinstance(request.metadata, dict):
        errors.append({"field": "metadata", "message": "metadata must be a JSON object"})

    if errors:
        raise InvalidInputError("Entry validation failed", details=errors)


def _require_role(principal: Principal, role: str) -> None:
    if not principal.has_role(role):
        logger.info(f"Principal {principal.subject} denied: missing {role}")
        raise ForbiddenError(role)


class EntryService:
    """Business logic for Entry operations."""

    def __init__(
        self,
        entry_repo: EntryRepository,
        metrics: Optional[MetricsSink] = None,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], UUID] = uuid4,
    ):
        self.entry_repo = entry_repo
        self.metrics = metrics or LoggingMetricsSink()
        self.clock = clock
        self.id_factory = id_factory

    async def create_entry(self, principal: Principal, request: CreateEntryRequest) -> Entry:
        """Create a new entry owned by ``principal``.

        An id collision is retried once with a fresh id; a second collision
        is an InternalError.
        """
        with track_operation(self.metrics, "entries.create"):
            _require_role(principal, ENTRY_CREATE)
            validate_create_request(request)

            now = self.clock()
            entry = Entry(
                id=self.id_factory(),
                title=request.title,
                content=request.content,
                created_by=principal.subject,
                metadata=dict(request.metadata or {}),
                created_at=now,
                updated_at=now,
            )

            for attempt in (1, 2):
                try:
                    created = await self.entry_repo.create(entry)
                except StoreUnavailable as e:
                    raise ServiceUnavailable(e.message)
                except ConflictError:
                    if attempt == 2:
                        logger.error(f"Entry id collision persisted after retry ({entry.id})")
                        raise InternalError("Could not assign a unique entry id")
                    logger.warning(f"Entry id collision on {entry.id}, regenerating")
                    entry = replace(entry, id=self.id_factory())
                else:
                    logger.info(f"Entry {created.id} created by {principal.subject}")
                    return created

    async def get_entry(self, principal: Principal, entry_id: UUID) -> Entry:
        """Get entry by ID. NotFoundError propagates unchanged."""
        with track_operation(self.metrics, "entries.get"):
            _require_role(principal, ENTRY_READ)
            try:
                return await self.entry_repo.get_by_id(entry_id)
            except StoreUnavailable as e:
                raise ServiceUnavailable(e.message)

    async def list_entries(
        self,
        principal: Principal,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> List[Entry]:
        """Page through entries, newest first."""
        with track_operation(self.metrics, "entries.list"):
            _require_role(principal, ENTRY_READ)
            if not 1 <= limit <= MAX_PAGE_SIZE:
                raise InvalidInputError.for_field("limit", f"limit must be between 1 and {MAX_PAGE_SIZE}")
            if offset < 0:
                raise InvalidInputError.for_field("offset", "offset must not be negative")
            try:
                return await self.entry_repo.list(limit=limit, offset=offset)
            except StoreUnavailable as e:
                raise ServiceUnavailable(e.message)
