"""Domain entities."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

TITLE_MAX_LENGTH = 255


@dataclass(frozen=True)
class Entry:
    """A persisted entry. Never updated or deleted once created."""
    id: UUID
    title: str
    content: Optional[str]
    created_by: str
    created_at: datetime
    updated_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)
