"""Authenticated caller and the internal role vocabulary."""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet

ENTRY_CREATE = "entry:create"
ENTRY_READ = "entry:read"

INTERNAL_ROLES: FrozenSet[str] = frozenset({ENTRY_CREATE, ENTRY_READ})


@dataclass(frozen=True)
class Principal:
    """Identity plus role set derived from a verified token."""
    subject: str
    roles: FrozenSet[str] = frozenset()
    claims: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def has_role(self, role: str) -> bool:
        return role in self.roles
