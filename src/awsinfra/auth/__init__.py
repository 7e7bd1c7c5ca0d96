"""Bearer token authentication."""

from .jwks import SigningKeyCache
from .principal import ENTRY_CREATE, ENTRY_READ, Principal
from .validator import TokenValidator

__all__ = [
    "ENTRY_CREATE",
    "ENTRY_READ",
    "Principal",
    "SigningKeyCache",
    "TokenValidator",
]
