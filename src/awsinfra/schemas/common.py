"""Shared response schemas."""

from typing import Any, Dict, Iterable, List

from pydantic import BaseModel, Field

# Location prefixes FastAPI adds in front of the field name
_LOCATION_PARTS = ("body", "query", "path", "header")


class ErrorResponse(BaseModel):
    """Body of every error response."""
    status: int
    code: str
    message: str
    details: List[Dict[str, Any]] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str


def validation_details(errors: Iterable[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Turn pydantic/FastAPI error dicts into ``{"field", "message"}`` details.

    A body that is not valid JSON is reported against ``body``; the decoder
    position pydantic puts in ``loc`` is not a field.
    """
    details = []
    for error in errors:
        if error.get("type") == "json_invalid":
            field = "body"
        else:
            loc = [str(part) for part in error.get("loc", ()) if part not in _LOCATION_PARTS]
            field = ".".join(loc) or "body"
        details.append({"field": field, "message": error.get("msg", "invalid value")})
    return details
