"""Dependency injection for FastAPI endpoints.

Shared resources are created in the application lifespan and stored on
``app.state``; these providers hand them to endpoints explicitly.
"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .auth import Principal, TokenValidator
from .config import Settings
from .core.exceptions import AuthenticationFailed
from .repositories import EntryRepository
from .services import EntryService


# Missing credentials are reported as 401 by get_principal, not FastAPI's 403
security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_validator(request: Request) -> TokenValidator:
    return request.app.state.token_validator


# Repository dependencies
def get_entry_repository(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> EntryRepository:
    """Get EntryRepository bound to the shared session factory."""
    return EntryRepository(request.app.state.session_maker, timeout=settings.store_timeout_seconds)


# Service dependencies
def get_entry_service(
    request: Request,
    entry_repo: EntryRepository = Depends(get_entry_repository),
) -> EntryService:
    """Get EntryService instance."""
    return EntryService(entry_repo, metrics=request.app.state.metrics)


# Authentication dependencies
async def get_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    validator: TokenValidator = Depends(get_token_validator),
) -> Principal:
    """
    Authenticate the caller from the bearer token.

    Raises:
        AuthenticationFailed: header missing, not Bearer, or token invalid
        AuthenticationUnavailable: signing keys cannot be fetched
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationFailed("Missing bearer token")
    return await validator.validate(credentials.credentials)
