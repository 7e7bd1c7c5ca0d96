"""Base repository with bounded, error-translating store calls."""

import asyncio
from typing import Awaitable, TypeVar

from loguru import logger
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.exceptions import StoreUnavailable

T = TypeVar("T")


class BaseRepository:
    """
    Base repository for all data access.

    Each store call checks a session out of the pool and returns it when the
    call completes or fails. Calls go through ``_bounded`` so they either
    finish within ``timeout`` seconds or fail with StoreUnavailable.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], timeout: float = 5.0):
        """
        Initialize repository.

        Args:
            session_maker: Factory bound to the shared engine
            timeout: Upper bound in seconds for a single store call
        """
        self.session_maker = session_maker
        self.timeout = timeout

    async def _bounded(self, operation: str, call: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Store {operation} timed out after {self.timeout}s")
            raise StoreUnavailable(operation, "timed out")
        except PoolTimeoutError as e:
            logger.warning(f"Store {operation}: connection pool exhausted: {e}")
            raise StoreUnavailable(operation, "connection pool exhausted")
        except (OperationalError, OSError) as e:
            logger.warning(f"Store {operation}: connection failed: {e}")
            raise StoreUnavailable(operation, "connection failed")
        except DBAPIError as e:
            if e.connection_invalidated:
                logger.warning(f"Store {operation}: connection lost: {e}")
                raise StoreUnavailable(operation, "connection lost")
            raise
