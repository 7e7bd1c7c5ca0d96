"""Entry store."""

import asyncio
from typing import List
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..core.exceptions import ConflictError, NotFoundError
from ..database import EntryRecord
from ..entities import Entry
from .base import BaseRepository


def entry_to_record(entry: Entry) -> EntryRecord:
    return EntryRecord(
        id=entry.id,
        title=entry.title,
        content=entry.content,
        created_by=entry.created_by,
        entry_metadata=dict(entry.metadata),
        created_at=entry.created_at,
        updated_at=entry.updated_at,
    )


def record_to_entry(record: EntryRecord) -> Entry:
    return Entry(
        id=record.id,
        title=record.title,
        content=record.content,
        created_by=record.created_by,
        metadata=dict(record.entry_metadata or {}),
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _retrieve_result(task: "asyncio.Task[Entry]") -> None:
    # Marks the outcome as retrieved when the caller has already given up
    if not task.cancelled() and task.exception() is not None:
        logger.debug(f"Entry insert finished with {task.exception()!r}")


class EntryRepository(BaseRepository):
    """Durable key-addressed storage for entries."""

    async def create(self, entry: Entry) -> Entry:
        """Insert ``entry`` and commit.

        The insert runs shielded: an aborted request or a timeout does not
        interrupt a write in flight, its result is simply discarded.

        Raises:
            ConflictError: an entry with the same id already exists
            StoreUnavailable: connectivity loss or timeout
        """
        task = asyncio.ensure_future(self._insert(entry))
        task.add_done_callback(_retrieve_result)
        return await self._bounded("create", asyncio.shield(task))

    async def _insert(self, entry: Entry) -> Entry:
        async with self.session_maker() as session:
            session.add(entry_to_record(entry))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise ConflictError(f"Entry with id {entry.id} already exists")
        return entry

    async def get_by_id(self, entry_id: UUID) -> Entry:
        """Fetch one entry.

        Raises:
            NotFoundError: no entry with that id
            StoreUnavailable: connectivity loss or timeout
        """
        record = await self._bounded("get", self._select_one(entry_id))
        if record is None:
            raise NotFoundError("Entry", str(entry_id))
        return record_to_entry(record)

    async def _select_one(self, entry_id: UUID):
        async with self.session_maker() as session:
            result = await session.execute(select(EntryRecord).where(EntryRecord.id == entry_id))
            return result.scalar_one_or_none()

    async def list(self, limit: int = 20, offset: int = 0) -> List[Entry]:
        """Page through entries, newest first."""
        records = await self._bounded("list", self._select_page(limit, offset))
        return [record_to_entry(r) for r in records]

    async def _select_page(self, limit: int, offset: int):
        query = (
            select(EntryRecord)
            .order_by(EntryRecord.created_at.desc(), EntryRecord.id.desc())
            .offset(offset)
            .limit(limit)
        )
        async with self.session_maker() as session:
            result = await session.execute(query)
            return list(result.scalars().all())
