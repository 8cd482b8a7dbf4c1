"""
Key/value storage backends for JSON documents.

The engine persists every document as text under a namespaced key. Two
backends are provided:

- MemoryBackend: process-local dict, used for single-client runs and tests.
- SqlBackend: ``storage_entries`` table through an AsyncSession. Writes are
  flushed; the request session is committed through commit(), which the
  progress store calls before it releases a record lock.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from history_engine.kernel.models.storage_entry import StorageEntry


class KeyValueBackend(ABC):
    """Async text store addressed by namespaced keys."""

    @abstractmethod
    async def read(self, key: str, *, for_update: bool = False) -> Optional[str]:
        """Return the stored text or None. ``for_update`` row-locks where supported."""

    @abstractmethod
    async def write(self, key: str, value: Optional[str]) -> None:
        """Store text under key; None removes the key."""

    async def commit(self) -> None:
        """Make writes so far visible to other sessions. No-op where writes are immediate."""


class MemoryBackend(KeyValueBackend):
    """In-memory backend."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def read(self, key: str, *, for_update: bool = False) -> Optional[str]:
        return self._data.get(key)

    async def write(self, key: str, value: Optional[str]) -> None:
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = value


class SqlBackend(KeyValueBackend):
    """SQLAlchemy-backed store over the storage_entries table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def read(self, key: str, *, for_update: bool = False) -> Optional[str]:
        q = select(StorageEntry).where(StorageEntry.key == key)
        if for_update:
            # No-op on SQLite; row lock on PostgreSQL
            q = q.with_for_update()
        result = await self.session.execute(q)
        row = result.scalar_one_or_none()
        return row.value if row else None

    async def commit(self) -> None:
        await self.session.commit()

    async def write(self, key: str, value: Optional[str]) -> None:
        row = await self.session.get(StorageEntry, key)
        if value is None:
            if row is not None:
                await self.session.delete(row)
                await self.session.flush()
            return
        if row is None:
            self.session.add(StorageEntry(key=key, value=value))
        else:
            row.value = value
        await self.session.flush()
