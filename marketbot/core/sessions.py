"""
Per-user session storage.
Sessions are kept as plain dicts behind a small store interface so the
in-memory store can be swapped for the database one. Each user key has
its own asyncio lock: load -> mutate -> persist never interleaves for the
same user, different users run concurrently.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Generic, Optional, Protocol, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from marketbot.config import settings
from marketbot.core.errors import StoreError
from marketbot.db.models import SessionRecord
from marketbot.db.sqlite import Database

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """Key -> serialized session."""

    @abstractmethod
    async def get(self, key: str) -> Optional[dict]:
        pass

    @abstractmethod
    async def set(self, key: str, payload: dict, last_interaction: datetime) -> None:
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass

    @abstractmethod
    async def list_expired(self, before: datetime) -> list[str]:
        """Keys whose last interaction is older than `before`."""
        pass


class InMemorySessionStore(SessionStore):
    """Process-local store, lost on restart."""

    def __init__(self):
        self._items: dict[str, tuple[dict, datetime]] = {}

    async def get(self, key: str) -> Optional[dict]:
        item = self._items.get(key)
        return dict(item[0]) if item else None

    async def set(self, key: str, payload: dict, last_interaction: datetime) -> None:
        self._items[key] = (dict(payload), last_interaction)

    async def delete(self, key: str) -> None:
        self._items.pop(key, None)

    async def list_expired(self, before: datetime) -> list[str]:
        return [key for key, (_, seen) in self._items.items() if seen < before]

    def __len__(self) -> int:
        return len(self._items)


class SqlSessionStore(SessionStore):
    """Sessions in the `conversation_sessions` table, one namespace per kind."""

    def __init__(self, database: Database, kind: str):
        self.db = database
        self.kind = kind

    async def get(self, key: str) -> Optional[dict]:
        try:
            async with self.db.session() as session:
                row = await session.get(SessionRecord, (self.kind, key))
                return dict(row.payload) if row else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load {self.kind} session") from e

    async def set(self, key: str, payload: dict, last_interaction: datetime) -> None:
        try:
            async with self.db.session() as session:
                row = await session.get(SessionRecord, (self.kind, key))
                if row is None:
                    session.add(SessionRecord(
                        kind=self.kind, user_id=key, payload=payload, last_interaction=last_interaction
                    ))
                else:
                    row.payload = payload
                    row.last_interaction = last_interaction
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to save {self.kind} session") from e

    async def delete(self, key: str) -> None:
        try:
            async with self.db.session() as session:
                await session.execute(
                    delete(SessionRecord).where(
                        SessionRecord.kind == self.kind, SessionRecord.user_id == key
                    )
                )
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to delete {self.kind} session") from e

    async def list_expired(self, before: datetime) -> list[str]:
        try:
            async with self.db.session() as session:
                rows = await session.execute(
                    select(SessionRecord.user_id).where(
                        SessionRecord.kind == self.kind, SessionRecord.last_interaction < before
                    )
                )
                return list(rows.scalars().all())
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list expired {self.kind} sessions") from e


class KeyedLock:
    """One asyncio.Lock per key, dropped once nobody holds or waits for it."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)


class Session(Protocol):
    user_id: str
    last_interaction: datetime

    def to_dict(self) -> dict: ...


S = TypeVar("S", bound=Session)


class SessionManager(Generic[S]):
    """Loads, saves and expires sessions of one kind."""

    def __init__(
        self,
        store: SessionStore,
        factory: Callable[[str], S],
        loader: Callable[[dict], S],
        idle_timeout: Optional[timedelta] = None,
        locks: Optional[KeyedLock] = None,
    ):
        self.store = store
        self.factory = factory
        self.loader = loader
        self.idle_timeout = idle_timeout or timedelta(minutes=settings.session_idle_timeout_minutes)
        self.locks = locks or KeyedLock()

    def lock(self, key: str):
        """Context manager serializing work on one user's session."""
        return self.locks.hold(key)

    def _is_expired(self, session: S, now: datetime) -> bool:
        return session.last_interaction < now - self.idle_timeout

    async def load(self, key: str) -> S:
        """Stored session, or a fresh one when missing, unreadable or idle too long."""
        payload = await self.store.get(key)
        if payload is None:
            return self.factory(key)

        try:
            session = self.loader(payload)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding unreadable session for {key}: {e}")
            return self.factory(key)

        if self._is_expired(session, datetime.utcnow()):
            logger.info(f"Session for {key} expired, starting fresh")
            return self.factory(key)
        return session

    async def save(self, session: S) -> None:
        await self.store.set(session.user_id, session.to_dict(), session.last_interaction)

    async def delete(self, key: str) -> None:
        await self.store.delete(key)

    async def sweep_expired(self) -> int:
        """Delete sessions idle longer than the timeout. Returns number removed."""
        cutoff = datetime.utcnow() - self.idle_timeout
        removed = 0
        for key in await self.store.list_expired(cutoff):
            async with self.lock(key):
                # Re-check under the lock: the user may have come back meanwhile
                payload = await self.store.get(key)
                if payload is None:
                    continue
                try:
                    session = self.loader(payload)
                    expired = self._is_expired(session, datetime.utcnow())
                except (KeyError, TypeError, ValueError):
                    expired = True
                if expired:
                    await self.store.delete(key)
                    removed += 1
        if removed:
            logger.info(f"Swept {removed} idle sessions")
        return removed


def create_session_store(kind: str, database: Optional[Database] = None) -> SessionStore:
    """Store selected by settings.session_store."""
    if settings.session_store == "database":
        if database is None:
            from marketbot.db.sqlite import db as database
        return SqlSessionStore(database, kind)
    return InMemorySessionStore()
