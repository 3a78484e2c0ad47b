"""
Vault Locks — Per-user exclusive sections.

Key rotation must not run twice at once for a user, and no ordinary secret
write may interleave with a rotation. The secret service takes a
``UserLocker`` and holds it around every write path; locking granularity is
one user, never global.
"""
import asyncio
import logging
import contextlib
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

logger = logging.getLogger("spaces.vault")


class UserLocker(ABC):
    """Capability to hold an exclusive section for one user."""

    @abstractmethod
    def hold(self, user_id: str) -> contextlib.AbstractAsyncContextManager:
        """Return an async context manager owning the user's section."""


class LocalUserLocker(UserLocker):
    """One asyncio.Lock per user id; serializes within a single process."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    def locked(self, user_id: str) -> bool:
        lock = self._locks.get(user_id)
        return lock is not None and lock.locked()

    @contextlib.asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._waiters[user_id] = self._waiters.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[user_id] -= 1
            if not self._waiters[user_id]:
                # nobody else is queued on this user; drop the lock
                del self._waiters[user_id]
                del self._locks[user_id]


_ADVISORY_LOCK = "SELECT pg_advisory_lock(hashtext($1))"
_ADVISORY_UNLOCK = "SELECT pg_advisory_unlock(hashtext($1))"


class AdvisoryUserLocker(UserLocker):
    """PostgreSQL session advisory lock keyed by user id.

    Serializes across processes sharing the database. The lock lives on a
    connection taken from the pool for the duration of the section.
    The stores acquire their own connections while the section is held, so
    the pool needs at least one connection more than the number of
    sections held at once: a pool of size 1 deadlocks on the first write.
    """

    def __init__(self, db_pool: Any, namespace: str = "spaces.vault"):
        self._db = db_pool
        self._namespace = namespace

    def _lock_key(self, user_id: str) -> str:
        return f"{self._namespace}:{user_id}"

    @contextlib.asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[None]:
        key = self._lock_key(user_id)
        async with self._db.acquire() as conn:
            await conn.execute(_ADVISORY_LOCK, key)
            logger.debug("Advisory lock acquired for user=%s", user_id)
            try:
                yield
            finally:
                await conn.execute(_ADVISORY_UNLOCK, key)
                logger.debug("Advisory lock released for user=%s", user_id)
