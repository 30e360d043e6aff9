"""Per-key asyncio locks for serializing multi-step work on one record."""
import asyncio
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager


class KeyedLock:
    """
    Hands out one asyncio.Lock per key.

    Used to serialize insert+retention and revert lookup+apply+prune for the
    same record id within a process. Locks are dropped once no task holds or
    waits on them, so the map does not grow with every record ever touched.

    A lock taken with ``hold(key, owner=session)`` inside
    ``until_released(session)`` stays held until that block exits, so the
    session dependency can commit before the next writer reads the record.
    Without an open scope for the owner, the lock is released when the
    ``hold`` block exits.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}
        self._deferred: dict[Hashable, list[str]] = {}

    async def _acquire(self, key: str) -> None:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            await lock.acquire()
        except BaseException:
            self._forget(key)
            raise

    def _release(self, key: str) -> None:
        self._locks[key].release()
        self._forget(key)

    def _forget(self, key: str) -> None:
        self._waiters[key] -= 1
        if self._waiters[key] == 0:
            del self._waiters[key]
            del self._locks[key]

    @asynccontextmanager
    async def hold(self, key: str, owner: Hashable | None = None) -> AsyncIterator[None]:
        """
        Acquire the lock for ``key`` for the duration of the block.

        If ``owner`` has an open ``until_released`` scope, the lock is kept
        until that scope exits instead, and holding a key the owner already
        has is a no-op.
        """
        held = self._deferred.get(owner) if owner is not None else None
        if held is not None:
            if key not in held:
                await self._acquire(key)
                held.append(key)
            yield
            return

        await self._acquire(key)
        try:
            yield
        finally:
            self._release(key)

    @asynccontextmanager
    async def until_released(self, owner: Hashable) -> AsyncIterator[None]:
        """Keep every lock ``owner`` takes in this block until the block exits."""
        self._deferred[owner] = []
        try:
            yield
        finally:
            for key in reversed(self._deferred.pop(owner)):
                self._release(key)

    def is_held(self, key: str) -> bool:
        """Return True if some task currently holds the lock for ``key``."""
        lock = self._locks.get(key)
        return lock is not None and lock.locked()


# Shared across services so inserts and reverts on one record exclude each other
record_locks = KeyedLock()
