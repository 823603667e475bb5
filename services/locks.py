"""Per-thread serialization of chat turns within one process."""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class ThreadLockRegistry:
    """One asyncio.Lock per thread id, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, thread_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(thread_id, asyncio.Lock())
        self._holders[thread_id] = self._holders.get(thread_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[thread_id] -= 1
            if self._holders[thread_id] == 0:
                del self._holders[thread_id]
                del self._locks[thread_id]

    def is_locked(self, thread_id: str) -> bool:
        lock = self._locks.get(thread_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
