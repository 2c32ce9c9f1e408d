# src/contextgate/store/locks.py
"""
Async reader/writer lock guarding the context store's indexed state.

Readers share the lock; a writer holds it exclusively. Waiting writers
block new readers so a steady stream of reads cannot starve mutations.

Releasing never suspends: the holder count changes synchronously and the
wake-up of waiters runs in a separate task, so a task cancelled on its way
out of :meth:`AsyncReadWriteLock.read` or :meth:`AsyncReadWriteLock.write`
still gives the lock back.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Set


class AsyncReadWriteLock:
    """
    A writer-preferring reader/writer lock for asyncio tasks.

    Example::

        lock = AsyncReadWriteLock()

        async with lock.read():
            ...  # any number of concurrent readers

        async with lock.write():
            ...  # exclusive
    """

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0
        self._wakeups: Set[asyncio.Task] = set()

    @property
    def readers(self) -> int:
        """Number of tasks currently holding the read side."""
        return self._readers

    @property
    def write_locked(self) -> bool:
        """True while a writer holds the lock."""
        return self._writer

    async def _notify_waiters(self) -> None:
        async with self._cond:
            self._cond.notify_all()

    def _wake_waiters(self) -> None:
        # Waiters re-check their predicate under the condition lock, and this
        # notify takes that lock after the state change, so no wake-up is lost.
        task = asyncio.get_running_loop().create_task(self._notify_waiters())
        self._wakeups.add(task)
        task.add_done_callback(self._wakeups.discard)

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and self._waiting_writers == 0)
            self._readers += 1
        try:
            yield
        finally:
            self._readers -= 1
            if self._readers == 0:
                self._wake_waiters()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            self._waiting_writers += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            finally:
                self._waiting_writers -= 1
                # A cancelled writer may have been the only thing holding readers back.
                self._cond.notify_all()
            self._writer = True
        try:
            yield
        finally:
            self._writer = False
            self._wake_waiters()
