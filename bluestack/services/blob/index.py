"""
Namespace Index

In-memory existence table for (account, container) pairs, guarded by a
single reader/writer lock shared with the storage engine.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, Set, Tuple


def container_key(account: str, container: str) -> str:
    """Return the unique index key for a container."""
    return f"{account}/{container}"


class ReadWriteLock:
    """
    Asyncio reader/writer lock.

    Any number of readers may hold the lock at once; a writer holds it alone.
    Waiting writers block new readers so that writers are not starved.
    """

    def __init__(self):
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        """Hold the lock in shared mode."""
        async with self._cond:
            await self._cond.wait_for(
                lambda: not self._writer and self._writers_waiting == 0
            )
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        """Hold the lock in exclusive mode."""
        async with self._cond:
            self._writers_waiting += 1
            try:
                await self._cond.wait_for(
                    lambda: not self._writer and self._readers == 0
                )
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()

    @property
    def readers(self) -> int:
        """Number of readers currently holding the lock."""
        return self._readers

    @property
    def write_locked(self) -> bool:
        """Whether a writer currently holds the lock."""
        return self._writer


class NamespaceIndex:
    """
    Existence cache over the container directories on disk.

    The index does not take the lock itself: callers hold ``lock.read()``
    around lookups and ``lock.write()`` around mutations, together with the
    directory create/remove the mutation mirrors.
    """

    def __init__(self, keys: Iterable[Tuple[str, str]] = ()):
        self._containers: Set[str] = {container_key(a, c) for a, c in keys}
        self.lock = ReadWriteLock()

    def exists(self, account: str, container: str) -> bool:
        return container_key(account, container) in self._containers

    def mark(self, account: str, container: str) -> None:
        self._containers.add(container_key(account, container))

    def unmark(self, account: str, container: str) -> None:
        self._containers.discard(container_key(account, container))

    def clear(self) -> None:
        self._containers.clear()

    def keys(self) -> Set[str]:
        """Snapshot of the indexed container keys."""
        return set(self._containers)

    def __len__(self) -> int:
        return len(self._containers)
