"""History of committed try-on results."""

import asyncio
from typing import Protocol, runtime_checkable

from ..models import HistoryEntry


@runtime_checkable
class HistoryStore(Protocol):
    async def append(self, entry: HistoryEntry) -> None: ...
    async def list(self) -> list[HistoryEntry]: ...
    async def clear(self) -> None: ...


class InMemoryHistoryStore:
    """Newest-first history capped to ``limit`` entries.

    The store owns its list; every read and write goes through one lock so
    concurrent read-modify-write cycles cannot interleave.
    """

    def __init__(self, limit: int = 10):
        self.limit = limit
        self._entries: list[HistoryEntry] = []
        self._lock = asyncio.Lock()

    async def append(self, entry: HistoryEntry) -> None:
        async with self._lock:
            self._entries.insert(0, entry)
            del self._entries[self.limit:]

    async def list(self) -> list[HistoryEntry]:
        async with self._lock:
            return list(self._entries)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
