from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class TagLockRegistry:
    # Per-tag mutual exclusion; entries are dropped once no task holds or awaits them.

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._refs: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, tag_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(tag_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[tag_id] = lock
        self._refs[tag_id] = self._refs.get(tag_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._refs[tag_id] -= 1
            if self._refs[tag_id] == 0:
                del self._refs[tag_id]
                del self._locks[tag_id]

    def __len__(self) -> int:
        return len(self._locks)
