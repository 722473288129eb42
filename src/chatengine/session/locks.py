"""Per-sender serialization of turns."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class SenderLocks:
    """One asyncio lock per sender id, dropped once nobody holds or awaits it.

    Turns for the same sender run one at a time, so a handler never reads a
    session that another in-flight turn is about to overwrite.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, sender_id: str) -> AsyncIterator[None]:
        """Hold the sender's lock for the duration of the block."""
        lock = self._locks.setdefault(sender_id, asyncio.Lock())
        self._waiters[sender_id] = self._waiters.get(sender_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[sender_id] -= 1
            if self._waiters[sender_id] == 0:
                del self._waiters[sender_id]
                del self._locks[sender_id]

    def __len__(self) -> int:
        return len(self._locks)
