"""Per-key asyncio locks.

Used wherever concurrent requests must serialise on one key but may run in
parallel across keys: connector construction per (principal, venue), and
order mutations per order id.
"""

import asyncio
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field


@dataclass
class _Entry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class KeyedLocks:
    """A table of asyncio.Lock objects created on demand, one per key.

    Entries are dropped once no coroutine holds or waits on them, so the
    table does not grow with every key ever seen.
    """

    def __init__(self) -> None:
        self._entries: dict[Hashable, _Entry] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """Acquire the lock for ``key`` for the duration of the block."""
        # Lookup-or-create runs without an await, so it is atomic on the loop
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)
