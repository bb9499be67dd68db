import asyncio
from contextlib import asynccontextmanager
from typing import Dict, List


class PropertyLockRegistry:
    """Serializes mutations of the same property within this process.

    Locks are created on demand and dropped once nobody holds or waits on
    them. Separate worker processes are not covered.
    """

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}
        self._users: Dict[int, int] = {}

    @asynccontextmanager
    async def hold(self, property_id: int):
        lock = self._locks.setdefault(property_id, asyncio.Lock())
        self._users[property_id] = self._users.get(property_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[property_id] -= 1
            if self._users[property_id] == 0:
                del self._users[property_id]
                del self._locks[property_id]

    def active(self) -> List[int]:
        return list(self._locks)


property_locks = PropertyLockRegistry()
