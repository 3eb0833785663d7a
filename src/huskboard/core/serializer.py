"""Per-key mutual exclusion for reconciliation cycles."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Dict, Hashable, TypeVar

T = TypeVar("T")


class KeySerializer:
    """One asyncio.Lock per key, created on first use and dropped when idle.

    Events sharing a key run one at a time for the whole cycle, which is what
    stops two concurrent events from both seeing "no representation" and
    both creating one. Different keys never wait on each other.
    """

    def __init__(self) -> None:
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        # Holders plus waiters per key; the lock is reclaimed at zero.
        self._users: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._users[key] - 1
            if remaining:
                self._users[key] = remaining
            else:
                del self._users[key]
                del self._locks[key]

    async def run(self, key: Hashable, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` while holding the lock for ``key``."""

        async with self.hold(key):
            return await fn()

    def active_keys(self) -> int:
        return len(self._locks)
