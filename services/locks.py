# services/locks.py
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class TournamentLocks:
    """
    One asyncio.Lock per tournament id, so read-modify-write sequences for the
    same tournament never interleave inside this process. Other processes are
    kept out by the version check in the repository.

    A lock lives only while someone holds or waits on it.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def lock_for(self, tournament_id: str) -> asyncio.Lock:
        lock = self._locks.get(tournament_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[tournament_id] = lock
        return lock

    def is_locked(self, tournament_id: str) -> bool:
        lock = self._locks.get(tournament_id)
        return bool(lock and lock.locked())

    @asynccontextmanager
    async def hold(self, tournament_id: str) -> AsyncIterator[None]:
        lock = self.lock_for(tournament_id)
        self._users[tournament_id] = self._users.get(tournament_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[tournament_id] -= 1
            if self._users[tournament_id] == 0:
                del self._users[tournament_id]
                del self._locks[tournament_id]
