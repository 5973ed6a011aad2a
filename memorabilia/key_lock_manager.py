from asyncio import Lock
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class KeyLockManager:
    def __init__(self):
        self.locks: Dict[str, Lock] = {}  # one Lock per record key
        self.lock = Lock()  # protects self.locks

    async def get_lock(self, key: str) -> Lock:
        """Get the Lock of the specified key

        Args:
            key (str): Record key in the persistence store

        Returns:
            Lock: Lock serializing read-modify-write cycles on this key
        """
        async with self.lock:
            if key not in self.locks:
                self.locks[key] = Lock()
            return self.locks[key]

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock of the key for the duration of the block.

        Writers of the same key are sequenced; different keys do not wait on each other.
        """
        key_lock = await self.get_lock(key)
        async with key_lock:
            yield

    async def cleanup(self, key: str):
        """Delete the Lock of the specified key if nobody holds it

        Args:
            key (str): Record key in the persistence store
        """
        async with self.lock:
            if key in self.locks and not self.locks[key].locked():
                del self.locks[key]
