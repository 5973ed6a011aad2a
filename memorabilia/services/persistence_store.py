"""Keyed record storage for player profiles and leaderboard entries.

Callers depend only on the PersistenceStore protocol. Values are JSON-compatible
(dicts, lists, strings, numbers); each implementation stores a copy, never the
caller's object.
"""

import copy
import json
from typing import Any, Dict, Protocol

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from memorabilia.crud import DeleteRecord, ReadRecord, UpdateRecord
from memorabilia.db import create_session_factory, create_tables


class PersistenceStore(Protocol):
    """Access abstraction for the local record store.

    Contract:
    - get returns None when the key is absent.
    - set replaces the whole value stored under the key.
    - remove of an absent key is not an error.
    """

    async def get(self, key: str) -> Any:
        ...

    async def set(self, key: str, value: Any) -> None:
        ...

    async def remove(self, key: str) -> None:
        ...


class InMemoryPersistenceStore(PersistenceStore):
    """Process-local store, used for demo play and tests."""

    def __init__(self):
        self.records: Dict[str, Any] = {}

    async def get(self, key: str) -> Any:
        if key not in self.records:
            return None
        return copy.deepcopy(self.records[key])

    async def set(self, key: str, value: Any) -> None:
        # round-trip through JSON so non-serializable values fail here, like in the SQLite store
        self.records[key] = json.loads(json.dumps(value))

    async def remove(self, key: str) -> None:
        self.records.pop(key, None)


class SqlitePersistenceStore(PersistenceStore):
    """SQLite-backed store; one row per key holding a JSON document."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.Session: async_sessionmaker = create_session_factory(engine)

    async def init_models(self) -> None:
        await create_tables(self.engine)

    async def get(self, key: str) -> Any:
        async with self.Session() as session:
            return await ReadRecord.read_value(key, session)

    async def set(self, key: str, value: Any) -> None:
        async with self.Session() as session:
            await UpdateRecord.upsert_value(key, value, session)

    async def remove(self, key: str) -> None:
        async with self.Session() as session:
            await DeleteRecord.delete_value(key, session)

    async def close(self) -> None:
        await self.engine.dispose()
