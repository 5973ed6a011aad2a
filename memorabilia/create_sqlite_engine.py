import pathlib

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool


def create_sqlite_engine(sqlite_path: str | None) -> AsyncEngine:
    """Create the async engine for the local record store.

    Relative paths are resolved against the project root. None gives an in-memory database.
    """
    if sqlite_path is None:
        # One shared connection, otherwise every connection opens its own empty database
        return create_async_engine(url="sqlite+aiosqlite://", echo=False, poolclass=StaticPool)
    file_path = pathlib.Path(sqlite_path)
    if not file_path.is_absolute():
        file_path = pathlib.Path(__file__).parents[1] / file_path
    sqlite_url = f"sqlite+aiosqlite:///{file_path}"
    return create_async_engine(url=sqlite_url, echo=False)
