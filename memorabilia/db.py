from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from memorabilia.models.schemas import Base


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory bound to the given engine."""
    return async_sessionmaker(
        autocommit=False,
        class_=AsyncSession,
        autoflush=True,
        bind=engine,
        expire_on_commit=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create the record table if not exists"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
