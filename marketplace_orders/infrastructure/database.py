from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from marketplace_orders.config import settings
from marketplace_orders.infrastructure.db_schema import metadata

engine = create_async_engine(settings.DATABASE_URL, pool_pre_ping=True)
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(bind: AsyncEngine = engine) -> None:
    async with bind.begin() as conn:
        await conn.run_sync(metadata.create_all)
