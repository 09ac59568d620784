from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketplace_orders.infrastructure.repositories import (
    SQLAlchemyOrderRepository,
    SQLAlchemyStockLedger,
    SQLAlchemySellerStatsSink,
    SQLAlchemyOutboxRepository
)


class UnitOfWork:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def __call__(self):
        async with self._session_factory() as session:
            try:
                uow_impl = _UnitOfWorkImpl(session)
                yield uow_impl
                # Без явного commit всё откатывается
                await session.rollback()
            except Exception:
                await session.rollback()
                raise


class _UnitOfWorkImpl:
    def __init__(self, session: AsyncSession):
        self._session = session
        self.orders = SQLAlchemyOrderRepository(session)
        self.stock = SQLAlchemyStockLedger(session)
        self.seller_stats = SQLAlchemySellerStatsSink(session)
        self.outbox = SQLAlchemyOutboxRepository(session)

    async def commit(self):
        await self._session.commit()

    async def rollback(self):
        await self._session.rollback()
