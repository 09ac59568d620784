import asyncio
import logging

from marketplace_orders.infrastructure.database import AsyncSessionLocal
from marketplace_orders.infrastructure.unit_of_work import UnitOfWork
from marketplace_orders.application.escalate_orders import EscalateOrdersUseCase, OrderEscalator
from marketplace_orders.config import settings

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


async def escalation_worker():
    """Периодический проход автоэскалации по незавершённым заказам"""
    logger.info("Escalation worker запущен")
    escalator = OrderEscalator(settings.escalation_policy)

    while True:
        try:
            use_case = EscalateOrdersUseCase(UnitOfWork(AsyncSessionLocal), escalator)
            promoted = await use_case(limit=100)
            if promoted:
                logger.info(f"Автоматически продвинуто заказов: {promoted}")

            await asyncio.sleep(settings.ESCALATION_SWEEP_INTERVAL)

        except Exception as e:
            logger.error(f"Ошибка в escalation worker: {e}", exc_info=True)
            await asyncio.sleep(10)


async def main():
    await escalation_worker()


if __name__ == "__main__":
    asyncio.run(main())
