import asyncio
import logging

from marketplace_orders.infrastructure.database import AsyncSessionLocal
from marketplace_orders.infrastructure.unit_of_work import UnitOfWork
from marketplace_orders.infrastructure.http_clients import HTTPNotificationsClient
from marketplace_orders.infrastructure.kafka_producer import KafkaProducerClient
from marketplace_orders.application.process_outbox import ProcessOutboxEventsUseCase
from marketplace_orders.config import settings

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


async def outbox_worker():
    """Worker для публикации outbox событий"""
    logger.info("Outbox worker запущен")

    kafka_producer = KafkaProducerClient(settings.KAFKA_BOOTSTRAP_SERVERS, settings.KAFKA_ORDER_TOPIC)
    notifications_client = HTTPNotificationsClient(settings.NOTIFICATIONS_BASE_URL, settings.API_TOKEN)
    await kafka_producer.start()

    try:
        while True:
            try:
                use_case = ProcessOutboxEventsUseCase(
                    unit_of_work=UnitOfWork(AsyncSessionLocal),
                    publisher=kafka_producer,
                    notifications_client=notifications_client
                )

                processed = await use_case(limit=5)
                if processed:
                    logger.info(f"Опубликовано {processed} outbox events")

                await asyncio.sleep(settings.OUTBOX_POLL_INTERVAL)

            except Exception as e:
                logger.error(f"Ошибка в outbox worker: {e}", exc_info=True)
                await asyncio.sleep(10)
    finally:
        await kafka_producer.stop()


async def main():
    await outbox_worker()


if __name__ == "__main__":
    asyncio.run(main())
