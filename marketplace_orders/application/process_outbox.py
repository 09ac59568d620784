import logging
import json

from marketplace_orders.application.interfaces import EventPublisher, NotificationsService
from marketplace_orders.application.outbox_events import NOTIFICATION_MESSAGES

logger = logging.getLogger(__name__)


class ProcessOutboxEventsUseCase:
    def __init__(self, unit_of_work, publisher: EventPublisher, notifications_client: NotificationsService):
        self._uow = unit_of_work
        self._publisher = publisher
        self._notifications = notifications_client

    async def __call__(self, limit: int = 5) -> int:
        """Обрабатывает pending события из outbox. Возвращает количество опубликованных."""
        published = 0

        async with self._uow() as uow:
            pending = await uow.outbox.get_pending(limit=limit)

            for event in pending:
                event_data = event["event_data"]
                if isinstance(event_data, str):
                    event_data = json.loads(event_data)

                success = await self._publisher.publish(
                    event_type=event["event_type"],
                    event_data=event_data,
                    key=event["order_id"]
                )
                if not success:
                    logger.info(f"Неуспешная отправка в Кафка {event['id']}, повтор в следующем цикле")
                    continue

                message = NOTIFICATION_MESSAGES.get(event["event_type"])
                if message:
                    notified = await self._notifications.send(
                        message=message.format(status=event_data.get("status", "")),
                        reference_id=event["order_id"],
                        idempotency_key=f"notification_{event['id']}",
                        user_id=event_data.get("user_id", "")
                    )
                    if not notified:
                        logger.info(f"Не отправлено уведомление для {event['id']}, повтор в следующем цикле")
                        continue

                await uow.outbox.mark_as_published(event["id"])
                published += 1
                logger.info(f"Опубликовано {event['event_type']} event {event['id']}")

            await uow.commit()

        return published
