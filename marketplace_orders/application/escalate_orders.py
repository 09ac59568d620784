import logging
from datetime import datetime, timezone
from typing import Callable

from marketplace_orders.domain.models import Order
from marketplace_orders.domain.escalation import EscalationPolicy, escalate
from marketplace_orders.domain.exceptions import ConcurrencyConflictError
from marketplace_orders.application.outbox_events import ORDER_STATUS_CHANGED, order_event_data
from marketplace_orders.application.seller_credit import save_and_credit_sellers

logger = logging.getLogger(__name__)


class OrderEscalator:
    """Единая точка автоэскалации: все чтения заказов и фоновый sweep идут через неё"""

    def __init__(self, policy: EscalationPolicy, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self._policy = policy
        self._clock = clock

    async def apply(self, uow, order: Order) -> Order:
        """Продвигает заказ в открытом uow и коммитит изменения.

        Запись идёт через compare-and-swap по version: если заказ уже изменён
        параллельно, эскалация ничего не пишет и возвращает сохранённое состояние.
        """
        previous_status = order.status
        if not escalate(order, self._clock(), self._policy):
            return order

        try:
            await save_and_credit_sellers(uow, order)
        except ConcurrencyConflictError:
            logger.info(f"Заказ {order.id} уже изменён параллельно, эскалация пропущена")
            await uow.rollback()
            return await uow.orders.get_by_id(order.id)

        await uow.outbox.create(
            event_type=ORDER_STATUS_CHANGED,
            event_data=order_event_data(order, previous_status=previous_status.value, reason="escalation"),
            order_id=order.id
        )
        await uow.commit()
        logger.info(f"Заказ {order.id} автоматически переведён {previous_status.value} -> {order.status.value}")
        return order


class EscalateOrdersUseCase:
    def __init__(self, unit_of_work, escalator: OrderEscalator):
        self._uow = unit_of_work
        self._escalator = escalator

    async def __call__(self, limit: int = 100) -> int:
        """Проходит по незавершённым заказам. Возвращает количество продвинутых."""
        promoted = 0
        async with self._uow() as uow:
            orders = await uow.orders.list_non_terminal(limit=limit)
            for order in orders:
                before = order.status
                order = await self._escalator.apply(uow, order)
                if order.status != before:
                    promoted += 1
        return promoted
