import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from marketplace_orders.domain.models import Actor, ActorRole, Order, OrderStatus
from marketplace_orders.domain.exceptions import (
    OrderNotFoundError, InvalidStatusTransitionError, UnauthorizedActionError
)
from marketplace_orders.domain.state_machine import transition_items, transition_order
from marketplace_orders.application.cancel_order import CancelOrderUseCase
from marketplace_orders.application.item_scope import resolve_item_scope
from marketplace_orders.application.outbox_events import ORDER_STATUS_CHANGED, order_event_data
from marketplace_orders.application.seller_credit import save_and_credit_sellers

logger = logging.getLogger(__name__)


class TransitionStatusUseCase:
    def __init__(
        self,
        unit_of_work,
        cancel_order: CancelOrderUseCase,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)
    ):
        self._uow = unit_of_work
        self._cancel_order = cancel_order
        self._clock = clock

    async def __call__(
        self,
        order_id: str,
        actor: Actor,
        new_status: OrderStatus,
        item_ids: Optional[Sequence[str]] = None
    ) -> Order:
        logger.info(f"Смена статуса заказа {order_id} на {new_status.value} пользователем {actor.id} ({actor.role.value})")

        # Отмена всегда идёт через компенсацию склада
        if new_status == OrderStatus.CANCELLED:
            return await self._cancel_order(order_id, actor, item_ids)

        if actor.role == ActorRole.BUYER:
            raise UnauthorizedActionError("Покупатель не может менять статус выполнения заказа")

        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id, for_update=True)
            if not order:
                raise OrderNotFoundError(f"Заказ {order_id} не найден")

            # До оплаты склад не списан: продвинуть заказ может только callback оплаты
            if not order.stock_committed():
                raise InvalidStatusTransitionError(order.status, new_status)

            previous_status = order.status
            now = self._clock()
            if actor.role == ActorRole.ADMIN and item_ids is None:
                transition_order(order, new_status, now)
            else:
                targets = resolve_item_scope(order, actor, item_ids)
                if item_ids is None:
                    targets = [item for item in targets if item.status != OrderStatus.CANCELLED]
                if not targets:
                    raise InvalidStatusTransitionError(order.status, new_status)
                transition_items(order, targets, new_status, now)

            await save_and_credit_sellers(uow, order)
            await uow.outbox.create(
                event_type=ORDER_STATUS_CHANGED,
                event_data=order_event_data(order, previous_status=previous_status.value, changed_by=actor.id),
                order_id=order.id
            )
            await uow.commit()

        logger.info(f"Заказ {order_id}: статус агрегата {previous_status.value} -> {order.status.value}")
        return order
