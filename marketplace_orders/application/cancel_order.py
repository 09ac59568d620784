import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from marketplace_orders.domain.models import Actor, ActorRole, Order, OrderStatus
from marketplace_orders.domain.exceptions import (
    OrderNotFoundError, InvalidStatusTransitionError, UnauthorizedActionError
)
from marketplace_orders.domain.state_machine import transition_items
from marketplace_orders.application.item_scope import resolve_item_scope
from marketplace_orders.application.outbox_events import ORDER_ITEMS_CANCELLED, order_event_data

logger = logging.getLogger(__name__)


class CancelOrderUseCase:
    def __init__(self, unit_of_work, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self._uow = unit_of_work
        self._clock = clock

    async def __call__(self, order_id: str, actor: Actor, item_ids: Optional[Sequence[str]] = None) -> Order:
        logger.info(f"Отмена заказа {order_id} пользователем {actor.id} ({actor.role.value})")

        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id, for_update=True)
            if not order:
                raise OrderNotFoundError(f"Заказ {order_id} не найден")

            if order.status.is_terminal:
                raise InvalidStatusTransitionError(order.status, OrderStatus.CANCELLED)

            # Покупатель может только прервать неоплаченный заказ
            if actor.role == ActorRole.BUYER:
                if order.stock_committed() or order.status != OrderStatus.PENDING:
                    raise UnauthorizedActionError("Покупатель может отменить только неоплаченный заказ")
                if item_ids is not None:
                    raise UnauthorizedActionError("Покупатель может отменить только заказ целиком")

            targets = [
                item for item in resolve_item_scope(order, actor, item_ids)
                if item.status != OrderStatus.CANCELLED
            ]
            if not targets:
                logger.info(f"В заказе {order_id} нет позиций для отмены")
                return order

            # Склад возвращается только если он был списан при оплате
            restore_stock = order.stock_committed()
            transition_items(order, targets, OrderStatus.CANCELLED, self._clock())

            restored = Counter()
            if restore_stock:
                for item in targets:
                    restored[item.product_id] += item.quantity
                for product_id in sorted(restored):
                    await uow.stock.increment(product_id, restored[product_id])

            await uow.orders.save(order)
            await uow.outbox.create(
                event_type=ORDER_ITEMS_CANCELLED,
                event_data=order_event_data(
                    order,
                    cancelled_item_ids=[item.id for item in targets],
                    stock_restored=dict(restored),
                    cancelled_by=actor.id
                ),
                order_id=order.id
            )
            await uow.commit()

        logger.info(
            f"Заказ {order_id}: отменено позиций {len(targets)}, "
            f"склад восстановлен: {dict(restored) or 'нет'}, статус {order.status.value}"
        )
        return order
