"""Таблица переходов статусов заказа и позиций.

Одна и та же таблица применяется к агрегату и к каждой позиции отдельно.
Все проверки выполняются до первого изменения, поэтому отклонённый переход
не оставляет побочных эффектов.
"""
from datetime import datetime
from typing import Iterable, Optional

from marketplace_orders.domain.models import Order, OrderItem, OrderStatus
from marketplace_orders.domain.exceptions import InvalidStatusTransitionError


ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# Прямой путь выполнения заказа (без отмены)
FORWARD_STEP: dict[OrderStatus, OrderStatus] = {
    OrderStatus.PENDING: OrderStatus.PROCESSING,
    OrderStatus.PROCESSING: OrderStatus.SHIPPED,
    OrderStatus.SHIPPED: OrderStatus.DELIVERED,
}


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return new in ORDER_TRANSITIONS[current]


def ensure_transition(current: OrderStatus, new: OrderStatus) -> None:
    if not can_transition(current, new):
        raise InvalidStatusTransitionError(current, new)


def next_forward_status(current: OrderStatus) -> Optional[OrderStatus]:
    return FORWARD_STEP.get(current)


def reconcile_aggregate_status(order: Order) -> bool:
    """Если все позиции в одном статусе — агрегат принимает его.

    Иначе статус агрегата остаётся последним явно установленным.
    Возвращает True, если статус агрегата изменился.
    """
    statuses = {item.status for item in order.items}
    if len(statuses) != 1:
        return False
    (common,) = statuses
    if common == order.status:
        return False
    order.status = common
    return True


def transition_items(order: Order, items: Iterable[OrderItem], new_status: OrderStatus, now: datetime) -> None:
    """Переводит выбранные позиции в new_status и пересчитывает агрегат."""
    items = list(items)
    for item in items:
        ensure_transition(item.status, new_status)

    for item in items:
        item.status = new_status
    reconcile_aggregate_status(order)
    _stamp_delivery(order, now)
    order.updated_at = now


def transition_order(order: Order, new_status: OrderStatus, now: datetime) -> None:
    """Переводит весь заказ: агрегат и все неотменённые позиции."""
    ensure_transition(order.status, new_status)
    items = [item for item in order.items if item.status != OrderStatus.CANCELLED]
    for item in items:
        ensure_transition(item.status, new_status)

    for item in items:
        item.status = new_status
    order.status = new_status
    _stamp_delivery(order, now)
    order.updated_at = now


def start_processing(order: Order, now: datetime) -> list[OrderItem]:
    """Переход по оплате: агрегат и позиции, ещё стоящие в pending, уходят в processing.

    Отменённые позиции не трогаются. Возвращает переведённые позиции.
    """
    ensure_transition(order.status, OrderStatus.PROCESSING)
    moved = [item for item in order.items if item.status == OrderStatus.PENDING]
    for item in moved:
        item.status = OrderStatus.PROCESSING
    order.status = OrderStatus.PROCESSING
    order.updated_at = now
    return moved


def collect_uncredited_deliveries(order: Order) -> list[OrderItem]:
    """Доставленные позиции, по которым продавцу ещё не начислены продажи.

    Позиции помечаются как начисленные, повторный вызов вернёт пустой список.
    """
    pending_credit = [
        item for item in order.items
        if item.status == OrderStatus.DELIVERED and not item.sales_credited
    ]
    for item in pending_credit:
        item.sales_credited = True
    return pending_credit


def _stamp_delivery(order: Order, now: datetime) -> None:
    if order.status == OrderStatus.DELIVERED and order.delivered_at is None:
        order.delivered_at = now
