"""Автоматическое продвижение заказа по времени, прошедшему с создания.

Одна оценка проходит по таблице переходов шаг за шагом, пока очередной шаг
не перестанет быть просроченным. Повторная оценка в тот же момент ничего не меняет.
"""
from datetime import datetime, timedelta
from typing import Optional
from pydantic import BaseModel, model_validator

from marketplace_orders.domain.models import Order, OrderStatus
from marketplace_orders.domain.state_machine import ensure_transition, next_forward_status


class EscalationPolicy(BaseModel):
    to_processing: timedelta = timedelta(hours=2)
    to_shipped: timedelta = timedelta(hours=12)
    to_delivered: timedelta = timedelta(hours=48)

    @model_validator(mode="after")
    def _thresholds_increase(self):
        if not (self.to_processing < self.to_shipped < self.to_delivered):
            raise ValueError("Пороги эскалации должны строго возрастать")
        return self

    def threshold_for(self, status: OrderStatus) -> Optional[timedelta]:
        return {
            OrderStatus.PENDING: self.to_processing,
            OrderStatus.PROCESSING: self.to_shipped,
            OrderStatus.SHIPPED: self.to_delivered,
        }.get(status)


def due_step(order: Order, now: datetime, policy: EscalationPolicy) -> Optional[OrderStatus]:
    if order.status.is_terminal:
        return None
    threshold = policy.threshold_for(order.status)
    if threshold is None or now - order.created_at < threshold:
        return None
    return next_forward_status(order.status)


def escalate(order: Order, now: datetime, policy: EscalationPolicy) -> bool:
    """Продвигает заказ и позиции, стоявшие в статусе агрегата. Возвращает True, если что-то изменилось."""
    changed = False
    target = due_step(order, now, policy)
    while target is not None:
        previous = order.status
        ensure_transition(previous, target)
        for item in order.items:
            if item.status == previous:
                item.status = target
        order.status = target
        changed = True
        target = due_step(order, now, policy)

    if changed:
        if order.status == OrderStatus.DELIVERED and order.delivered_at is None:
            order.delivered_at = now
        order.updated_at = now
    return changed
