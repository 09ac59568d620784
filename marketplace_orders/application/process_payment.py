import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Callable
from pydantic import BaseModel

from marketplace_orders.domain.models import Order, OrderStatus
from marketplace_orders.domain.exceptions import (
    OrderNotFoundError, SignatureMismatchError, InvalidStatusTransitionError
)
from marketplace_orders.domain.signature import PaymentSignatureVerifier
from marketplace_orders.domain.state_machine import start_processing
from marketplace_orders.application.outbox_events import ORDER_PAID, order_event_data

logger = logging.getLogger(__name__)


class PaymentConfirmationDTO(BaseModel):
    intent_id: str
    confirmation_id: str
    signature: str


class ProcessPaymentCallbackUseCase:
    def __init__(
        self,
        unit_of_work,
        verifier: PaymentSignatureVerifier,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)
    ):
        self._uow = unit_of_work
        self._verifier = verifier
        self._clock = clock

    async def __call__(self, dto: PaymentConfirmationDTO) -> Order:
        logger.info(f"Обработка подтверждения оплаты: intent {dto.intent_id}, payment {dto.confirmation_id}")

        async with self._uow() as uow:
            order = await uow.orders.get_by_payment_intent(dto.intent_id, for_update=True)
            if not order:
                raise OrderNotFoundError(f"Заказ для платежа {dto.intent_id} не найден")

            # Подпись проверяется до любых изменений
            if not self._verifier.verify(dto.intent_id, dto.confirmation_id, dto.signature):
                logger.warning(
                    f"Неверная подпись платежа для заказа {order.id} "
                    f"(intent {dto.intent_id}, payment {dto.confirmation_id}), возможная подделка"
                )
                raise SignatureMismatchError("Неверная подпись платежа")

            if order.status == OrderStatus.CANCELLED:
                raise InvalidStatusTransitionError(order.status, OrderStatus.PROCESSING)

            # Идемпотентность: повторный callback не списывает склад второй раз
            if not order.can_be_paid():
                if order.stock_committed():
                    logger.info(f"Заказ {order.id} уже оплачен (status: {order.status.value})")
                else:
                    # Заказ продвинут автоэскалацией без оплаты, платёж требует ручной сверки
                    logger.warning(
                        f"Подтверждение оплаты {dto.confirmation_id} для заказа {order.id} не применено: "
                        f"заказ уже в статусе {order.status.value} без оплаты (intent {dto.intent_id})"
                    )
                return order

            now = self._clock()
            start_processing(order, now)
            order.paid_at = now
            order.payment_confirmation_id = dto.confirmation_id

            required = Counter()
            for item in order.items:
                if item.status != OrderStatus.CANCELLED:
                    required[item.product_id] += item.quantity
            # Фиксированный порядок списания, чтобы параллельные оплаты не блокировали друг друга
            for product_id in sorted(required):
                await uow.stock.decrement(product_id, required[product_id])

            await uow.orders.save(order)
            await uow.outbox.create(
                event_type=ORDER_PAID,
                event_data=order_event_data(order, payment_id=dto.confirmation_id),
                order_id=order.id
            )
            await uow.commit()

        logger.info(f"Заказ {order.id} оплачен, статус processing")
        return order
