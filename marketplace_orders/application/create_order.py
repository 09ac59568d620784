import logging
from collections import Counter
from pydantic import BaseModel
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
import uuid

from marketplace_orders.domain.models import Order, OrderItem, OrderStatus, PaymentIntent, ShippingAddress
from marketplace_orders.domain.exceptions import (
    ItemNotFoundError, InsufficientStockError, OrderValidationError
)
from marketplace_orders.domain.pricing import PricingPolicy, calculate_totals, to_minor_units
from marketplace_orders.application.interfaces import CatalogService, PaymentGateway
from marketplace_orders.application.outbox_events import ORDER_CREATED, order_event_data


logger = logging.getLogger(__name__)


class OrderLineDTO(BaseModel):
    product_id: str
    quantity: int


class ShippingAddressDTO(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    phone_number: Optional[str] = None
    label: Optional[str] = None


class CreateOrderDTO(BaseModel):
    user_id: str
    items: list[OrderLineDTO]
    shipping_address: Optional[ShippingAddressDTO] = None
    idempotency_key: Optional[str] = None


class CreatedOrder(BaseModel):
    order: Order
    payment_intent: PaymentIntent


class CreateOrderUseCase:
    def __init__(
        self,
        unit_of_work,
        catalog_service: CatalogService,
        payment_gateway: PaymentGateway,
        pricing: PricingPolicy,
        currency: str,
        delivery_lead_time: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)
    ):
        self._uow = unit_of_work
        self._catalog = catalog_service
        self._payments = payment_gateway
        self._pricing = pricing
        self._currency = currency
        self._delivery_lead_time = delivery_lead_time
        self._clock = clock

    async def __call__(self, order_data: CreateOrderDTO) -> CreatedOrder:
        logger.info(f"Создание заказа для пользователя {order_data.user_id}, позиций: {len(order_data.items)}")

        # 1. Валидация запроса
        address = self._validate(order_data)

        # 2. Проверка идемпотентности
        if order_data.idempotency_key:
            async with self._uow() as uow:
                existing = await uow.orders.get_by_idempotency_key(order_data.idempotency_key)
                if existing:
                    logger.info(f"Заказ уже существует: {existing.id}")
                    return self._result(existing)

        # 3. Цены из каталога и остатки (без резервирования)
        requested = Counter()
        for line in order_data.items:
            requested[line.product_id] += line.quantity

        products = {}
        async with self._uow() as uow:
            for product_id, quantity in requested.items():
                product = await self._catalog.get_product(product_id)
                if not product:
                    raise ItemNotFoundError(f"Товар {product_id} не найден")
                available = await uow.stock.get_available(product_id) or 0
                if available < quantity:
                    raise InsufficientStockError(product_id, available, quantity)
                products[product_id] = product

        order_id = str(uuid.uuid4())
        items = [
            OrderItem(
                id=str(uuid.uuid4()),
                product_id=line.product_id,
                seller_id=products[line.product_id].seller_id,
                quantity=line.quantity,
                unit_price=products[line.product_id].price,
                status=OrderStatus.PENDING
            )
            for line in order_data.items
        ]

        # 4. Расчет суммы
        totals = calculate_totals(items, self._pricing)

        # 5. Платёжное намерение. При ошибке шлюза ничего не сохраняется
        intent_id = await self._payments.create_intent(
            amount=to_minor_units(totals.total_amount),
            currency=self._currency,
            reference=order_id
        )

        # 6. Создание заказа
        now = self._clock()
        order = Order(
            id=order_id,
            user_id=order_data.user_id,
            items=items,
            shipping_address=address,
            subtotal=totals.subtotal,
            shipping_cost=totals.shipping_cost,
            tax_amount=totals.tax_amount,
            discount=totals.discount,
            total_amount=totals.total_amount,
            currency=self._currency,
            payment_intent_id=intent_id,
            status=OrderStatus.PENDING,
            idempotency_key=order_data.idempotency_key,
            created_at=now,
            updated_at=now,
            estimated_delivery_date=now + self._delivery_lead_time
        )
        async with self._uow() as uow:
            await uow.orders.create(order)
            await uow.outbox.create(
                event_type=ORDER_CREATED,
                event_data=order_event_data(order, total_amount=str(order.total_amount)),
                order_id=order.id
            )
            await uow.commit()
        logger.info(f"Заказ создан: {order.id}, payment intent {intent_id}, сумма {order.total_amount}")

        return self._result(order)

    def _validate(self, order_data: CreateOrderDTO) -> ShippingAddress:
        if not order_data.items:
            raise OrderValidationError("Список товаров пуст")
        for line in order_data.items:
            if line.quantity < 1:
                raise OrderValidationError(f"Некорректное количество для товара {line.product_id}: {line.quantity}")

        raw = order_data.shipping_address
        if raw is None:
            raise OrderValidationError("Требуется полный адрес доставки")
        missing = [
            field for field in ShippingAddress.REQUIRED_FIELDS
            if not (getattr(raw, field) or "").strip()
        ]
        if missing:
            raise OrderValidationError(f"Требуется полный адрес доставки, не заполнены: {', '.join(missing)}")

        values = {field: getattr(raw, field).strip() for field in ShippingAddress.REQUIRED_FIELDS}
        return ShippingAddress(label=raw.label or "Default", **values)

    def _result(self, order: Order) -> CreatedOrder:
        return CreatedOrder(
            order=order,
            payment_intent=PaymentIntent(
                id=order.payment_intent_id,
                amount=to_minor_units(order.total_amount),
                currency=order.currency
            )
        )
