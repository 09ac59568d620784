"""Общие фикстуры: SQLite через aiosqlite, фейковые внешние сервисы и замороженные часы."""
import hashlib
import hmac
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from marketplace_orders.application.cancel_order import CancelOrderUseCase
from marketplace_orders.application.create_order import (
    CreateOrderDTO, CreateOrderUseCase, OrderLineDTO, ShippingAddressDTO
)
from marketplace_orders.application.escalate_orders import OrderEscalator
from marketplace_orders.application.get_order import GetOrderUseCase
from marketplace_orders.application.interfaces import (
    CatalogService, EventPublisher, NotificationsService, PaymentGateway
)
from marketplace_orders.application.process_payment import PaymentConfirmationDTO, ProcessPaymentCallbackUseCase
from marketplace_orders.application.transition_status import TransitionStatusUseCase
from marketplace_orders.domain.escalation import EscalationPolicy
from marketplace_orders.domain.models import (
    Order, OrderItem, OrderStatus, Product, ShippingAddress
)
from marketplace_orders.domain.pricing import PricingPolicy
from marketplace_orders.domain.signature import PaymentSignatureVerifier
from marketplace_orders.infrastructure.db_schema import metadata, seller_stats_tbl, stock_levels_tbl
from marketplace_orders.infrastructure.unit_of_work import UnitOfWork

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
PAYMENT_SECRET = "test-payment-secret"

ADDRESS = {
    "street": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "zip_code": "560001",
    "country": "India",
    "phone_number": "+91 98450 00000",
}


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeCatalog(CatalogService):
    def __init__(self):
        self.products: dict[str, Product] = {}

    def add(self, product_id: str, price: str, seller_id: str) -> None:
        self.products[product_id] = Product(id=product_id, name=product_id, price=Decimal(price), seller_id=seller_id)

    async def get_product(self, product_id: str):
        return self.products.get(product_id)


class FakePaymentGateway(PaymentGateway):
    def __init__(self):
        self.calls: list[dict] = []
        self.error: Exception | None = None

    async def create_intent(self, amount: int, currency: str, reference: str) -> str:
        self.calls.append({"amount": amount, "currency": currency, "reference": reference})
        if self.error:
            raise self.error
        return f"intent_{uuid.uuid4().hex[:12]}"


class FakePublisher(EventPublisher):
    def __init__(self):
        self.should_succeed = True
        self.published: list[dict] = []

    async def publish(self, event_type: str, event_data: dict, key: str) -> bool:
        if not self.should_succeed:
            return False
        self.published.append({"event_type": event_type, "event_data": event_data, "key": key})
        return True


class FakeNotifications(NotificationsService):
    def __init__(self):
        self.sent: list[dict] = []

    async def send(self, message: str, reference_id: str, idempotency_key: str, user_id: str) -> bool:
        self.sent.append({"message": message, "reference_id": reference_id, "user_id": user_id})
        return True


def sign(intent_id: str, confirmation_id: str, secret: str = PAYMENT_SECRET) -> str:
    return hmac.new(secret.encode(), f"{intent_id}|{confirmation_id}".encode(), hashlib.sha256).hexdigest()


@pytest.fixture
def signer():
    return sign


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def uow(engine):
    return UnitOfWork(async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def catalog():
    catalog = FakeCatalog()
    catalog.add("product-a", "100", "seller-x")
    catalog.add("product-b", "250", "seller-y")
    catalog.add("product-c", "3000", "seller-x")
    return catalog


@pytest.fixture
def gateway():
    return FakePaymentGateway()


@pytest.fixture
def seed_stock(engine):
    """Выставляет остатки напрямую в таблице склада"""
    async def _seed(levels: dict[str, int]):
        async with engine.begin() as conn:
            for product_id, quantity in levels.items():
                await conn.execute(delete(stock_levels_tbl).where(stock_levels_tbl.c.product_id == product_id))
                await conn.execute(insert(stock_levels_tbl).values(product_id=product_id, available=quantity))
    return _seed


@pytest.fixture
def stock_level(uow):
    async def _level(product_id: str):
        async with uow() as tx:
            return await tx.stock.get_available(product_id)
    return _level


@pytest.fixture
def load_order(uow):
    async def _load(order_id: str) -> Order:
        async with uow() as tx:
            return await tx.orders.get_by_id(order_id)
    return _load


@pytest.fixture
def seller_stats(engine):
    async def _stats(seller_id: str):
        async with engine.connect() as conn:
            result = await conn.execute(select(seller_stats_tbl).where(seller_stats_tbl.c.seller_id == seller_id))
            row = result.fetchone()
        if not row:
            return None
        return {"units_sold": row.units_sold, "revenue": Decimal(row.revenue)}
    return _stats


@pytest.fixture
def create_order(uow, catalog, gateway, clock):
    return CreateOrderUseCase(uow, catalog, gateway, PricingPolicy(), "INR", timedelta(days=7), clock=clock)


@pytest.fixture
def process_payment(uow, clock):
    return ProcessPaymentCallbackUseCase(uow, PaymentSignatureVerifier(PAYMENT_SECRET), clock=clock)


@pytest.fixture
def cancel_order(uow, clock):
    return CancelOrderUseCase(uow, clock=clock)


@pytest.fixture
def transition_status(uow, cancel_order, clock):
    return TransitionStatusUseCase(uow, cancel_order, clock=clock)


@pytest.fixture
def escalator(clock):
    return OrderEscalator(EscalationPolicy(), clock=clock)


@pytest.fixture
def get_order(uow, escalator):
    return GetOrderUseCase(uow, escalator)


@pytest.fixture
def place_order(create_order):
    async def _place(*lines, user_id: str = "buyer-1", **kwargs) -> Order:
        dto = CreateOrderDTO(
            user_id=user_id,
            items=[OrderLineDTO(product_id=product_id, quantity=quantity) for product_id, quantity in lines],
            shipping_address=ShippingAddressDTO(**ADDRESS),
            **kwargs
        )
        created = await create_order(dto)
        return created.order
    return _place


@pytest.fixture
def pay_order(process_payment):
    async def _pay(order: Order, confirmation_id: str = "pay_001") -> Order:
        return await process_payment(PaymentConfirmationDTO(
            intent_id=order.payment_intent_id,
            confirmation_id=confirmation_id,
            signature=sign(order.payment_intent_id, confirmation_id)
        ))
    return _pay


@pytest.fixture
def order_factory():
    """Заказ в памяти для доменных тестов, без БД"""
    def _make(*item_statuses: OrderStatus, status: OrderStatus | None = None, created_at: datetime = NOW) -> Order:
        statuses = item_statuses or (OrderStatus.PENDING,)
        sellers = ["seller-x", "seller-y"]
        items = [
            OrderItem(
                id=f"item-{index}",
                product_id=f"product-{index}",
                seller_id=sellers[index % 2],
                quantity=2,
                unit_price=Decimal("100"),
                status=item_status
            )
            for index, item_status in enumerate(statuses)
        ]
        return Order(
            id="order-1",
            user_id="buyer-1",
            items=items,
            shipping_address=ShippingAddress(**ADDRESS),
            subtotal=Decimal("200") * len(items),
            shipping_cost=Decimal("99"),
            tax_amount=Decimal("36") * len(items),
            discount=Decimal("0"),
            total_amount=Decimal("200") * len(items) + Decimal("99") + Decimal("36") * len(items),
            currency="INR",
            payment_intent_id="intent_1",
            status=status or statuses[0],
            created_at=created_at,
            updated_at=created_at,
            estimated_delivery_date=created_at + timedelta(days=7)
        )
    return _make
