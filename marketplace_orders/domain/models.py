from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Optional
from pydantic import BaseModel, ConfigDict, Field


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class ActorRole(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"


class Actor(BaseModel):
    """Вызывающий пользователь (определяется внешним identity-сервисом)"""
    id: str
    role: ActorRole


class ShippingAddress(BaseModel):
    """Value Object — снимок адреса доставки на момент заказа"""
    model_config = ConfigDict(frozen=True)

    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("street", "city", "state", "zip_code", "country", "phone_number")

    street: str
    city: str
    state: str
    zip_code: str
    country: str
    phone_number: str
    label: str = "Default"


class OrderItem(BaseModel):
    id: str
    product_id: str
    seller_id: str
    quantity: int = Field(ge=1)
    unit_price: Decimal
    status: OrderStatus = OrderStatus.PENDING
    sales_credited: bool = False

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class Order(BaseModel):
    """Domain Entity — заказ (агрегат, может включать товары нескольких продавцов)"""
    id: str
    user_id: str
    items: list[OrderItem]
    shipping_address: ShippingAddress
    subtotal: Decimal
    shipping_cost: Decimal
    tax_amount: Decimal
    discount: Decimal
    total_amount: Decimal
    currency: str
    payment_intent_id: str
    payment_confirmation_id: str | None = None
    status: OrderStatus = OrderStatus.PENDING
    idempotency_key: str | None = None
    version: int = 1
    created_at: datetime
    updated_at: datetime
    paid_at: datetime | None = None
    delivered_at: datetime | None = None
    estimated_delivery_date: datetime

    def can_be_paid(self) -> bool:
        """Бизнес-правило: оплатить можно только pending заказ"""
        return self.status == OrderStatus.PENDING

    def stock_committed(self) -> bool:
        """Склад списывается только при подтверждении оплаты"""
        return self.paid_at is not None

    def items_of(self, seller_id: str) -> list[OrderItem]:
        return [item for item in self.items if item.seller_id == seller_id]

    def has_seller(self, seller_id: str) -> bool:
        return any(item.seller_id == seller_id for item in self.items)

    def get_item(self, item_id: str) -> Optional[OrderItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def is_visible_to(self, actor: Actor) -> bool:
        if actor.role == ActorRole.ADMIN:
            return True
        return actor.id == self.user_id or self.has_seller(actor.id)


class Product(BaseModel):
    """Value Object — товар из каталога"""
    id: str
    name: str = ""
    price: Decimal
    seller_id: str


class PaymentIntent(BaseModel):
    """Платёжное намерение на стороне шлюза"""
    id: str
    amount: int
    currency: str
