from pydantic import BaseModel
from datetime import datetime
from decimal import Decimal
from typing import Optional

from marketplace_orders.domain.models import Order, OrderStatus, ShippingAddress
from marketplace_orders.application.create_order import OrderLineDTO, ShippingAddressDTO


class CreateOrderRequest(BaseModel):
    items: list[OrderLineDTO]
    shipping_address: Optional[ShippingAddressDTO] = None
    idempotency_key: Optional[str] = None


class OrderItemResponse(BaseModel):
    id: str
    product_id: str
    seller_id: str
    quantity: int
    unit_price: Decimal
    status: OrderStatus


class OrderResponse(BaseModel):
    id: str
    user_id: str
    status: OrderStatus
    items: list[OrderItemResponse]
    shipping_address: ShippingAddress
    subtotal: Decimal
    shipping_cost: Decimal
    tax_amount: Decimal
    discount: Decimal
    total_amount: Decimal
    currency: str
    payment_intent_id: str
    payment_confirmation_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    paid_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    estimated_delivery_date: datetime

    @classmethod
    def from_domain(cls, order: Order):
        return cls(
            id=order.id,
            user_id=order.user_id,
            status=order.status,
            items=[
                OrderItemResponse(
                    id=item.id,
                    product_id=item.product_id,
                    seller_id=item.seller_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    status=item.status
                )
                for item in order.items
            ],
            shipping_address=order.shipping_address,
            subtotal=order.subtotal,
            shipping_cost=order.shipping_cost,
            tax_amount=order.tax_amount,
            discount=order.discount,
            total_amount=order.total_amount,
            currency=order.currency,
            payment_intent_id=order.payment_intent_id,
            payment_confirmation_id=order.payment_confirmation_id,
            created_at=order.created_at,
            updated_at=order.updated_at,
            paid_at=order.paid_at,
            delivered_at=order.delivered_at,
            estimated_delivery_date=order.estimated_delivery_date
        )


class PaymentIntentResponse(BaseModel):
    id: str
    amount: int
    currency: str


class CreateOrderResponse(BaseModel):
    order: OrderResponse
    payment_intent: PaymentIntentResponse


class PaymentCallbackRequest(BaseModel):
    intent_id: str
    confirmation_id: str
    signature: str


class StatusUpdateRequest(BaseModel):
    status: OrderStatus
    item_ids: Optional[list[str]] = None


class CancelOrderRequest(BaseModel):
    item_ids: Optional[list[str]] = None


class ErrorResponse(BaseModel):
    detail: str
