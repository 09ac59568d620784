from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel

from marketplace_orders.domain.models import Order, OrderItem, OrderStatus, ShippingAddress


class SellerOrderSummary(BaseModel):
    """Read Model — заказ глазами одного продавца"""
    order_id: str
    order_number: str
    seller_id: str
    status: OrderStatus
    created_at: datetime
    delivered_at: datetime | None = None
    items: list[OrderItem]
    subtotal: Decimal
    shipping_cost: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    shipping_address: ShippingAddress
    payment_id: str | None = None
    payment_status: str


def project_seller_view(order: Order, seller_id: str) -> SellerOrderSummary:
    # Доставка и налог берутся целиком из заказа, без пропорционального деления
    items = [item.model_copy() for item in order.items_of(seller_id)]
    subtotal = sum((item.line_total for item in items), Decimal("0"))
    return SellerOrderSummary(
        order_id=order.id,
        order_number=order.payment_intent_id,
        seller_id=seller_id,
        status=order.status,
        created_at=order.created_at,
        delivered_at=order.delivered_at,
        items=items,
        subtotal=subtotal,
        shipping_cost=order.shipping_cost,
        tax_amount=order.tax_amount,
        total_amount=subtotal + order.shipping_cost + order.tax_amount,
        shipping_address=order.shipping_address,
        payment_id=order.payment_confirmation_id,
        payment_status="completed" if order.paid_at else "pending",
    )
