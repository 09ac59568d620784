from decimal import Decimal

from marketplace_orders.domain.models import OrderStatus
from marketplace_orders.domain.seller_view import project_seller_view

from conftest import NOW


def test_seller_view_contains_only_seller_items_with_flat_extras(order_factory):
    order = order_factory(OrderStatus.PROCESSING, OrderStatus.PROCESSING, OrderStatus.PROCESSING)
    order.paid_at = NOW
    order.payment_confirmation_id = "pay_001"
    snapshot = order.model_dump()

    view = project_seller_view(order, "seller-x")

    assert [item.id for item in view.items] == ["item-0", "item-2"]
    assert view.subtotal == Decimal("400")
    assert view.shipping_cost == order.shipping_cost
    assert view.tax_amount == order.tax_amount
    assert view.total_amount == Decimal("400") + order.shipping_cost + order.tax_amount
    assert view.order_number == "intent_1"
    assert view.payment_id == "pay_001"
    assert view.payment_status == "completed"
    assert order.model_dump() == snapshot


def test_seller_view_items_are_copies(order_factory):
    order = order_factory(OrderStatus.PENDING, OrderStatus.PENDING)

    view = project_seller_view(order, "seller-y")
    view.items[0].status = OrderStatus.CANCELLED

    assert order.items[1].status == OrderStatus.PENDING
    assert view.payment_status == "pending"
