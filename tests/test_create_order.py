from datetime import timedelta
from decimal import Decimal

import pytest

from marketplace_orders.application.create_order import CreateOrderDTO, OrderLineDTO, ShippingAddressDTO
from marketplace_orders.domain.exceptions import (
    InsufficientStockError, ItemNotFoundError, OrderValidationError, PaymentGatewayTimeoutError
)
from marketplace_orders.domain.models import OrderStatus

from conftest import ADDRESS, NOW


def _dto(*lines, address=ADDRESS, **kwargs) -> CreateOrderDTO:
    return CreateOrderDTO(
        user_id="buyer-1",
        items=[OrderLineDTO(product_id=product_id, quantity=quantity) for product_id, quantity in lines],
        shipping_address=ShippingAddressDTO(**address) if address is not None else None,
        **kwargs
    )


async def _outbox_events(uow):
    async with uow() as tx:
        return await tx.outbox.get_pending(limit=100)


async def test_creates_pending_order_with_payment_intent(create_order, gateway, seed_stock, stock_level, load_order):
    await seed_stock({"product-a": 10})

    created = await create_order(_dto(("product-a", 2)))
    order = created.order

    assert order.status == OrderStatus.PENDING
    assert [item.status for item in order.items] == [OrderStatus.PENDING]
    assert order.items[0].seller_id == "seller-x"
    assert order.items[0].unit_price == Decimal("100")
    assert order.subtotal == Decimal("200")
    assert order.shipping_cost == Decimal("99")
    assert order.tax_amount == Decimal("36")
    assert order.total_amount == Decimal("335")
    assert order.estimated_delivery_date == NOW + timedelta(days=7)
    assert order.paid_at is None

    assert created.payment_intent.amount == 33500
    assert created.payment_intent.currency == "INR"
    assert created.payment_intent.id == order.payment_intent_id
    assert gateway.calls == [{"amount": 33500, "currency": "INR", "reference": order.id}]

    # Склад не трогается до оплаты
    assert await stock_level("product-a") == 10

    stored = await load_order(order.id)
    assert stored.total_amount == Decimal("335")
    assert stored.shipping_address.city == "Bengaluru"
    assert stored.shipping_address.label == "Default"


async def test_multi_seller_order_keeps_line_sellers(create_order, seed_stock):
    await seed_stock({"product-a": 5, "product-b": 5})

    created = await create_order(_dto(("product-a", 1), ("product-b", 2)))

    assert [item.seller_id for item in created.order.items] == ["seller-x", "seller-y"]
    assert created.order.subtotal == Decimal("600")


async def test_discount_for_large_basket(create_order, seed_stock):
    await seed_stock({"product-c": 5})

    created = await create_order(_dto(("product-c", 2)))

    assert created.order.discount == Decimal("500")
    assert created.order.total_amount == Decimal("6679")


async def test_empty_items_rejected(create_order, gateway):
    with pytest.raises(OrderValidationError):
        await create_order(_dto())
    assert gateway.calls == []


@pytest.mark.parametrize("quantity", [0, -1])
async def test_non_positive_quantity_rejected(create_order, seed_stock, quantity):
    await seed_stock({"product-a": 10})

    with pytest.raises(OrderValidationError):
        await create_order(_dto(("product-a", quantity)))


async def test_missing_address_rejected(create_order, seed_stock):
    await seed_stock({"product-a": 10})

    with pytest.raises(OrderValidationError):
        await create_order(_dto(("product-a", 1), address=None))


async def test_blank_address_field_rejected(create_order, seed_stock):
    await seed_stock({"product-a": 10})

    with pytest.raises(OrderValidationError) as error:
        await create_order(_dto(("product-a", 1), address={**ADDRESS, "zip_code": "  "}))
    assert "zip_code" in str(error.value)


async def test_unknown_product_rejected(create_order, gateway, seed_stock):
    await seed_stock({"product-a": 10})

    with pytest.raises(ItemNotFoundError):
        await create_order(_dto(("product-a", 1), ("product-missing", 1)))
    assert gateway.calls == []


async def test_duplicate_lines_are_summed_for_stock_check(create_order, gateway, seed_stock, uow):
    await seed_stock({"product-a": 3})

    with pytest.raises(InsufficientStockError) as error:
        await create_order(_dto(("product-a", 2), ("product-a", 2)))

    assert error.value.product_id == "product-a"
    assert error.value.available == 3
    assert error.value.required == 4
    assert gateway.calls == []
    assert await _outbox_events(uow) == []


async def test_gateway_timeout_persists_nothing(create_order, gateway, seed_stock, stock_level, uow):
    await seed_stock({"product-a": 10})
    gateway.error = PaymentGatewayTimeoutError("timeout")

    with pytest.raises(PaymentGatewayTimeoutError):
        await create_order(_dto(("product-a", 1)))

    async with uow() as tx:
        assert await tx.orders.list_by_user("buyer-1") == []
    assert await _outbox_events(uow) == []
    assert await stock_level("product-a") == 10


async def test_idempotency_key_returns_existing_order(create_order, gateway, seed_stock, uow):
    await seed_stock({"product-a": 10})

    first = await create_order(_dto(("product-a", 1), idempotency_key="checkout-42"))
    second = await create_order(_dto(("product-a", 1), idempotency_key="checkout-42"))

    assert second.order.id == first.order.id
    assert second.payment_intent == first.payment_intent
    assert len(gateway.calls) == 1
    async with uow() as tx:
        assert len(await tx.orders.list_by_user("buyer-1")) == 1


async def test_created_event_is_written_to_outbox(create_order, seed_stock, uow):
    await seed_stock({"product-a": 10})

    created = await create_order(_dto(("product-a", 2)))

    events = await _outbox_events(uow)
    assert len(events) == 1
    assert events[0]["event_type"] == "order.created"
    assert events[0]["order_id"] == created.order.id
    assert events[0]["event_data"]["status"] == "pending"
    assert events[0]["event_data"]["total_amount"] == "335"
