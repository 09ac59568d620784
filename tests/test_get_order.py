from datetime import timedelta
from decimal import Decimal

import pytest

from marketplace_orders.application.escalate_orders import EscalateOrdersUseCase
from marketplace_orders.application.get_order import (
    GetSellerViewUseCase, ListBuyerOrdersUseCase, ListSellerOrdersUseCase
)
from marketplace_orders.domain.exceptions import OrderNotFoundError, UnauthorizedActionError
from marketplace_orders.domain.models import Actor, ActorRole, OrderStatus

from conftest import NOW

BUYER = Actor(id="buyer-1", role=ActorRole.BUYER)
SELLER_X = Actor(id="seller-x", role=ActorRole.SELLER)
SELLER_Y = Actor(id="seller-y", role=ActorRole.SELLER)
ADMIN = Actor(id="admin-1", role=ActorRole.ADMIN)


async def test_read_promotes_stale_pending_order_without_touching_stock(
    place_order, get_order, clock, seed_stock, stock_level, load_order
):
    await seed_stock({"product-a": 10})
    order = await place_order(("product-a", 2))
    clock.advance(hours=3)

    seen = await get_order(order.id, BUYER)

    assert seen.status == OrderStatus.PROCESSING
    assert [item.status for item in seen.items] == [OrderStatus.PROCESSING]
    assert seen.paid_at is None
    assert await stock_level("product-a") == 10
    stored = await load_order(order.id)
    assert stored.status == OrderStatus.PROCESSING
    assert stored.updated_at == NOW + timedelta(hours=3)


async def test_repeated_reads_do_not_write_again(place_order, get_order, clock, seed_stock, load_order):
    await seed_stock({"product-a": 10})
    order = await place_order(("product-a", 1))
    clock.advance(hours=3)

    first = await get_order(order.id, BUYER)
    second = await get_order(order.id, BUYER)

    assert first.version == second.version == 2
    assert (await load_order(order.id)).version == 2


async def test_young_order_is_returned_as_is(place_order, get_order, clock, seed_stock):
    await seed_stock({"product-a": 10})
    order = await place_order(("product-a", 1))
    clock.advance(hours=1)

    seen = await get_order(order.id, BUYER)

    assert seen.status == OrderStatus.PENDING
    assert seen.version == 1


async def test_old_paid_order_is_delivered_and_credited_once(
    place_order, pay_order, get_order, clock, seed_stock, seller_stats
):
    await seed_stock({"product-a": 10, "product-b": 10})
    order = await pay_order(await place_order(("product-a", 2), ("product-b", 1)))
    clock.advance(hours=49)

    seen = await get_order(order.id, BUYER)
    await get_order(order.id, SELLER_X)
    await get_order(order.id, ADMIN)

    assert seen.status == OrderStatus.DELIVERED
    assert seen.delivered_at == NOW + timedelta(hours=49)
    assert await seller_stats("seller-x") == {"units_sold": 2, "revenue": Decimal("200")}
    assert await seller_stats("seller-y") == {"units_sold": 1, "revenue": Decimal("250")}


async def test_stale_snapshot_escalation_is_a_no_op(
    place_order, cancel_order, escalator, clock, seed_stock, uow, load_order
):
    await seed_stock({"product-a": 10, "product-b": 10})
    order = await place_order(("product-a", 1), ("product-b", 1))
    async with uow() as tx:
        stale = await tx.orders.get_by_id(order.id)

    await cancel_order(order.id, SELLER_Y)
    clock.advance(hours=3)

    async with uow() as tx:
        result = await escalator.apply(tx, stale)

    assert result.version == 2
    assert result.status == OrderStatus.PENDING
    assert [item.status for item in result.items] == [OrderStatus.PENDING, OrderStatus.CANCELLED]
    assert (await load_order(order.id)).model_dump() == result.model_dump()


async def test_viewer_must_be_related_to_order(place_order, get_order, seed_stock):
    await seed_stock({"product-a": 10})
    order = await place_order(("product-a", 1))

    with pytest.raises(UnauthorizedActionError):
        await get_order(order.id, Actor(id="buyer-2", role=ActorRole.BUYER))
    with pytest.raises(UnauthorizedActionError):
        await get_order(order.id, SELLER_Y)

    assert (await get_order(order.id, SELLER_X)).id == order.id
    assert (await get_order(order.id, ADMIN)).id == order.id


async def test_unknown_order_is_not_found(get_order):
    with pytest.raises(OrderNotFoundError):
        await get_order("order-missing", ADMIN)


async def test_buyer_list_is_escalated(place_order, uow, escalator, clock, seed_stock):
    await seed_stock({"product-a": 10})
    await place_order(("product-a", 1))
    await place_order(("product-a", 1))
    await place_order(("product-a", 1), user_id="buyer-2")
    clock.advance(hours=13)

    orders = await ListBuyerOrdersUseCase(uow, escalator)(BUYER)

    assert len(orders) == 2
    assert {order.user_id for order in orders} == {"buyer-1"}
    assert {order.status for order in orders} == {OrderStatus.SHIPPED}


async def test_seller_list_shows_only_seller_items(place_order, uow, escalator, seed_stock):
    await seed_stock({"product-a": 10, "product-b": 10})
    mixed = await place_order(("product-a", 1), ("product-b", 2))
    await place_order(("product-a", 1))

    summaries = await ListSellerOrdersUseCase(uow, escalator)(SELLER_Y)

    assert [summary.order_id for summary in summaries] == [mixed.id]
    assert [item.product_id for item in summaries[0].items] == ["product-b"]
    assert summaries[0].subtotal == Decimal("500")
    assert summaries[0].payment_status == "pending"


async def test_seller_list_requires_seller_role(uow, escalator):
    with pytest.raises(UnauthorizedActionError):
        await ListSellerOrdersUseCase(uow, escalator)(BUYER)


async def test_seller_view_rejects_unrelated_seller(place_order, uow, escalator, seed_stock):
    await seed_stock({"product-a": 10})
    order = await place_order(("product-a", 1))
    use_case = GetSellerViewUseCase(uow, escalator)

    view = await use_case(order.id, "seller-x")
    assert view.order_number == order.payment_intent_id

    with pytest.raises(UnauthorizedActionError):
        await use_case(order.id, "seller-y")


async def test_background_sweep_promotes_each_order_once(place_order, uow, escalator, clock, seed_stock, load_order):
    await seed_stock({"product-a": 10})
    first = await place_order(("product-a", 1))
    second = await place_order(("product-a", 1), user_id="buyer-2")
    clock.advance(hours=3)
    sweep = EscalateOrdersUseCase(uow, escalator)

    assert await sweep() == 2
    assert await sweep() == 0
    assert (await load_order(first.id)).status == OrderStatus.PROCESSING
    assert (await load_order(second.id)).status == OrderStatus.PROCESSING
