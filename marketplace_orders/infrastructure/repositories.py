import uuid
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List
from sqlalchemy import select, insert, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace_orders.domain.models import Order, OrderItem, OrderStatus, ShippingAddress
from marketplace_orders.domain.exceptions import ConcurrencyConflictError, InsufficientStockError
from marketplace_orders.infrastructure.db_schema import (
    orders_tbl, order_items_tbl, stock_levels_tbl, seller_stats_tbl, outbox_events_tbl
)
from marketplace_orders.application.interfaces import (
    OrderRepository, StockLedger, SellerStatsSink, OutboxRepository
)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite возвращает naive datetime даже для DateTime(timezone=True)
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SQLAlchemyOrderRepository(OrderRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, order_id: str, for_update: bool = False) -> Optional[Order]:
        return await self._fetch_one(orders_tbl.c.id == order_id, for_update)

    async def get_by_payment_intent(self, intent_id: str, for_update: bool = False) -> Optional[Order]:
        return await self._fetch_one(orders_tbl.c.payment_intent_id == intent_id, for_update)

    async def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        return await self._fetch_one(orders_tbl.c.idempotency_key == key)

    async def list_by_user(self, user_id: str) -> List[Order]:
        return await self._fetch_many(
            select(orders_tbl)
            .where(orders_tbl.c.user_id == user_id)
            .order_by(orders_tbl.c.created_at.desc())
        )

    async def list_by_seller(self, seller_id: str) -> List[Order]:
        seller_orders = select(order_items_tbl.c.order_id).where(order_items_tbl.c.seller_id == seller_id)
        return await self._fetch_many(
            select(orders_tbl)
            .where(orders_tbl.c.id.in_(seller_orders))
            .order_by(orders_tbl.c.created_at.desc())
        )

    async def list_non_terminal(self, limit: int = 100) -> List[Order]:
        return await self._fetch_many(
            select(orders_tbl)
            .where(orders_tbl.c.status.not_in([OrderStatus.DELIVERED, OrderStatus.CANCELLED]))
            .order_by(orders_tbl.c.created_at.asc())
            .limit(limit)
        )

    async def create(self, order: Order) -> None:
        stmt = insert(orders_tbl).values(
            id=order.id,
            user_id=order.user_id,
            status=order.status,
            shipping_address=order.shipping_address.model_dump(),
            subtotal=order.subtotal,
            shipping_cost=order.shipping_cost,
            tax_amount=order.tax_amount,
            discount=order.discount,
            total_amount=order.total_amount,
            currency=order.currency,
            payment_intent_id=order.payment_intent_id,
            payment_confirmation_id=order.payment_confirmation_id,
            idempotency_key=order.idempotency_key,
            version=order.version,
            created_at=order.created_at,
            updated_at=order.updated_at,
            paid_at=order.paid_at,
            delivered_at=order.delivered_at,
            estimated_delivery_date=order.estimated_delivery_date
        )
        await self._session.execute(stmt)
        await self._session.execute(
            insert(order_items_tbl),
            [
                {
                    "id": item.id,
                    "order_id": order.id,
                    "position": position,
                    "product_id": item.product_id,
                    "seller_id": item.seller_id,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price,
                    "status": item.status,
                    "sales_credited": item.sales_credited
                }
                for position, item in enumerate(order.items)
            ]
        )

    async def save(self, order: Order) -> None:
        stmt = (
            update(orders_tbl)
            .where(orders_tbl.c.id == order.id, orders_tbl.c.version == order.version)
            .values(
                status=order.status,
                payment_confirmation_id=order.payment_confirmation_id,
                paid_at=order.paid_at,
                delivered_at=order.delivered_at,
                updated_at=order.updated_at,
                version=order.version + 1
            )
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            raise ConcurrencyConflictError(f"Заказ {order.id} был изменён параллельно, повторите запрос")

        for item in order.items:
            await self._session.execute(
                update(order_items_tbl)
                .where(order_items_tbl.c.id == item.id)
                .values(status=item.status, sales_credited=item.sales_credited)
            )
        order.version += 1

    async def _fetch_one(self, condition, for_update: bool = False) -> Optional[Order]:
        stmt = select(orders_tbl).where(condition)
        if for_update:
            stmt = stmt.with_for_update()
        orders = await self._fetch_many(stmt)
        return orders[0] if orders else None

    async def _fetch_many(self, stmt) -> List[Order]:
        result = await self._session.execute(stmt)
        rows = result.fetchall()
        if not rows:
            return []

        items_result = await self._session.execute(
            select(order_items_tbl)
            .where(order_items_tbl.c.order_id.in_([row.id for row in rows]))
            .order_by(order_items_tbl.c.order_id, order_items_tbl.c.position)
        )
        items_by_order = defaultdict(list)
        for item_row in items_result.fetchall():
            items_by_order[item_row.order_id].append(self._item_to_domain(item_row))

        return [self._to_domain(row, items_by_order[row.id]) for row in rows]

    def _item_to_domain(self, row) -> OrderItem:
        return OrderItem(
            id=row.id,
            product_id=row.product_id,
            seller_id=row.seller_id,
            quantity=row.quantity,
            unit_price=Decimal(row.unit_price),
            status=OrderStatus(row.status),
            sales_credited=row.sales_credited
        )

    def _to_domain(self, row, items: List[OrderItem]) -> Order:
        """Трансформация DB → Domain"""
        return Order(
            id=row.id,
            user_id=row.user_id,
            items=items,
            shipping_address=ShippingAddress(**row.shipping_address),
            subtotal=Decimal(row.subtotal),
            shipping_cost=Decimal(row.shipping_cost),
            tax_amount=Decimal(row.tax_amount),
            discount=Decimal(row.discount),
            total_amount=Decimal(row.total_amount),
            currency=row.currency,
            payment_intent_id=row.payment_intent_id,
            payment_confirmation_id=row.payment_confirmation_id,
            status=OrderStatus(row.status),
            idempotency_key=row.idempotency_key,
            version=row.version,
            created_at=_as_utc(row.created_at),
            updated_at=_as_utc(row.updated_at),
            paid_at=_as_utc(row.paid_at),
            delivered_at=_as_utc(row.delivered_at),
            estimated_delivery_date=_as_utc(row.estimated_delivery_date)
        )


class SQLAlchemyStockLedger(StockLedger):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_available(self, product_id: str) -> Optional[int]:
        result = await self._session.execute(
            select(stock_levels_tbl.c.available).where(stock_levels_tbl.c.product_id == product_id)
        )
        return result.scalar_one_or_none()

    async def decrement(self, product_id: str, quantity: int) -> None:
        # Проверка остатка и списание одним UPDATE
        stmt = (
            update(stock_levels_tbl)
            .where(
                stock_levels_tbl.c.product_id == product_id,
                stock_levels_tbl.c.available >= quantity
            )
            .values(available=stock_levels_tbl.c.available - quantity)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            available = await self.get_available(product_id)
            raise InsufficientStockError(product_id, available or 0, quantity)

    async def increment(self, product_id: str, quantity: int) -> None:
        stmt = (
            update(stock_levels_tbl)
            .where(stock_levels_tbl.c.product_id == product_id)
            .values(available=stock_levels_tbl.c.available + quantity)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            await self._session.execute(
                insert(stock_levels_tbl).values(product_id=product_id, available=quantity)
            )


class SQLAlchemySellerStatsSink(SellerStatsSink):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def credit_sale(self, seller_id: str, units: int, revenue: Decimal) -> None:
        stmt = (
            update(seller_stats_tbl)
            .where(seller_stats_tbl.c.seller_id == seller_id)
            .values(
                units_sold=seller_stats_tbl.c.units_sold + units,
                revenue=seller_stats_tbl.c.revenue + revenue
            )
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            await self._session.execute(
                insert(seller_stats_tbl).values(seller_id=seller_id, units_sold=units, revenue=revenue)
            )


class SQLAlchemyOutboxRepository(OutboxRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, event_type: str, event_data: dict, order_id: str) -> str:
        event_id = str(uuid.uuid4())
        stmt = insert(outbox_events_tbl).values(
            id=event_id,
            event_type=event_type,
            event_data=event_data,  # JSON-колонка сериализует сама
            order_id=order_id,
            status="pending"
        )
        await self._session.execute(stmt)
        return event_id

    async def get_pending(self, limit: int = 10) -> List[dict]:
        result = await self._session.execute(
            select(outbox_events_tbl)
            .where(outbox_events_tbl.c.status == "pending")
            .order_by(outbox_events_tbl.c.created_at.asc())
            .limit(limit)
        )
        rows = result.fetchall()

        return [
            {
                "id": row.id,
                "event_type": row.event_type,
                "event_data": row.event_data,
                "order_id": row.order_id
            }
            for row in rows
        ]

    async def mark_as_published(self, event_id: str) -> None:
        stmt = (
            update(outbox_events_tbl)
            .where(outbox_events_tbl.c.id == event_id)
            .values(status="published")
        )
        await self._session.execute(stmt)
