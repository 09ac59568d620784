from sqlalchemy import (
    Table, Column, String, Integer, Enum, DateTime, JSON, Numeric, Boolean,
    ForeignKey, CheckConstraint, MetaData
)
from sqlalchemy.sql import func

from marketplace_orders.domain.models import OrderStatus

metadata = MetaData()

order_status_enum = Enum(
    OrderStatus,
    name="order_status",
    values_callable=lambda statuses: [status.value for status in statuses],
)


orders_tbl = Table(
    "orders",
    metadata,
    Column("id", String, primary_key=True),
    Column("user_id", String, nullable=False, index=True),
    Column("status", order_status_enum, nullable=False, default=OrderStatus.PENDING),
    Column("shipping_address", JSON, nullable=False),
    Column("subtotal", Numeric(12, 2), nullable=False),
    Column("shipping_cost", Numeric(12, 2), nullable=False),
    Column("tax_amount", Numeric(12, 2), nullable=False),
    Column("discount", Numeric(12, 2), nullable=False, default=0),
    Column("total_amount", Numeric(12, 2), nullable=False),
    Column("currency", String(3), nullable=False),
    Column("payment_intent_id", String, unique=True, index=True, nullable=False),
    Column("payment_confirmation_id", String, nullable=True),
    Column("idempotency_key", String, unique=True, index=True, nullable=True),
    Column("version", Integer, nullable=False, default=1),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
    Column("paid_at", DateTime(timezone=True), nullable=True),
    Column("delivered_at", DateTime(timezone=True), nullable=True),
    Column("estimated_delivery_date", DateTime(timezone=True), nullable=False),
)


order_items_tbl = Table(
    "order_items",
    metadata,
    Column("id", String, primary_key=True),
    Column("order_id", String, ForeignKey("orders.id"), nullable=False, index=True),
    Column("position", Integer, nullable=False),
    Column("product_id", String, nullable=False),
    Column("seller_id", String, nullable=False, index=True),
    Column("quantity", Integer, nullable=False),
    Column("unit_price", Numeric(12, 2), nullable=False),
    Column("status", order_status_enum, nullable=False, default=OrderStatus.PENDING),
    Column("sales_credited", Boolean, nullable=False, default=False),
    CheckConstraint("quantity >= 1", name="ck_order_items_quantity"),
)


stock_levels_tbl = Table(
    "stock_levels",
    metadata,
    Column("product_id", String, primary_key=True),
    Column("available", Integer, nullable=False, default=0),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
    CheckConstraint("available >= 0", name="ck_stock_levels_available"),
)


seller_stats_tbl = Table(
    "seller_stats",
    metadata,
    Column("seller_id", String, primary_key=True),
    Column("units_sold", Integer, nullable=False, default=0),
    Column("revenue", Numeric(14, 2), nullable=False, default=0),
)


outbox_events_tbl = Table(
    "outbox_events",
    metadata,
    Column("id", String, primary_key=True),
    Column("event_type", String, nullable=False),
    Column("event_data", JSON, nullable=False),
    Column("order_id", String, nullable=False),
    Column("status", String, default="pending"),
    Column("created_at", DateTime(timezone=True), server_default=func.now())
)
