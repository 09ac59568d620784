from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable
from pydantic import BaseModel

from marketplace_orders.domain.models import OrderItem


class PricingPolicy(BaseModel):
    shipping_cost: Decimal = Decimal("99")
    tax_rate: Decimal = Decimal("0.18")
    discount_threshold: Decimal = Decimal("5000")
    discount_amount: Decimal = Decimal("500")


class OrderTotals(BaseModel):
    """Снимок сумм заказа, фиксируется при создании и больше не пересчитывается"""
    subtotal: Decimal
    shipping_cost: Decimal
    tax_amount: Decimal
    discount: Decimal
    total_amount: Decimal


def calculate_totals(items: Iterable[OrderItem], policy: PricingPolicy) -> OrderTotals:
    subtotal = sum((item.line_total for item in items), Decimal("0"))
    tax_amount = (subtotal * policy.tax_rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    discount = policy.discount_amount if subtotal > policy.discount_threshold else Decimal("0")
    total_amount = subtotal + policy.shipping_cost + tax_amount - discount
    return OrderTotals(
        subtotal=subtotal,
        shipping_cost=policy.shipping_cost,
        tax_amount=tax_amount,
        discount=discount,
        total_amount=total_amount,
    )


def to_minor_units(amount: Decimal) -> int:
    """Сумма в минимальных единицах валюты (копейки, пайсы)"""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
