import logging

from marketplace_orders.domain.models import Order
from marketplace_orders.domain.state_machine import collect_uncredited_deliveries

logger = logging.getLogger(__name__)


async def save_and_credit_sellers(uow, order: Order) -> None:
    """Сохраняет заказ и начисляет продажи продавцам за новые доставленные позиции.

    Флаг начисления сохраняется вместе с заказом в той же транзакции,
    поэтому каждая позиция засчитывается продавцу ровно один раз.
    """
    credited = collect_uncredited_deliveries(order)
    await uow.orders.save(order)
    for item in credited:
        await uow.seller_stats.credit_sale(item.seller_id, item.quantity, item.line_total)
        logger.info(f"Продавцу {item.seller_id} начислена продажа: {item.quantity} шт., {item.line_total}")
