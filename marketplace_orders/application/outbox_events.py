from marketplace_orders.domain.models import Order

ORDER_CREATED = "order.created"
ORDER_PAID = "order.paid"
ORDER_STATUS_CHANGED = "order.status_changed"
ORDER_ITEMS_CANCELLED = "order.items_cancelled"

# Сообщения покупателю по событиям outbox
NOTIFICATION_MESSAGES = {
    ORDER_CREATED: "Ваш заказ создан (pending) и ожидает оплаты",
    ORDER_PAID: "Ваш заказ успешно оплачен (processing) и готов к отправке",
    ORDER_STATUS_CHANGED: "Статус вашего заказа изменён на {status}",
    ORDER_ITEMS_CANCELLED: "Часть товаров в вашем заказе отменена",
}


def order_event_data(order: Order, **extra) -> dict:
    data = {
        "order_id": order.id,
        "user_id": order.user_id,
        "status": order.status.value,
        "items": [
            {
                "item_id": item.id,
                "product_id": item.product_id,
                "seller_id": item.seller_id,
                "quantity": item.quantity,
                "status": item.status.value
            }
            for item in order.items
        ],
    }
    data.update(extra)
    return data
