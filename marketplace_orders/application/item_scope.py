from typing import Optional, Sequence

from marketplace_orders.domain.models import Actor, ActorRole, Order, OrderItem
from marketplace_orders.domain.exceptions import OrderValidationError, UnauthorizedActionError


def resolve_item_scope(order: Order, actor: Actor, item_ids: Optional[Sequence[str]] = None) -> list[OrderItem]:
    """Позиции заказа, над которыми действует actor.

    Продавцу доступны только свои позиции (по умолчанию все свои), покупателю-владельцу
    и администратору любые (по умолчанию все).
    """
    if actor.role == ActorRole.SELLER:
        allowed = order.items_of(actor.id)
        if not allowed:
            raise UnauthorizedActionError(f"У продавца {actor.id} нет товаров в заказе {order.id}")
    elif actor.role == ActorRole.BUYER and actor.id != order.user_id:
        raise UnauthorizedActionError(f"Заказ {order.id} принадлежит другому покупателю")
    else:
        allowed = list(order.items)

    if item_ids is None:
        return allowed

    allowed_ids = {item.id for item in allowed}
    picked = []
    for item_id in dict.fromkeys(item_ids):
        item = order.get_item(item_id)
        if item is None:
            raise OrderValidationError(f"Позиция {item_id} не найдена в заказе {order.id}")
        if item.id not in allowed_ids:
            raise UnauthorizedActionError(f"Нет прав на позицию {item_id} заказа {order.id}")
        picked.append(item)
    return picked
