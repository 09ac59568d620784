from typing import List

from marketplace_orders.domain.models import Actor, ActorRole, Order
from marketplace_orders.domain.exceptions import OrderNotFoundError, UnauthorizedActionError
from marketplace_orders.domain.seller_view import SellerOrderSummary, project_seller_view
from marketplace_orders.application.escalate_orders import OrderEscalator


class GetOrderUseCase:
    def __init__(self, unit_of_work, escalator: OrderEscalator):
        self._uow = unit_of_work
        self._escalator = escalator

    async def __call__(self, order_id: str, viewer: Actor) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(f"Заказ {order_id} не найден")
            if not order.is_visible_to(viewer):
                raise UnauthorizedActionError(f"Нет доступа к заказу {order_id}")
            return await self._escalator.apply(uow, order)


class ListBuyerOrdersUseCase:
    def __init__(self, unit_of_work, escalator: OrderEscalator):
        self._uow = unit_of_work
        self._escalator = escalator

    async def __call__(self, viewer: Actor) -> List[Order]:
        async with self._uow() as uow:
            orders = await uow.orders.list_by_user(viewer.id)
            return [await self._escalator.apply(uow, order) for order in orders]


class ListSellerOrdersUseCase:
    def __init__(self, unit_of_work, escalator: OrderEscalator):
        self._uow = unit_of_work
        self._escalator = escalator

    async def __call__(self, seller: Actor) -> List[SellerOrderSummary]:
        if seller.role != ActorRole.SELLER:
            raise UnauthorizedActionError("Заказы продавца доступны только продавцам")

        async with self._uow() as uow:
            orders = await uow.orders.list_by_seller(seller.id)
            summaries = []
            for order in orders:
                order = await self._escalator.apply(uow, order)
                summaries.append(project_seller_view(order, seller.id))
            return summaries


class GetSellerViewUseCase:
    def __init__(self, unit_of_work, escalator: OrderEscalator):
        self._uow = unit_of_work
        self._escalator = escalator

    async def __call__(self, order_id: str, seller_id: str) -> SellerOrderSummary:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(f"Заказ {order_id} не найден")
            if not order.has_seller(seller_id):
                raise UnauthorizedActionError(f"В заказе {order_id} нет товаров продавца {seller_id}")
            order = await self._escalator.apply(uow, order)
            return project_seller_view(order, seller_id)
