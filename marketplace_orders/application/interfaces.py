from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional, List
from marketplace_orders.domain.models import Order, Product


class OrderRepository(ABC):
    @abstractmethod
    async def get_by_id(self, order_id: str, for_update: bool = False) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_by_payment_intent(self, intent_id: str, for_update: bool = False) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def list_by_user(self, user_id: str) -> List[Order]:
        pass

    @abstractmethod
    async def list_by_seller(self, seller_id: str) -> List[Order]:
        pass

    @abstractmethod
    async def list_non_terminal(self, limit: int = 100) -> List[Order]:
        pass

    @abstractmethod
    async def create(self, order: Order) -> None:
        pass

    @abstractmethod
    async def save(self, order: Order) -> None:
        """Сохраняет заказ, если его version не изменилась с момента чтения"""
        pass


class StockLedger(ABC):
    @abstractmethod
    async def get_available(self, product_id: str) -> Optional[int]:
        pass

    @abstractmethod
    async def decrement(self, product_id: str, quantity: int) -> None:
        pass

    @abstractmethod
    async def increment(self, product_id: str, quantity: int) -> None:
        pass


class SellerStatsSink(ABC):
    @abstractmethod
    async def credit_sale(self, seller_id: str, units: int, revenue: Decimal) -> None:
        pass


class OutboxRepository(ABC):
    @abstractmethod
    async def create(self, event_type: str, event_data: dict, order_id: str) -> str:
        pass

    @abstractmethod
    async def get_pending(self, limit: int = 10) -> List[dict]:
        pass

    @abstractmethod
    async def mark_as_published(self, event_id: str) -> None:
        pass


class UnitOfWork(ABC):
    @property
    @abstractmethod
    def orders(self) -> OrderRepository:
        pass

    @property
    @abstractmethod
    def stock(self) -> StockLedger:
        pass

    @property
    @abstractmethod
    def seller_stats(self) -> SellerStatsSink:
        pass

    @property
    @abstractmethod
    def outbox(self) -> OutboxRepository:
        pass

    @abstractmethod
    async def __call__(self):
        pass

    @abstractmethod
    async def commit(self):
        pass

    @abstractmethod
    async def rollback(self):
        pass


class CatalogService(ABC):
    @abstractmethod
    async def get_product(self, product_id: str) -> Optional[Product]:
        pass


class PaymentGateway(ABC):
    @abstractmethod
    async def create_intent(self, amount: int, currency: str, reference: str) -> str:
        """Создаёт платёжное намерение, amount — в минимальных единицах валюты"""
        pass


class NotificationsService(ABC):
    @abstractmethod
    async def send(self, message: str, reference_id: str, idempotency_key: str, user_id: str) -> bool:
        pass


class EventPublisher(ABC):
    @abstractmethod
    async def publish(self, event_type: str, event_data: dict, key: str) -> bool:
        pass
