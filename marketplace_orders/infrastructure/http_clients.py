import httpx
import logging
from typing import Optional
import asyncio

from marketplace_orders.domain.models import Product
from marketplace_orders.domain.exceptions import (
    CatalogServiceError, PaymentServiceError, PaymentGatewayTimeoutError
)

logger = logging.getLogger(__name__)


class HTTPCatalogClient:
    def __init__(self, base_url: str, api_token: str):
        self._base_url = base_url
        self._api_token = api_token

    async def get_product(self, product_id: str) -> Optional[Product]:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(
                    f"{self._base_url}/api/catalog/products/{product_id}",
                    headers={"X-API-Key": self._api_token},
                    timeout=10.0
                )

                if response.status_code == 200:
                    data = response.json()
                    return Product(**data)
                elif response.status_code == 404:
                    return None
                else:
                    raise CatalogServiceError(f"Catalog service ошибка: {response.status_code}")

        except httpx.RequestError as e:
            logger.error(f"Catalog service ошибка подключения: {e}")
            raise CatalogServiceError(f"Catalog service не доступен: {str(e)}")


class HTTPPaymentGatewayClient:
    def __init__(self, base_url: str, api_token: str, timeout: float = 30.0):
        self._base_url = base_url
        self._api_token = api_token
        self._timeout = timeout

    async def create_intent(self, amount: int, currency: str, reference: str) -> str:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"{self._base_url}/api/payments/intents",
                    json={
                        "amount": amount,
                        "currency": currency,
                        "receipt": reference
                    },
                    headers={
                        "X-API-Key": self._api_token,
                        "Content-Type": "application/json"
                    },
                    timeout=self._timeout
                )

                if response.status_code in (200, 201):
                    return response.json()["id"]
                else:
                    raise PaymentServiceError(f"Payment gateway ошибка: {response.status_code}")

        except httpx.TimeoutException as e:
            logger.error(f"Payment gateway не ответил вовремя: {e}")
            raise PaymentGatewayTimeoutError(f"Payment gateway таймаут: {str(e)}")
        except httpx.RequestError as e:
            logger.error(f"Payment gateway ошибка подключения: {e}")
            raise PaymentServiceError(f"Payment gateway не доступен: {str(e)}")


class HTTPNotificationsClient:
    def __init__(self, base_url: str, api_token: str, max_retries: int = 10, retry_delay: float = 1.0):
        self._base_url = base_url
        self._api_token = api_token
        self._max_retries = max_retries
        self._retry_delay = retry_delay

    async def send(self, message: str, reference_id: str, idempotency_key: str, user_id: str) -> bool:
        """Отправка уведомления с повторными попытками"""
        for attempt in range(self._max_retries):
            try:
                async with httpx.AsyncClient() as client:
                    response = await client.post(
                        f"{self._base_url}/api/notifications",
                        json={
                            "user_id": user_id,
                            "message": message,
                            "reference_id": reference_id,
                            "idempotency_key": idempotency_key
                        },
                        headers={"X-API-Key": self._api_token},
                        timeout=10.0
                    )

                    if response.status_code == 201:
                        logger.info(f"Уведомление отправлено (попытка {attempt + 1})")
                        return True
                    else:
                        logger.warning(f"Уведомление вернуло статус {response.status_code}")

            except httpx.HTTPError as e:
                logger.warning(f"Ошибка отправки уведомления (попытка {attempt + 1}/{self._max_retries}): {e}")

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._retry_delay)

        logger.error(f"Не удалось отправить уведомление после {self._max_retries} попыток")
        return False
