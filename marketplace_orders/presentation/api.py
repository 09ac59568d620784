from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, status

from marketplace_orders.presentation.schemas import (
    CreateOrderRequest, CreateOrderResponse, OrderResponse, PaymentIntentResponse,
    PaymentCallbackRequest, StatusUpdateRequest, CancelOrderRequest, ErrorResponse
)
from marketplace_orders.application.create_order import CreateOrderUseCase, CreateOrderDTO
from marketplace_orders.application.get_order import (
    GetOrderUseCase, ListBuyerOrdersUseCase, ListSellerOrdersUseCase, GetSellerViewUseCase
)
from marketplace_orders.application.process_payment import ProcessPaymentCallbackUseCase, PaymentConfirmationDTO
from marketplace_orders.application.transition_status import TransitionStatusUseCase
from marketplace_orders.application.cancel_order import CancelOrderUseCase
from marketplace_orders.application.escalate_orders import OrderEscalator
from marketplace_orders.domain.models import Actor, ActorRole
from marketplace_orders.domain.seller_view import SellerOrderSummary
from marketplace_orders.domain.signature import PaymentSignatureVerifier
from marketplace_orders.domain.exceptions import (
    DomainException, OrderValidationError, ItemNotFoundError, InsufficientStockError,
    SignatureMismatchError, OrderNotFoundError, InvalidStatusTransitionError,
    UnauthorizedActionError, ConcurrencyConflictError, PaymentGatewayTimeoutError,
    PaymentServiceError, CatalogServiceError
)
from marketplace_orders.infrastructure.database import AsyncSessionLocal
from marketplace_orders.infrastructure.unit_of_work import UnitOfWork
from marketplace_orders.infrastructure.http_clients import HTTPCatalogClient, HTTPPaymentGatewayClient
from marketplace_orders.config import settings

router = APIRouter()

ERROR_STATUS_CODES = {
    OrderValidationError: status.HTTP_400_BAD_REQUEST,
    ItemNotFoundError: status.HTTP_400_BAD_REQUEST,
    SignatureMismatchError: status.HTTP_400_BAD_REQUEST,
    InvalidStatusTransitionError: status.HTTP_400_BAD_REQUEST,
    UnauthorizedActionError: status.HTTP_403_FORBIDDEN,
    OrderNotFoundError: status.HTTP_404_NOT_FOUND,
    InsufficientStockError: status.HTTP_409_CONFLICT,
    ConcurrencyConflictError: status.HTTP_409_CONFLICT,
    PaymentGatewayTimeoutError: status.HTTP_504_GATEWAY_TIMEOUT,
    PaymentServiceError: status.HTTP_503_SERVICE_UNAVAILABLE,
    CatalogServiceError: status.HTTP_503_SERVICE_UNAVAILABLE,
}

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


def _http_error(error: DomainException) -> HTTPException:
    for error_type in type(error).__mro__:
        if error_type in ERROR_STATUS_CODES:
            return HTTPException(status_code=ERROR_STATUS_CODES[error_type], detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))


# Пользователь и роль проставляются identity-шлюзом перед сервисом
def get_current_actor(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None)
) -> Actor:
    if not x_user_id or not x_user_role:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Не передан пользователь")
    try:
        role = ActorRole(x_user_role.lower())
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Неизвестная роль {x_user_role}")
    return Actor(id=x_user_id, role=role)


# Фабрики для создания use cases
def get_unit_of_work() -> UnitOfWork:
    return UnitOfWork(AsyncSessionLocal)


def get_escalator() -> OrderEscalator:
    return OrderEscalator(settings.escalation_policy)


def get_create_order_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    catalog = HTTPCatalogClient(settings.CATALOG_BASE_URL, settings.API_TOKEN)
    payments = HTTPPaymentGatewayClient(settings.PAYMENTS_BASE_URL, settings.API_TOKEN, settings.PAYMENTS_TIMEOUT)
    return CreateOrderUseCase(
        uow, catalog, payments, settings.pricing_policy, settings.CURRENCY, settings.delivery_lead_time
    )


def get_process_payment_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return ProcessPaymentCallbackUseCase(uow, PaymentSignatureVerifier(settings.PAYMENT_KEY_SECRET))


def get_cancel_order_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return CancelOrderUseCase(uow)


def get_transition_status_use_case(
    uow: UnitOfWork = Depends(get_unit_of_work),
    cancel_order: CancelOrderUseCase = Depends(get_cancel_order_use_case)
):
    return TransitionStatusUseCase(uow, cancel_order)


def get_get_order_use_case(
    uow: UnitOfWork = Depends(get_unit_of_work), escalator: OrderEscalator = Depends(get_escalator)
):
    return GetOrderUseCase(uow, escalator)


def get_list_buyer_orders_use_case(
    uow: UnitOfWork = Depends(get_unit_of_work), escalator: OrderEscalator = Depends(get_escalator)
):
    return ListBuyerOrdersUseCase(uow, escalator)


def get_list_seller_orders_use_case(
    uow: UnitOfWork = Depends(get_unit_of_work), escalator: OrderEscalator = Depends(get_escalator)
):
    return ListSellerOrdersUseCase(uow, escalator)


def get_seller_view_use_case(
    uow: UnitOfWork = Depends(get_unit_of_work), escalator: OrderEscalator = Depends(get_escalator)
):
    return GetSellerViewUseCase(uow, escalator)


@router.post(
    "/orders",
    response_model=CreateOrderResponse,
    responses={**ERROR_RESPONSES, 503: {"model": ErrorResponse}, 504: {"model": ErrorResponse}},
    status_code=status.HTTP_201_CREATED
)
async def create_order(
    request: CreateOrderRequest,
    actor: Actor = Depends(get_current_actor),
    use_case: CreateOrderUseCase = Depends(get_create_order_use_case)
):
    """Создать новый заказ и платёжное намерение"""
    try:
        dto = CreateOrderDTO(
            user_id=actor.id,
            items=request.items,
            shipping_address=request.shipping_address,
            idempotency_key=request.idempotency_key
        )
        created = await use_case(dto)
        return CreateOrderResponse(
            order=OrderResponse.from_domain(created.order),
            payment_intent=PaymentIntentResponse(**created.payment_intent.model_dump())
        )
    except DomainException as e:
        raise _http_error(e)


@router.post("/orders/payment-callback", response_model=OrderResponse, responses=ERROR_RESPONSES)
async def payment_callback(
    callback: PaymentCallbackRequest,
    use_case: ProcessPaymentCallbackUseCase = Depends(get_process_payment_use_case)
):
    """Подтверждение оплаты от платёжного шлюза"""
    try:
        dto = PaymentConfirmationDTO(
            intent_id=callback.intent_id,
            confirmation_id=callback.confirmation_id,
            signature=callback.signature
        )
        order = await use_case(dto)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise _http_error(e)


@router.get("/orders", response_model=list[OrderResponse])
async def list_orders(
    actor: Actor = Depends(get_current_actor),
    use_case: ListBuyerOrdersUseCase = Depends(get_list_buyer_orders_use_case)
):
    """Заказы текущего покупателя"""
    orders = await use_case(actor)
    return [OrderResponse.from_domain(order) for order in orders]


@router.get("/orders/{order_id}", response_model=OrderResponse, responses=ERROR_RESPONSES)
async def get_order(
    order_id: str,
    actor: Actor = Depends(get_current_actor),
    use_case: GetOrderUseCase = Depends(get_get_order_use_case)
):
    """Получить заказ по ID"""
    try:
        order = await use_case(order_id, actor)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise _http_error(e)


@router.get("/orders/{order_id}/seller-view", response_model=SellerOrderSummary, responses=ERROR_RESPONSES)
async def get_seller_view(
    order_id: str,
    actor: Actor = Depends(get_current_actor),
    use_case: GetSellerViewUseCase = Depends(get_seller_view_use_case)
):
    """Заказ глазами текущего продавца"""
    try:
        return await use_case(order_id, actor.id)
    except DomainException as e:
        raise _http_error(e)


@router.put("/orders/{order_id}/status", response_model=OrderResponse, responses=ERROR_RESPONSES)
async def update_order_status(
    order_id: str,
    request: StatusUpdateRequest,
    actor: Actor = Depends(get_current_actor),
    use_case: TransitionStatusUseCase = Depends(get_transition_status_use_case)
):
    """Сменить статус заказа или позиций продавца"""
    try:
        order = await use_case(order_id, actor, request.status, request.item_ids)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise _http_error(e)


@router.post("/orders/{order_id}/cancel", response_model=OrderResponse, responses=ERROR_RESPONSES)
async def cancel_order(
    order_id: str,
    request: Optional[CancelOrderRequest] = None,
    actor: Actor = Depends(get_current_actor),
    use_case: CancelOrderUseCase = Depends(get_cancel_order_use_case)
):
    """Отменить заказ или позиции с возвратом на склад"""
    try:
        item_ids = request.item_ids if request else None
        order = await use_case(order_id, actor, item_ids)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise _http_error(e)


@router.get("/seller/orders", response_model=list[SellerOrderSummary], responses=ERROR_RESPONSES)
async def list_seller_orders(
    actor: Actor = Depends(get_current_actor),
    use_case: ListSellerOrdersUseCase = Depends(get_list_seller_orders_use_case)
):
    """Заказы с товарами текущего продавца"""
    try:
        return await use_case(actor)
    except DomainException as e:
        raise _http_error(e)
