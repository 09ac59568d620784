class DomainException(Exception):
    pass


class OrderValidationError(DomainException):
    pass


class CatalogServiceError(DomainException):
    pass


class PaymentServiceError(DomainException):
    pass


class PaymentGatewayTimeoutError(PaymentServiceError):
    pass


class ItemNotFoundError(DomainException):
    pass


class InsufficientStockError(DomainException):
    def __init__(self, product_id: str, available: int, required: int):
        self.product_id = product_id
        self.available = available
        self.required = required
        super().__init__(
            f"Недостаточно товара {product_id}. Доступно: {available}, требуется: {required}"
        )


class OrderNotFoundError(DomainException):
    pass


class SignatureMismatchError(DomainException):
    pass


class InvalidStatusTransitionError(DomainException):
    def __init__(self, current, requested):
        self.current = current
        self.requested = requested
        super().__init__(f"Недопустимый переход статуса: {current.value} -> {requested.value}")


class UnauthorizedActionError(DomainException):
    pass


class ConcurrencyConflictError(DomainException):
    pass
