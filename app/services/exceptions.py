class OrderError(Exception):
    """Base class for order lifecycle errors raised by services."""


class OrderNotFoundError(OrderError):
    pass


class ProductNotFoundError(OrderError):
    pass


class InvalidStatusTransition(OrderError):
    def __init__(self, current: str, requested: str, message: str | None = None):
        self.current = current
        self.requested = requested
        super().__init__(message or f"Cannot change order status from {current} to {requested}")


class InsufficientStockError(OrderError):
    def __init__(self, product_name: str, available: int, required: int):
        self.product_name = product_name
        self.available = available
        self.required = required
        super().__init__(
            f"Insufficient inventory for product: {product_name}. "
            f"Available: {available}, Required: {required}"
        )


class DiscrepancyError(OrderError):
    pass


class RefundValidationError(OrderError):
    pass


class RefundNotFoundError(OrderError):
    pass


class CatalogError(OrderError):
    pass


class WalletServiceError(Exception):
    pass
