from app.schemas.orders import (
    AdminOrderDetailResponse,
    OrderCreateRequest,
    OrderCreateResponse,
    OrderDetailResponse,
    OrderStatusResponse,
)
from app.schemas.payments import PaymentCheckResponse, WalletBalanceResponse
from app.schemas.products import CategoryResponse, ProductResponse
from app.schemas.refunds import RefundResponse

__all__ = [
    "AdminOrderDetailResponse",
    "CategoryResponse",
    "OrderCreateRequest",
    "OrderCreateResponse",
    "OrderDetailResponse",
    "OrderStatusResponse",
    "PaymentCheckResponse",
    "ProductResponse",
    "RefundResponse",
    "WalletBalanceResponse",
]
