from fastapi import HTTPException, status

from app.services.exceptions import (
    OrderError,
    OrderNotFoundError,
    ProductNotFoundError,
    RefundNotFoundError,
)

_NOT_FOUND_ERRORS = (OrderNotFoundError, ProductNotFoundError, RefundNotFoundError)


def to_http_exception(exc: OrderError) -> HTTPException:
    """Map a service error to the HTTP error returned to the client."""
    if isinstance(exc, _NOT_FOUND_ERRORS):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
