from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from app.api.errors import to_http_exception
from app.dependencies import get_current_admin
from app.models import User, get_db
from app.schemas.refunds import (
    RefundCompleteRequest,
    RefundCreateRequest,
    RefundFailRequest,
    RefundResponse,
)
from app.services import refund_service
from app.services.audit import log_admin_action
from app.services.exceptions import OrderError

router = APIRouter()


def _get_client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.headers.get("x-real-ip"):
        return request.headers["x-real-ip"]
    return request.client.host if request.client else None


@router.post(
    "",
    response_model=RefundResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a refund (admin)",
)
def create_refund(
    body: RefundCreateRequest,
    request: Request,
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    """
    Record a refund for an order. The refund stays processing until the transfer
    signature is reported with the complete action.
    """
    try:
        refund = refund_service.create_refund(
            db,
            order_id=body.order_id,
            amount=body.amount,
            wallet_address=body.wallet_address,
            reason=body.reason,
            processed_by=admin,
            admin_notes=body.admin_notes,
            ip_address=_get_client_ip(request),
        )
    except OrderError as e:
        raise to_http_exception(e)
    log_admin_action(
        admin,
        "refund.create",
        refund=refund.refund_number,
        order_id=refund.order_id,
        amount=refund.amount,
    )
    return refund


@router.post(
    "/{refund_id}/complete",
    response_model=RefundResponse,
    summary="Complete a refund (admin)",
)
def complete_refund(
    refund_id: int,
    body: RefundCompleteRequest,
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    try:
        refund = refund_service.complete_refund(db, refund_id, body.transaction_signature)
    except OrderError as e:
        raise to_http_exception(e)
    log_admin_action(
        admin,
        "refund.complete",
        refund=refund.refund_number,
        transaction_signature=refund.transaction_signature,
    )
    return refund


@router.post(
    "/{refund_id}/fail",
    response_model=RefundResponse,
    summary="Mark a refund failed (admin)",
)
def fail_refund(
    refund_id: int,
    body: RefundFailRequest,
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    try:
        refund = refund_service.fail_refund(db, refund_id, body.error_message)
    except OrderError as e:
        raise to_http_exception(e)
    log_admin_action(admin, "refund.fail", refund=refund.refund_number, error=body.error_message)
    return refund


@router.get(
    "",
    response_model=list[RefundResponse],
    summary="Refund history (admin)",
)
def refund_history(
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
    order_id: Annotated[int | None, Query()] = None,
):
    """Newest first, up to 100 records."""
    return refund_service.list_refunds(db, order_id=order_id)
