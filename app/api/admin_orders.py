import math
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.errors import to_http_exception
from app.api.orders import order_to_admin_response
from app.dependencies import get_current_admin
from app.models import User, get_db
from app.schemas.orders import (
    AdminOrderDetailResponse,
    AdminOrderSummaryResponse,
    ApproveUnderpaymentRequest,
    ApproveUnderpaymentResponse,
    CancelRequest,
    CancelResponse,
    FulfillRequest,
    OrderListResponse,
    OrderStatsResponse,
    StatusUpdateRequest,
)
from app.services import discrepancy, email_service, order_service
from app.services.audit import log_admin_action
from app.services.exceptions import OrderError

router = APIRouter()


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List orders (admin)",
)
def list_orders(
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
    status: Annotated[str | None, Query()] = None,
    search: Annotated[str | None, Query()] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
):
    """Filter by status and search by order number, email, wallet or transaction signature."""
    orders, total = order_service.list_orders(db, status=status, search=search, page=page, limit=limit)
    return OrderListResponse(
        orders=[
            AdminOrderSummaryResponse(
                id=order.id,
                order_number=order.order_number,
                status=order.status,
                amount_elurc=order.amount_elurc,
                amount_eur=order.amount_eur,
                item_count=sum(item.quantity for item in order.items),
                created_at=order.created_at,
                paid_at=order.paid_at,
                customer_email=order.customer_email,
                customer_wallet=order.customer_wallet,
                has_discrepancy=bool(order.has_discrepancy),
            )
            for order in orders
        ],
        total=total,
        page=page,
        limit=limit,
        pages=math.ceil(total / limit) if total else 0,
    )


@router.get(
    "/stats",
    response_model=OrderStatsResponse,
    summary="Order statistics (admin)",
)
def order_stats(
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    return OrderStatsResponse(**order_service.order_stats(db))


@router.get(
    "/{order_id}",
    response_model=AdminOrderDetailResponse,
    summary="Get order (admin)",
)
def get_order(
    order_id: int,
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    try:
        order = order_service.get_order(db, order_id)
    except OrderError as e:
        raise to_http_exception(e)
    return order_to_admin_response(order)


@router.patch(
    "/{order_id}/status",
    response_model=AdminOrderDetailResponse,
    summary="Change order status (admin)",
)
def update_order_status(
    order_id: int,
    body: StatusUpdateRequest,
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    """Guarded status change, e.g. paid -> processing. Use fulfill/cancel for those statuses."""
    try:
        order = order_service.update_status(db, order_id, body.status, reason=body.reason)
    except OrderError as e:
        raise to_http_exception(e)
    log_admin_action(admin, "order.status", order_id=order.id, status=order.status, reason=body.reason)
    return order_to_admin_response(order)


@router.post(
    "/{order_id}/fulfill",
    response_model=AdminOrderDetailResponse,
    summary="Fulfill order (admin)",
)
def fulfill_order(
    order_id: int,
    body: FulfillRequest,
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    """Mark a paid order shipped, decrement inventory and email the customer."""
    try:
        order = order_service.fulfill_order(
            db,
            order_id,
            tracking_number=body.tracking_number,
            notes=body.notes,
        )
    except OrderError as e:
        raise to_http_exception(e)
    log_admin_action(admin, "order.fulfill", order_id=order.id, tracking_number=order.tracking_number)
    email_service.notify(email_service.send_shipping_confirmation, order)
    return order_to_admin_response(order)


@router.post(
    "/{order_id}/cancel",
    response_model=CancelResponse,
    summary="Cancel order (admin)",
)
def cancel_order(
    order_id: int,
    body: CancelRequest,
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    """Cancel an order. Inventory is restored only for orders that were processing."""
    try:
        order, inventory_restored = order_service.cancel_order(
            db,
            order_id,
            reason=body.reason,
            restore_inventory=body.restore_inventory,
        )
    except OrderError as e:
        raise to_http_exception(e)
    log_admin_action(
        admin,
        "order.cancel",
        order_id=order.id,
        reason=body.reason,
        inventory_restored=inventory_restored,
    )
    email_service.notify(email_service.send_order_cancelled, order, body.reason)
    return CancelResponse(order=order_to_admin_response(order), inventory_restored=inventory_restored)


@router.post(
    "/{order_id}/approve-underpayment",
    response_model=ApproveUnderpaymentResponse,
    summary="Approve underpaid order (admin)",
)
def approve_underpayment(
    order_id: int,
    body: ApproveUnderpaymentRequest,
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    """Accept an underpaid order as paid, optionally waiving the shortage."""
    try:
        order, shortage = discrepancy.approve_underpayment(
            db,
            order_id,
            approval_reason=body.approval_reason,
            waive_amount=body.waive_amount,
        )
    except OrderError as e:
        raise to_http_exception(e)
    waived = shortage if body.waive_amount else 0
    log_admin_action(
        admin,
        "order.approve_underpayment",
        order_id=order.id,
        waived_amount=waived,
        reason=body.approval_reason,
    )
    email_service.notify(email_service.send_order_confirmation, order)
    return ApproveUnderpaymentResponse(order=order_to_admin_response(order), waived_amount=waived)
