import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.errors import to_http_exception
from app.config import settings
from app.models import Order, get_db
from app.schemas.orders import (
    AdminOrderDetailResponse,
    DeliveryEstimateResponse,
    OrderCreateRequest,
    OrderCreateResponse,
    OrderDetailResponse,
    OrderItemResponse,
    OrderStatusResponse,
    OrderSummaryResponse,
    PaymentDiscrepancyResponse,
    RefundInfoResponse,
    ShippingAddressSchema,
    StatusHistoryResponse,
)
from app.services import order_service
from app.services.delivery import calculate_delivery_estimate
from app.services.elurc import build_payment_uri
from app.services.exceptions import OrderError
from app.services.order_service import OrderLine, ShippingAddress
from app.services.order_status import next_expected_status, status_label
from app.services.payment_service import payment_deadline
from app.services.solana_service import is_valid_wallet_address

router = APIRouter()
logger = logging.getLogger(__name__)


def order_to_summary_response(order: Order) -> OrderSummaryResponse:
    return OrderSummaryResponse(
        id=order.id,
        order_number=order.order_number,
        status=order.status,
        amount_elurc=order.amount_elurc,
        amount_eur=order.amount_eur,
        item_count=sum(item.quantity for item in order.items),
        created_at=order.created_at,
        paid_at=order.paid_at,
    )


def _order_detail_fields(order: Order) -> dict:
    discrepancy = None
    if order.has_discrepancy:
        discrepancy = PaymentDiscrepancyResponse(
            has_discrepancy=True,
            type=order.discrepancy_type,
            expected_amount=order.discrepancy_expected_amount,
            received_amount=order.discrepancy_received_amount,
            difference_amount=order.discrepancy_difference_amount,
            resolution=order.discrepancy_resolution,
            resolution_notes=order.discrepancy_resolution_notes,
        )
    refund_info = None
    if order.refund_initiated_at or order.refund_completed_at:
        refund_info = RefundInfoResponse(
            refund_amount=order.refund_amount,
            refund_wallet=order.refund_wallet,
            refund_transaction_signature=order.refund_transaction_signature,
            refund_initiated_at=order.refund_initiated_at,
            refund_completed_at=order.refund_completed_at,
            refund_reason=order.refund_reason,
        )
    return {
        "id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "status_label": status_label(order.status),
        "amount_elurc": order.amount_elurc,
        "amount_eur": order.amount_eur,
        "customer_wallet": order.customer_wallet,
        "customer_email": order.customer_email,
        "shipping_address": ShippingAddressSchema(
            full_name=order.shipping_full_name,
            street_address=order.shipping_street_address,
            city=order.shipping_city,
            postal_code=order.shipping_postal_code,
            phone_number=order.shipping_phone_number,
        ),
        "items": [
            OrderItemResponse(
                product_id=item.product_id,
                product_name=item.product.name if item.product else None,
                quantity=item.quantity,
                price_snapshot_elurc=item.price_snapshot_elurc,
                price_snapshot_eur=item.price_snapshot_eur,
            )
            for item in order.items
        ],
        "transaction_signature": order.transaction_signature,
        "received_amount_elurc": order.received_amount_elurc,
        "paid_at": order.paid_at,
        "fulfilled_at": order.fulfilled_at,
        "tracking_number": order.tracking_number,
        "payment_discrepancy": discrepancy,
        "refund_info": refund_info,
        "status_history": [StatusHistoryResponse.model_validate(entry) for entry in order.status_history],
        "created_at": order.created_at,
        "updated_at": order.updated_at,
    }


def order_to_detail_response(order: Order) -> OrderDetailResponse:
    return OrderDetailResponse(**_order_detail_fields(order))


def order_to_admin_response(order: Order) -> AdminOrderDetailResponse:
    return AdminOrderDetailResponse(**_order_detail_fields(order), admin_notes=order.admin_notes)


@router.post(
    "/create",
    response_model=OrderCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create order and get payment request",
)
def create_order(
    body: OrderCreateRequest,
    db: Annotated[Session, Depends(get_db)],
):
    """
    Create a pending order for the given products.
    Prices are taken from the catalog; returns a Solana Pay URI and the payment deadline.
    """
    if not is_valid_wallet_address(body.customer_wallet):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid wallet address format")

    shipping = body.shipping_address
    try:
        order = order_service.create_order(
            db,
            lines=[OrderLine(product_id=item.product_id, quantity=item.quantity) for item in body.items],
            customer_wallet=body.customer_wallet.strip(),
            customer_email=str(body.customer_email),
            shipping=ShippingAddress(
                full_name=shipping.full_name,
                street_address=shipping.street_address,
                city=shipping.city,
                postal_code=shipping.postal_code,
                phone_number=shipping.phone_number,
            ),
        )
    except OrderError as e:
        db.rollback()
        raise to_http_exception(e)

    payment_uri = None
    if settings.SHOP_WALLET_ADDRESS and settings.ELURC_TOKEN_ADDRESS:
        payment_uri = build_payment_uri(
            recipient=settings.SHOP_WALLET_ADDRESS,
            amount_lamports=order.amount_elurc,
            spl_token=settings.ELURC_TOKEN_ADDRESS,
            reference=order.order_number,
            message=f"Order {order.order_number}",
        )
    else:
        logger.warning("SHOP_WALLET_ADDRESS or ELURC_TOKEN_ADDRESS is not set, no payment URI for %s", order.order_number)

    return OrderCreateResponse(
        order_id=order.id,
        order_number=order.order_number,
        status=order.status,
        amount_elurc=order.amount_elurc,
        amount_eur=order.amount_eur,
        shop_wallet=settings.SHOP_WALLET_ADDRESS or None,
        payment_uri=payment_uri,
        payment_deadline=payment_deadline(order),
    )


@router.get(
    "/history",
    response_model=list[OrderSummaryResponse],
    summary="List orders of a wallet",
)
def order_history(
    db: Annotated[Session, Depends(get_db)],
    wallet: Annotated[str | None, Query()] = None,
):
    """Returns orders placed from the given wallet, newest first."""
    if not wallet:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Wallet address is required")
    return [order_to_summary_response(order) for order in order_service.list_orders_for_wallet(db, wallet)]


@router.get(
    "/{order_id}/status",
    response_model=OrderStatusResponse,
    summary="Get order status",
)
def order_status(
    order_id: int,
    db: Annotated[Session, Depends(get_db)],
):
    """Current status, the next expected status and the delivery estimate."""
    try:
        order = order_service.get_order(db, order_id)
    except OrderError as e:
        raise to_http_exception(e)

    estimate = calculate_delivery_estimate(order)
    last_change = order.status_history[-1].timestamp if order.status_history else order.updated_at
    return OrderStatusResponse(
        order_id=order.id,
        status=order.status,
        status_label=status_label(order.status),
        status_updated_at=last_change,
        next_expected_status=next_expected_status(order.status),
        estimated_delivery=(
            DeliveryEstimateResponse(
                estimated_date=estimate.estimated_date,
                delivery_window=estimate.delivery_window,
                days_remaining=estimate.days_remaining,
            )
            if estimate
            else None
        ),
    )


@router.get(
    "/{order_id}/details",
    response_model=OrderDetailResponse,
    summary="Get order details for its wallet",
)
def order_details(
    order_id: int,
    db: Annotated[Session, Depends(get_db)],
    wallet: Annotated[str | None, Query()] = None,
):
    """Full order view. Only the wallet that placed the order can see it."""
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order or not wallet or order.customer_wallet != wallet:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order_to_detail_response(order)
