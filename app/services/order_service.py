import logging
import secrets
import time
from dataclasses import dataclass

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.models import Order, OrderItem, OrderStatusHistory, Product
from app.services import inventory
from app.services.exceptions import (
    DiscrepancyError,
    InsufficientStockError,
    InvalidStatusTransition,
    OrderError,
    OrderNotFoundError,
    ProductNotFoundError,
)
from app.services.order_status import OrderStatus, ensure_transition
from app.services.timeutils import utcnow

logger = logging.getLogger(__name__)

CHANGED_BY_SYSTEM = "system"
CHANGED_BY_ADMIN = "admin"

PAYMENT_UNDERPAYMENT = "underpayment"
RESOLUTION_PENDING_REVIEW = "pending_review"

# Statuses that need side effects and therefore have their own operations.
_DEDICATED_STATUSES = {OrderStatus.FULFILLED, OrderStatus.CANCELLED}


@dataclass(frozen=True)
class OrderLine:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class ShippingAddress:
    full_name: str
    street_address: str
    city: str
    postal_code: str
    phone_number: str


def generate_order_number() -> str:
    return f"ORD-{int(time.time() * 1000)}-{secrets.token_hex(2).upper()}"


def _record_status(order: Order, status: str, changed_by: str, reason: str | None = None) -> None:
    order.status_history.append(
        OrderStatusHistory(
            status=status,
            changed_by=changed_by,
            reason=reason,
            timestamp=utcnow(),
        )
    )


def has_open_underpayment(order: Order) -> bool:
    return (
        bool(order.has_discrepancy)
        and order.discrepancy_type == PAYMENT_UNDERPAYMENT
        and order.discrepancy_resolution == RESOLUTION_PENDING_REVIEW
    )


def append_admin_note(order: Order, note: str, timestamped: bool = False) -> None:
    entry = f"[{utcnow().isoformat()}] {note}" if timestamped else note
    order.admin_notes = f"{order.admin_notes}\n\n{entry}" if order.admin_notes else entry


def change_status(order: Order, requested: str, changed_by: str, reason: str | None = None) -> Order:
    """Apply a guarded status change and record it in the status history. Does not commit."""
    previous = order.status
    new_status = ensure_transition(previous, requested)
    order.status = new_status.value
    if new_status == OrderStatus.FULFILLED and order.fulfilled_at is None:
        order.fulfilled_at = utcnow()
    _record_status(order, new_status.value, changed_by, reason)
    logger.info(
        "Order %s status changed %s -> %s by %s",
        order.order_number,
        previous,
        new_status.value,
        changed_by,
    )
    return order


def create_order(
    db: Session,
    lines: list[OrderLine],
    customer_wallet: str,
    customer_email: str,
    shipping: ShippingAddress,
) -> Order:
    """Create a pending order, snapshotting current product prices."""
    if not lines:
        raise OrderError("Order must contain at least one item")

    quantities: dict[int, int] = {}
    for line in lines:
        if line.quantity < 1:
            raise OrderError("Item quantity must be at least 1")
        quantities[line.product_id] = quantities.get(line.product_id, 0) + line.quantity

    products = {
        product.id: product
        for product in db.query(Product).filter(Product.id.in_(list(quantities))).all()
    }

    order = Order(
        order_number=generate_order_number(),
        status=OrderStatus.PENDING.value,
        customer_wallet=customer_wallet,
        customer_email=customer_email,
        shipping_full_name=shipping.full_name,
        shipping_street_address=shipping.street_address,
        shipping_city=shipping.city,
        shipping_postal_code=shipping.postal_code,
        shipping_phone_number=shipping.phone_number,
        amount_elurc=0,
        amount_eur=0,
    )

    total_elurc = 0
    total_eur = 0
    for product_id, quantity in quantities.items():
        product = products.get(product_id)
        if product is None:
            raise ProductNotFoundError(f"Product {product_id} not found")
        if product.stock < quantity:
            raise InsufficientStockError(product.name, product.stock, quantity)
        order.items.append(
            OrderItem(
                product_id=product.id,
                quantity=quantity,
                price_snapshot_elurc=product.price_elurc,
                price_snapshot_eur=product.price_eur,
            )
        )
        total_elurc += product.price_elurc * quantity
        total_eur += product.price_eur * quantity

    order.amount_elurc = total_elurc
    order.amount_eur = total_eur
    _record_status(order, OrderStatus.PENDING.value, CHANGED_BY_SYSTEM)

    db.add(order)
    db.commit()
    db.refresh(order)
    logger.info(
        "Order %s created for wallet %s: %s lamports, %s item(s)",
        order.order_number,
        customer_wallet,
        total_elurc,
        len(order.items),
    )
    return order


def get_order(db: Session, order_id: int, for_update: bool = False) -> Order:
    query = db.query(Order).filter(Order.id == order_id)
    if for_update:
        query = query.with_for_update()
    order = query.first()
    if not order:
        raise OrderNotFoundError("Order not found")
    return order


def get_order_by_number(db: Session, order_number: str) -> Order:
    order = db.query(Order).filter(Order.order_number == order_number).first()
    if not order:
        raise OrderNotFoundError("Order not found")
    return order


def list_orders_for_wallet(db: Session, wallet: str) -> list[Order]:
    return (
        db.query(Order)
        .filter(Order.customer_wallet == wallet)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def list_orders(
    db: Session,
    status: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Order], int]:
    query = db.query(Order)
    if status:
        query = query.filter(Order.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Order.order_number.ilike(pattern),
                Order.customer_email.ilike(pattern),
                Order.customer_wallet.ilike(pattern),
                Order.transaction_signature.ilike(pattern),
            )
        )
    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return orders, total


def order_stats(db: Session) -> dict:
    counts = {status.value: 0 for status in OrderStatus}
    for status, count in db.query(Order.status, func.count(Order.id)).group_by(Order.status).all():
        counts[status] = count

    revenue_statuses = [OrderStatus.PAID.value, OrderStatus.PROCESSING.value, OrderStatus.FULFILLED.value]
    revenue = (
        db.query(func.coalesce(func.sum(Order.amount_elurc), 0))
        .filter(Order.status.in_(revenue_statuses))
        .scalar()
    )
    open_discrepancies = (
        db.query(func.count(Order.id))
        .filter(
            Order.has_discrepancy.is_(True),
            Order.discrepancy_resolution.in_(["pending_review", "refund_pending"]),
        )
        .scalar()
    )
    return {
        "total": sum(counts.values()),
        "by_status": counts,
        "revenue_elurc": int(revenue or 0),
        "open_discrepancies": int(open_discrepancies or 0),
    }


def fulfill_order(
    db: Session,
    order_id: int,
    tracking_number: str | None = None,
    notes: str | None = None,
) -> Order:
    """Mark a paid order shipped and decrement stock for every item in one transaction."""
    try:
        order = get_order(db, order_id, for_update=True)
        if order.status == OrderStatus.FULFILLED.value:
            raise InvalidStatusTransition(order.status, OrderStatus.FULFILLED.value, "Order is already fulfilled")
        if order.status not in (OrderStatus.PAID.value, OrderStatus.PROCESSING.value):
            raise InvalidStatusTransition(
                order.status,
                OrderStatus.FULFILLED.value,
                "Order must be paid before fulfillment",
            )

        inventory.decrement_for_fulfillment(db, order)
        change_status(order, OrderStatus.FULFILLED.value, CHANGED_BY_ADMIN, reason=notes)
        order.fulfilled_at = utcnow()
        if tracking_number:
            order.tracking_number = tracking_number
        if notes:
            append_admin_note(order, f"Fulfillment: {notes}")
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(order)
    return order


def cancel_order(
    db: Session,
    order_id: int,
    reason: str,
    restore_inventory: bool = True,
) -> tuple[Order, bool]:
    """Cancel an order. Stock is restored only for orders that were processing."""
    if not reason or not reason.strip():
        raise OrderError("Cancellation reason is required")
    try:
        order = get_order(db, order_id, for_update=True)
        if order.status == OrderStatus.CANCELLED.value:
            raise InvalidStatusTransition(order.status, OrderStatus.CANCELLED.value, "Order is already cancelled")
        if order.status == OrderStatus.FULFILLED.value:
            raise InvalidStatusTransition(order.status, OrderStatus.CANCELLED.value, "Cannot cancel a fulfilled order")

        inventory_restored = restore_inventory and order.status == OrderStatus.PROCESSING.value
        if inventory_restored:
            inventory.restore_for_cancellation(db, order)
        change_status(order, OrderStatus.CANCELLED.value, CHANGED_BY_ADMIN, reason=reason)
        append_admin_note(order, f"Cancelled: {reason}")
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(order)
    return order, inventory_restored


def update_status(db: Session, order_id: int, requested: str, reason: str | None = None) -> Order:
    """Admin status change for transitions without side effects (e.g. paid -> processing)."""
    try:
        requested_status = OrderStatus(requested)
    except ValueError:
        raise InvalidStatusTransition("?", requested, f"Unknown order status: {requested}")
    if requested_status in _DEDICATED_STATUSES:
        raise InvalidStatusTransition(
            "?",
            requested,
            f"Use the {'fulfill' if requested_status == OrderStatus.FULFILLED else 'cancel'} action for this status",
        )
    try:
        order = get_order(db, order_id, for_update=True)
        if requested_status == OrderStatus.PAID and has_open_underpayment(order):
            raise DiscrepancyError("Use the approve-underpayment action for this order")
        change_status(order, requested_status.value, CHANGED_BY_ADMIN, reason=reason)
        if requested_status == OrderStatus.PAID and order.paid_at is None:
            order.paid_at = utcnow()
        if reason:
            append_admin_note(order, f"Status changed to {requested_status.value}: {reason}", timestamped=True)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(order)
    return order
