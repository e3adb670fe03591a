import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from app.config import settings
from app.models import Order
from app.services import discrepancy, email_service
from app.services.order_service import CHANGED_BY_SYSTEM, change_status
from app.services.order_status import OrderStatus
from app.services.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)

CHECK_PENDING = "pending"
CHECK_CONFIRMED = "confirmed"
CHECK_UNDERPAID = "underpaid"
CHECK_TIMEOUT = "timeout"
CHECK_ERROR = "error"

_CONFIRMED_STATUSES = {OrderStatus.PAID.value, OrderStatus.PROCESSING.value, OrderStatus.FULFILLED.value}


@dataclass
class PaymentCheckResult:
    status: str
    transaction_signature: str | None = None
    amount: int | None = None
    timestamp: datetime | None = None
    message: str | None = None

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class PaymentReport:
    order_id: int
    transaction_signature: str
    amount_lamports: int
    sender_wallet: str
    block_time: int | None = None

    @property
    def paid_at(self) -> datetime:
        if self.block_time is None:
            return utcnow()
        return datetime.fromtimestamp(self.block_time, tz=timezone.utc)


def payment_deadline(order: Order) -> datetime:
    created = as_utc(order.created_at) if order.created_at else utcnow()
    return created + timedelta(minutes=settings.PAYMENT_TIMEOUT_MINUTES)


def is_payment_window_expired(order: Order, now: datetime | None = None) -> bool:
    return (now or utcnow()) > payment_deadline(order)


def _settled_result(order: Order) -> PaymentCheckResult | None:
    """Result for orders whose payment state no longer depends on the clock."""
    if order.status in _CONFIRMED_STATUSES:
        return PaymentCheckResult(
            status=CHECK_CONFIRMED,
            transaction_signature=order.transaction_signature,
            amount=order.received_amount_elurc or order.amount_elurc,
            timestamp=order.paid_at,
        )
    if order.status == OrderStatus.TIMEOUT.value:
        return PaymentCheckResult(status=CHECK_TIMEOUT, message="Payment window expired")
    if order.status == OrderStatus.CANCELLED.value:
        return PaymentCheckResult(status=CHECK_ERROR, message="Order was cancelled")
    if discrepancy.has_open_underpayment(order):
        return PaymentCheckResult(
            status=CHECK_UNDERPAID,
            transaction_signature=order.transaction_signature,
            amount=order.received_amount_elurc,
            timestamp=order.paid_at,
            message="Payment is below the order total and is under review",
        )
    return None


def check_payment_status(db: Session, order_id: int) -> PaymentCheckResult:
    """Report payment progress for an order, expiring stale pending orders."""
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        return PaymentCheckResult(status=CHECK_ERROR, message="Order not found")

    result = _settled_result(order)
    if result is not None:
        return result
    if not is_payment_window_expired(order):
        return PaymentCheckResult(status=CHECK_PENDING, message="Waiting for payment")

    try:
        # A payment report may have landed since the first read.
        db.refresh(order, with_for_update=True)
        result = _settled_result(order)
        if result is None:
            change_status(order, OrderStatus.TIMEOUT.value, CHANGED_BY_SYSTEM, reason="Payment window expired")
            result = PaymentCheckResult(status=CHECK_TIMEOUT, message="Payment window expired")
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Failed to expire order %s", order_id)
        return PaymentCheckResult(status=CHECK_ERROR, message="Failed to check payment status")
    return result


def apply_payment_report(db: Session, report: PaymentReport) -> bool:
    """Record a ledger-verified transfer against its order. Returns True if the order was updated
    or the report was already applied."""
    try:
        order = db.query(Order).filter(Order.id == report.order_id).with_for_update().first()
        if not order:
            logger.warning("Order %s not found", report.order_id)
            return False

        if order.transaction_signature == report.transaction_signature:
            logger.info("Payment %s already recorded for order %s, skipping", report.transaction_signature, order.id)
            return True

        reused = (
            db.query(Order.id)
            .filter(Order.transaction_signature == report.transaction_signature, Order.id != order.id)
            .first()
        )
        if reused:
            logger.warning(
                "Transaction %s already used by order %s, rejecting for order %s",
                report.transaction_signature,
                reused[0],
                order.id,
            )
            return False

        if report.sender_wallet != order.customer_wallet:
            logger.warning(
                "Sender mismatch for order %s: expected=%s, received=%s",
                order.id,
                order.customer_wallet,
                report.sender_wallet,
            )
            return False

        paid_at = report.paid_at
        if order.created_at is not None and paid_at < as_utc(order.created_at):
            logger.warning(
                "Transaction %s predates order %s (block time %s)",
                report.transaction_signature,
                order.id,
                paid_at.isoformat(),
            )
            return False

        if order.status != OrderStatus.PENDING.value or order.transaction_signature:
            logger.warning(
                "Order %s is %s, payment %s not applied",
                order.id,
                order.status,
                report.transaction_signature,
            )
            return False

        result = discrepancy.record_payment(order, report.transaction_signature, report.amount_lamports, paid_at)
        db.commit()
    except Exception as e:
        logger.error(f"Error processing payment for order {report.order_id}: {e}", exc_info=True)
        db.rollback()
        return False

    db.refresh(order)
    logger.info("Payment %s recorded for order %s as %s", report.transaction_signature, order.id, result.kind)
    _notify_payment(order, result.kind)
    return True


def _notify_payment(order: Order, kind: str) -> None:
    if kind == discrepancy.PAYMENT_UNDERPAYMENT:
        email_service.notify(email_service.send_customer_underpayment, order)
        email_service.notify(email_service.send_admin_payment_discrepancy, order)
        return
    email_service.notify(email_service.send_order_confirmation, order)
    if kind == discrepancy.PAYMENT_OVERPAYMENT:
        email_service.notify(email_service.send_customer_overpayment, order)
        email_service.notify(email_service.send_admin_payment_discrepancy, order)
