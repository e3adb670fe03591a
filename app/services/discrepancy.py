"""Payment discrepancy detection and resolution.

Amounts are lamports. ``difference`` is always ``received - expected``, so
underpayments carry a negative difference.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from app.config import settings
from app.models import Order, Refund
from app.services.elurc import format_elurc
from app.services.exceptions import DiscrepancyError
from app.services.order_service import (
    CHANGED_BY_ADMIN,
    CHANGED_BY_SYSTEM,
    PAYMENT_UNDERPAYMENT,
    RESOLUTION_PENDING_REVIEW,
    append_admin_note,
    change_status,
    get_order,
    has_open_underpayment,
)
from app.services.order_status import OrderStatus

logger = logging.getLogger(__name__)

PAYMENT_EXACT = "exact"
PAYMENT_OVERPAYMENT = "overpayment"

RESOLUTION_REFUND_PENDING = "refund_pending"
RESOLUTION_MANUALLY_APPROVED = "manually_approved"
RESOLUTION_REFUND_COMPLETED = "refund_completed"


@dataclass(frozen=True)
class PaymentClassification:
    kind: str
    expected: int
    received: int
    difference: int

    @property
    def has_discrepancy(self) -> bool:
        return self.kind != PAYMENT_EXACT


def classify_payment(expected: int, received: int, tolerance: int | None = None) -> PaymentClassification:
    if tolerance is None:
        tolerance = settings.PAYMENT_TOLERANCE_LAMPORTS
    difference = received - expected
    if abs(difference) <= tolerance:
        kind = PAYMENT_EXACT
    elif difference > 0:
        kind = PAYMENT_OVERPAYMENT
    else:
        kind = PAYMENT_UNDERPAYMENT
    return PaymentClassification(kind=kind, expected=expected, received=received, difference=difference)


def record_payment(
    order: Order,
    transaction_signature: str,
    received_amount: int,
    paid_at: datetime,
) -> PaymentClassification:
    """Attach a confirmed transfer to a pending order. Does not commit.

    Exact and overpaid transfers move the order to paid. Underpaid transfers
    leave it pending and open a review.
    """
    if order.status != OrderStatus.PENDING.value:
        raise DiscrepancyError(f"Order {order.order_number} is {order.status}, expected pending")

    result = classify_payment(order.amount_elurc, received_amount)
    order.transaction_signature = transaction_signature
    order.received_amount_elurc = received_amount
    order.paid_at = paid_at

    if result.has_discrepancy:
        order.has_discrepancy = True
        order.discrepancy_type = result.kind
        order.discrepancy_expected_amount = result.expected
        order.discrepancy_received_amount = result.received
        order.discrepancy_difference_amount = result.difference
        logger.warning(
            "Payment %s for order %s: expected=%s received=%s difference=%s",
            result.kind,
            order.order_number,
            result.expected,
            result.received,
            result.difference,
        )

    if result.kind == PAYMENT_UNDERPAYMENT:
        order.discrepancy_resolution = RESOLUTION_PENDING_REVIEW
        order.discrepancy_resolution_notes = (
            f"Underpaid by {format_elurc(abs(result.difference))} ELURC, awaiting admin review"
        )
        append_admin_note(
            order,
            f"Underpayment detected: received {format_elurc(received_amount)} of "
            f"{format_elurc(order.amount_elurc)} ELURC. Transaction: {transaction_signature}",
            timestamped=True,
        )
        return result

    if result.kind == PAYMENT_OVERPAYMENT:
        order.discrepancy_resolution = RESOLUTION_REFUND_PENDING
        order.discrepancy_resolution_notes = (
            f"Overpaid by {format_elurc(result.difference)} ELURC, refund pending"
        )
        change_status(order, OrderStatus.PAID.value, CHANGED_BY_SYSTEM, reason="Overpayment received")
    else:
        change_status(order, OrderStatus.PAID.value, CHANGED_BY_SYSTEM, reason="Payment confirmed")
    return result


def approve_underpayment(
    db: Session,
    order_id: int,
    approval_reason: str,
    waive_amount: bool = False,
) -> tuple[Order, int]:
    """Accept an underpaid order as paid. Returns the order and the shortage in lamports."""
    if not approval_reason or not approval_reason.strip():
        raise DiscrepancyError("Approval reason is required")
    try:
        order = get_order(db, order_id, for_update=True)
        if not order.has_discrepancy or order.discrepancy_type != PAYMENT_UNDERPAYMENT:
            raise DiscrepancyError("Order does not have an underpayment")
        if order.status != OrderStatus.PENDING.value or order.discrepancy_resolution != RESOLUTION_PENDING_REVIEW:
            raise DiscrepancyError("Order underpayment is not awaiting review")

        shortage = abs(order.discrepancy_difference_amount or 0)
        if waive_amount:
            note = f"Manually approved with {format_elurc(shortage)} ELURC waived. Reason: {approval_reason}"
        else:
            note = f"Manually approved. Reason: {approval_reason}"

        change_status(order, OrderStatus.PAID.value, CHANGED_BY_ADMIN, reason=approval_reason)
        order.discrepancy_resolution = RESOLUTION_MANUALLY_APPROVED
        order.discrepancy_resolution_notes = note
        append_admin_note(order, note, timestamped=True)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(order)
    logger.info("Underpayment for order %s approved: %s", order.order_number, note)
    return order, shortage


def mark_refund_completed(order: Order, refund: Refund) -> None:
    """Close an overpayment once its refund transfer is confirmed. Does not commit."""
    if order.discrepancy_type != PAYMENT_OVERPAYMENT:
        return
    order.discrepancy_resolution = RESOLUTION_REFUND_COMPLETED
    order.discrepancy_resolution_notes = (
        f"Refund of {format_elurc(refund.amount)} ELURC completed. "
        f"Transaction: {refund.transaction_signature}"
    )
