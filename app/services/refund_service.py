"""Refund records for overpaid or cancelled orders.

The token transfer itself is sent from the shop wallet outside this service;
an admin reports its signature to complete the refund.
"""

import logging
import secrets
import string
import time

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import settings
from app.models import Order, Refund, User
from app.services import discrepancy, email_service
from app.services.exceptions import RefundNotFoundError, RefundValidationError
from app.services.order_service import append_admin_note, get_order
from app.services.solana_service import is_valid_transaction_signature, is_valid_wallet_address
from app.services.timeutils import utcnow

logger = logging.getLogger(__name__)

REFUND_PENDING = "pending"
REFUND_PROCESSING = "processing"
REFUND_COMPLETED = "completed"
REFUND_FAILED = "failed"

# Refunds that count against the refundable amount of an order.
_COMMITTED_STATUSES = (REFUND_PROCESSING, REFUND_COMPLETED)

_REFUND_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
HISTORY_LIMIT = 100


def generate_refund_number() -> str:
    suffix = "".join(secrets.choice(_REFUND_SUFFIX_ALPHABET) for _ in range(7))
    return f"REF-{int(time.time() * 1000)}-{suffix}"


def validate_refund_amount(order_amount: int, refund_amount: int, previous_refunds: int = 0) -> None:
    minimum = settings.MIN_REFUND_LAMPORTS
    if refund_amount < minimum:
        raise RefundValidationError(f"Refund amount must be at least {minimum} lamports")
    total = previous_refunds + refund_amount
    if total > order_amount:
        raise RefundValidationError(f"Total refund amount ({total}) exceeds order amount ({order_amount})")


def refunded_total(db: Session, order_id: int) -> int:
    total = (
        db.query(func.coalesce(func.sum(Refund.amount), 0))
        .filter(Refund.order_id == order_id, Refund.status.in_(_COMMITTED_STATUSES))
        .scalar()
    )
    return int(total or 0)


def create_refund(
    db: Session,
    order_id: int,
    amount: int,
    wallet_address: str,
    reason: str,
    processed_by: User | None = None,
    admin_notes: str | None = None,
    ip_address: str | None = None,
) -> Refund:
    if not reason or not reason.strip():
        raise RefundValidationError("Refund reason is required")
    if not is_valid_wallet_address(wallet_address):
        raise RefundValidationError("Invalid wallet address format")

    try:
        order = get_order(db, order_id, for_update=True)
        validate_refund_amount(order.amount_elurc, amount, refunded_total(db, order.id))

        now = utcnow()
        refund = Refund(
            refund_number=generate_refund_number(),
            order_id=order.id,
            status=REFUND_PROCESSING,
            amount=amount,
            wallet_address=wallet_address.strip(),
            reason=reason,
            processed_at=now,
            processed_by_id=processed_by.id if processed_by else None,
            admin_notes=admin_notes,
            ip_address=ip_address,
        )
        db.add(refund)
        order.refund_amount = amount
        order.refund_wallet = refund.wallet_address
        order.refund_reason = reason
        order.refund_initiated_at = now
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(refund)
    logger.info(
        "Refund %s of %s lamports initiated for order %s to %s",
        refund.refund_number,
        amount,
        order.order_number,
        refund.wallet_address,
    )
    return refund


def _get_refund(db: Session, refund_id: int) -> Refund:
    refund = db.query(Refund).filter(Refund.id == refund_id).with_for_update().first()
    if not refund:
        raise RefundNotFoundError("Refund not found")
    return refund


def complete_refund(db: Session, refund_id: int, transaction_signature: str) -> Refund:
    """Record the transfer that paid out a refund and close the order's overpayment."""
    if not is_valid_transaction_signature(transaction_signature):
        raise RefundValidationError("Invalid transaction signature format")
    try:
        refund = _get_refund(db, refund_id)
        if refund.status != REFUND_PROCESSING:
            raise RefundValidationError(f"Refund is {refund.status}, expected {REFUND_PROCESSING}")

        now = utcnow()
        refund.status = REFUND_COMPLETED
        refund.transaction_signature = transaction_signature
        refund.completed_at = now

        order: Order = refund.order
        order.refund_amount = refund.amount
        order.refund_wallet = refund.wallet_address
        order.refund_transaction_signature = transaction_signature
        order.refund_completed_at = now
        order.refund_reason = refund.reason
        discrepancy.mark_refund_completed(order, refund)
        append_admin_note(
            order,
            f"Refund {refund.refund_number} completed. Transaction: {transaction_signature}",
            timestamped=True,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(refund)
    logger.info("Refund %s completed with transaction %s", refund.refund_number, transaction_signature)
    email_service.notify(email_service.send_refund_notification, refund.order, refund)
    return refund


def fail_refund(db: Session, refund_id: int, error_message: str) -> Refund:
    if not error_message or not error_message.strip():
        raise RefundValidationError("Error message is required")
    try:
        refund = _get_refund(db, refund_id)
        if refund.status not in (REFUND_PENDING, REFUND_PROCESSING):
            raise RefundValidationError(f"Refund is already {refund.status}")
        refund.status = REFUND_FAILED
        refund.error_message = error_message
        refund.failed_at = utcnow()
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(refund)
    logger.warning("Refund %s failed: %s", refund.refund_number, error_message)
    return refund


def list_refunds(db: Session, order_id: int | None = None) -> list[Refund]:
    query = db.query(Refund)
    if order_id is not None:
        query = query.filter(Refund.order_id == order_id)
    return query.order_by(Refund.created_at.desc(), Refund.id.desc()).limit(HISTORY_LIMIT).all()
