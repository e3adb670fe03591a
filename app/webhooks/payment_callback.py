import hashlib
import hmac
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.config import settings
from app.models import get_db
from app.services.payment_service import PaymentReport, apply_payment_report
from app.services.solana_service import is_valid_transaction_signature, is_valid_wallet_address

router = APIRouter()
logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-elurc-signature"


def _verify_signature(raw_body: bytes, signature: str | None) -> None:
    """Validate HMAC SHA-256 signature when PAYMENT_WEBHOOK_SECRET is configured."""
    if not settings.PAYMENT_WEBHOOK_SECRET:
        logger.warning("PAYMENT_WEBHOOK_SECRET is not set, skipping webhook verification")
        return

    if not signature:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing webhook signature")

    expected = hmac.new(
        settings.PAYMENT_WEBHOOK_SECRET.encode("utf-8"),
        raw_body,
        hashlib.sha256,
    ).hexdigest()

    if not hmac.compare_digest(signature, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")


def _positive_int(body: dict, field: str, required: bool = True) -> int | None:
    value = body.get(field)
    if value is None:
        if required:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field} required")
        return None
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value)
    # Floats are rejected rather than truncated.
    if isinstance(value, bool) or not isinstance(value, int):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field} must be integer")
    if value <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field} must be positive")
    return value


def parse_payment_report(body: dict) -> PaymentReport:
    order_id = _positive_int(body, "order_id")
    amount = _positive_int(body, "amount_lamports")
    block_time = _positive_int(body, "block_time", required=False)

    signature = body.get("transaction_signature")
    if not isinstance(signature, str) or not is_valid_transaction_signature(signature):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid transaction_signature")

    sender = body.get("sender_wallet")
    if not isinstance(sender, str) or not is_valid_wallet_address(sender):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid sender_wallet")

    return PaymentReport(
        order_id=order_id,
        transaction_signature=signature.strip(),
        amount_lamports=amount,
        sender_wallet=sender.strip(),
        block_time=block_time,
    )


@router.post(
    "/payment",
    summary="Ledger payment confirmation",
)
async def payment_webhook(
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Called by the ledger verifier when an ELURC transfer to the shop wallet
    matches an order. Idempotent: a repeated transaction signature for the
    same order has no further effect.
    """
    raw_body = await request.body()
    _verify_signature(raw_body, request.headers.get(SIGNATURE_HEADER))

    try:
        body = json.loads(raw_body)
    except ValueError as e:
        logger.error(f"Invalid JSON in payment webhook: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")
    if not isinstance(body, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")

    report = parse_payment_report(body)
    applied = apply_payment_report(db, report)
    if not applied:
        logger.warning(
            "Payment %s for order %s was not applied",
            report.transaction_signature,
            report.order_id,
        )

    return {"received": True, "applied": applied}
