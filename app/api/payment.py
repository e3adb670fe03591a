from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.models import get_db
from app.schemas.payments import PaymentCheckResponse, WalletBalanceResponse
from app.services import payment_service
from app.services.elurc import format_elurc
from app.services.exceptions import WalletServiceError
from app.services.solana_service import get_elurc_balance, is_valid_wallet_address

router = APIRouter()
wallet_router = APIRouter()


@router.get(
    "/check",
    response_model=PaymentCheckResponse,
    summary="Check payment status of an order",
)
def check_payment(
    db: Annotated[Session, Depends(get_db)],
    order_id: Annotated[int | None, Query()] = None,
):
    """
    Poll target for checkout. Pending orders past the payment window are moved
    to timeout by this call.
    """
    if order_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="order_id is required")
    result = payment_service.check_payment_status(db, order_id)
    return PaymentCheckResponse(**result.as_dict())


@wallet_router.get(
    "/balance",
    response_model=WalletBalanceResponse,
    summary="ELURC balance of a wallet",
)
def wallet_balance(
    address: Annotated[str | None, Query()] = None,
):
    if not address or not is_valid_wallet_address(address):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid wallet address format")
    try:
        balance = get_elurc_balance(address.strip())
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    except WalletServiceError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return WalletBalanceResponse(address=address.strip(), balance=balance, balance_elurc=format_elurc(balance))
