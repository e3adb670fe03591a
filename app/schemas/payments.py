from datetime import datetime

from pydantic import BaseModel


class PaymentCheckResponse(BaseModel):
    status: str  # pending | confirmed | underpaid | timeout | error
    transaction_signature: str | None = None
    amount: int | None = None
    timestamp: datetime | None = None
    message: str | None = None


class WalletBalanceResponse(BaseModel):
    address: str
    balance: int
    balance_elurc: str
