from datetime import datetime

from pydantic import BaseModel, Field


class RefundCreateRequest(BaseModel):
    order_id: int
    amount: int = Field(gt=0, description="Refund amount in lamports")
    wallet_address: str
    reason: str = Field(min_length=1)
    admin_notes: str | None = None


class RefundCompleteRequest(BaseModel):
    transaction_signature: str


class RefundFailRequest(BaseModel):
    error_message: str = Field(min_length=1)


class RefundResponse(BaseModel):
    id: int
    refund_number: str
    order_id: int
    status: str
    amount: int
    wallet_address: str
    reason: str | None = None
    transaction_signature: str | None = None
    processed_at: datetime | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    error_message: str | None = None
    processed_by_id: int | None = None
    admin_notes: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
