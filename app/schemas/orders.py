from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class OrderItemRequest(BaseModel):
    product_id: int
    quantity: int = Field(ge=1)


class ShippingAddressSchema(BaseModel):
    full_name: str = Field(min_length=1, max_length=255)
    street_address: str = Field(min_length=1, max_length=255)
    city: str = Field(min_length=1, max_length=128)
    postal_code: str = Field(min_length=1, max_length=32)
    phone_number: str = Field(min_length=1, max_length=64)


class OrderCreateRequest(BaseModel):
    items: list[OrderItemRequest] = Field(min_length=1)
    customer_wallet: str
    customer_email: EmailStr
    shipping_address: ShippingAddressSchema

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [{"product_id": 1, "quantity": 2}],
                    "customer_wallet": "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU",
                    "customer_email": "buyer@example.com",
                    "shipping_address": {
                        "full_name": "Jane Doe",
                        "street_address": "1 Market Street",
                        "city": "Tallinn",
                        "postal_code": "10111",
                        "phone_number": "+3725550000",
                    },
                }
            ]
        }
    }


class OrderCreateResponse(BaseModel):
    order_id: int
    order_number: str
    status: str
    amount_elurc: int
    amount_eur: int
    shop_wallet: str | None = None
    payment_uri: str | None = None
    payment_deadline: datetime


class OrderSummaryResponse(BaseModel):
    id: int
    order_number: str
    status: str
    amount_elurc: int
    amount_eur: int
    item_count: int
    created_at: datetime | None = None
    paid_at: datetime | None = None


class AdminOrderSummaryResponse(OrderSummaryResponse):
    customer_email: str
    customer_wallet: str
    has_discrepancy: bool


class OrderListResponse(BaseModel):
    orders: list[AdminOrderSummaryResponse]
    total: int
    page: int
    limit: int
    pages: int


class OrderItemResponse(BaseModel):
    product_id: int
    product_name: str | None = None
    quantity: int
    price_snapshot_elurc: int
    price_snapshot_eur: int


class StatusHistoryResponse(BaseModel):
    status: str
    changed_by: str
    reason: str | None = None
    timestamp: datetime

    model_config = {"from_attributes": True}


class PaymentDiscrepancyResponse(BaseModel):
    has_discrepancy: bool
    type: str | None = None
    expected_amount: int | None = None
    received_amount: int | None = None
    difference_amount: int | None = None
    resolution: str | None = None
    resolution_notes: str | None = None


class RefundInfoResponse(BaseModel):
    refund_amount: int | None = None
    refund_wallet: str | None = None
    refund_transaction_signature: str | None = None
    refund_initiated_at: datetime | None = None
    refund_completed_at: datetime | None = None
    refund_reason: str | None = None


class OrderDetailResponse(BaseModel):
    id: int
    order_number: str
    status: str
    status_label: str
    amount_elurc: int
    amount_eur: int
    customer_wallet: str
    customer_email: str
    shipping_address: ShippingAddressSchema
    items: list[OrderItemResponse]
    transaction_signature: str | None = None
    received_amount_elurc: int | None = None
    paid_at: datetime | None = None
    fulfilled_at: datetime | None = None
    tracking_number: str | None = None
    payment_discrepancy: PaymentDiscrepancyResponse | None = None
    refund_info: RefundInfoResponse | None = None
    status_history: list[StatusHistoryResponse]
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AdminOrderDetailResponse(OrderDetailResponse):
    admin_notes: str | None = None


class DeliveryEstimateResponse(BaseModel):
    estimated_date: datetime
    delivery_window: str
    days_remaining: int


class OrderStatusResponse(BaseModel):
    order_id: int
    status: str
    status_label: str
    status_updated_at: datetime | None = None
    next_expected_status: str | None = None
    estimated_delivery: DeliveryEstimateResponse | None = None


class OrderStatsResponse(BaseModel):
    total: int
    by_status: dict[str, int]
    revenue_elurc: int
    open_discrepancies: int


class StatusUpdateRequest(BaseModel):
    status: str
    reason: str | None = None


class FulfillRequest(BaseModel):
    tracking_number: str | None = Field(default=None, max_length=128)
    notes: str | None = None


class CancelRequest(BaseModel):
    reason: str = Field(min_length=1)
    restore_inventory: bool = True


class CancelResponse(BaseModel):
    order: AdminOrderDetailResponse
    inventory_restored: bool


class ApproveUnderpaymentRequest(BaseModel):
    approval_reason: str = Field(min_length=1)
    waive_amount: bool = False


class ApproveUnderpaymentResponse(BaseModel):
    order: AdminOrderDetailResponse
    waived_amount: int
