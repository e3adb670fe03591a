import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.models import Order
from app.services.order_status import is_terminal
from app.services.timeutils import as_utc, utcnow

PROCESSING_DAYS = 1
SHIPPING_DAYS_MIN = 2
SHIPPING_DAYS_MAX = 3


@dataclass(frozen=True)
class DeliveryEstimate:
    estimated_date: datetime
    delivery_window: str
    days_remaining: int


def calculate_delivery_estimate(order: Order, now: datetime | None = None) -> DeliveryEstimate | None:
    """Latest expected delivery date, counted from payment (or creation when unpaid)."""
    if is_terminal(order.status):
        return None
    now = as_utc(now) if now else utcnow()
    start = order.paid_at or order.created_at or now
    max_date = as_utc(start) + timedelta(days=PROCESSING_DAYS + SHIPPING_DAYS_MAX)
    seconds_left = (max_date - now).total_seconds()
    return DeliveryEstimate(
        estimated_date=max_date,
        delivery_window=f"{SHIPPING_DAYS_MIN}-{SHIPPING_DAYS_MAX} business days",
        days_remaining=max(0, math.ceil(seconds_left / 86400)),
    )
