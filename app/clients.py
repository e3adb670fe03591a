import logging
import time
from typing import Any, Callable

import httpx

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str, str | None], None]

ORDER_TERMINAL_STATUSES = {"fulfilled", "cancelled", "timeout"}
PAYMENT_TERMINAL_STATUSES = {"confirmed", "timeout", "error"}


class OrderStatusPoller:
    """Polls the API for order or payment status until it settles.

    ``on_status_change(new, old)`` fires whenever the reported status differs
    from the previous poll, including the first successful poll (``old`` is
    None). Transport and HTTP errors are logged and polling continues until
    ``max_attempts`` is reached.
    """

    def __init__(
        self,
        base_url: str,
        order_id: int,
        on_status_change: StatusCallback | None = None,
        status_interval: float = 30.0,
        payment_interval: float = 5.0,
        max_attempts: int = 120,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.order_id = order_id
        self.on_status_change = on_status_change
        self.status_interval = status_interval
        self.payment_interval = payment_interval
        self.max_attempts = max_attempts
        self._client = client or httpx.Client(timeout=10.0)
        self._sleep = sleep
        self.last_status: str | None = None
        self.last_response: dict[str, Any] | None = None

    def fetch_order_status(self) -> dict[str, Any]:
        response = self._client.get(f"{self.base_url}/api/orders/{self.order_id}/status")
        response.raise_for_status()
        return response.json()

    def fetch_payment_status(self) -> dict[str, Any]:
        response = self._client.get(
            f"{self.base_url}/api/payment/check",
            params={"order_id": self.order_id},
        )
        response.raise_for_status()
        return response.json()

    def poll_order_status(self) -> str | None:
        """Poll ``/api/orders/{id}/status`` until the order reaches a terminal status."""
        return self._poll(self.fetch_order_status, ORDER_TERMINAL_STATUSES, self.status_interval)

    def poll_payment(self) -> str | None:
        """Poll ``/api/payment/check`` until the payment is confirmed, times out or errors."""
        return self._poll(self.fetch_payment_status, PAYMENT_TERMINAL_STATUSES, self.payment_interval)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "OrderStatusPoller":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _poll(
        self,
        fetch: Callable[[], dict[str, Any]],
        terminal: set[str],
        interval: float,
    ) -> str | None:
        for attempt in range(1, self.max_attempts + 1):
            try:
                data = fetch()
            except httpx.HTTPError as e:
                logger.warning("Status poll %s for order %s failed: %s", attempt, self.order_id, e)
            else:
                self.last_response = data
                self._update(data.get("status"))
                if self.last_status in terminal:
                    return self.last_status
            if attempt < self.max_attempts:
                self._sleep(interval)
        logger.info("Stopped polling order %s after %s attempts", self.order_id, self.max_attempts)
        return self.last_status

    def _update(self, new_status: str | None) -> None:
        if new_status is None or new_status == self.last_status:
            return
        previous = self.last_status
        self.last_status = new_status
        logger.info("Order %s status: %s -> %s", self.order_id, previous, new_status)
        if self.on_status_change:
            self.on_status_change(new_status, previous)
