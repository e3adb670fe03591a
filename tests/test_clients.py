import httpx

from app.clients import OrderStatusPoller


def _poller(responses: list, **kwargs) -> tuple[OrderStatusPoller, list[httpx.Request], list[float]]:
    requests: list[httpx.Request] = []
    sleeps: list[float] = []
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, httpx.Response):
            return item
        return httpx.Response(200, json=item)

    poller = OrderStatusPoller(
        "http://shop.test/",
        order_id=42,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=sleeps.append,
        **kwargs,
    )
    return poller, requests, sleeps


def test_poll_payment_until_confirmed():
    changes = []
    poller, requests, sleeps = _poller(
        [{"status": "pending"}, {"status": "pending"}, {"status": "confirmed", "transaction_signature": "sig"}],
        on_status_change=lambda new, old: changes.append((new, old)),
    )

    result = poller.poll_payment()

    assert result == "confirmed"
    assert changes == [("pending", None), ("confirmed", "pending")]
    assert sleeps == [5.0, 5.0]
    assert str(requests[0].url) == "http://shop.test/api/payment/check?order_id=42"
    assert poller.last_response["transaction_signature"] == "sig"


def test_poll_order_status_stops_on_terminal_status():
    poller, requests, sleeps = _poller(
        [{"status": "paid"}, {"status": "processing"}, {"status": "fulfilled"}],
        status_interval=1.5,
    )

    assert poller.poll_order_status() == "fulfilled"
    assert requests[0].url.path == "/api/orders/42/status"
    assert sleeps == [1.5, 1.5]


def test_poll_survives_transport_and_http_errors():
    changes = []
    poller, requests, _ = _poller(
        [httpx.ConnectError("refused"), httpx.Response(500), {"status": "timeout"}],
        on_status_change=lambda new, old: changes.append((new, old)),
    )

    assert poller.poll_payment() == "timeout"
    assert len(requests) == 3
    assert changes == [("timeout", None)]


def test_poll_gives_up_after_max_attempts():
    poller, requests, sleeps = _poller([{"status": "pending"}] * 3, max_attempts=3)

    assert poller.poll_payment() == "pending"
    assert len(requests) == 3
    assert len(sleeps) == 2


def test_poller_closes_client():
    poller, _, _ = _poller([])
    with poller:
        pass
    assert poller._client.is_closed


def test_poll_payment_stops_on_error_status():
    changes = []
    poller, requests, sleeps = _poller(
        [{"status": "error", "message": "Order was cancelled"}],
        on_status_change=lambda new, old: changes.append((new, old)),
    )

    assert poller.poll_payment() == "error"
    assert len(requests) == 1
    assert sleeps == []
    assert changes == [("error", None)]
    assert poller.last_response["message"] == "Order was cancelled"
