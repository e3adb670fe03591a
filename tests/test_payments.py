import hashlib
import hmac
import json
import time
from datetime import timedelta
from unittest.mock import patch

from fastapi import status
from sqlalchemy import text

from app.services.exceptions import WalletServiceError
from app.services.timeutils import as_utc, utcnow
from tests.factories import CUSTOMER_WALLET, OTHER_WALLET, SIGNATURE_A, SIGNATURE_B

WEBHOOK_SECRET = "test-webhook-secret"


def _sign(raw: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode("utf-8"), raw, hashlib.sha256).hexdigest()


def _report(order_id: int, amount: int, signature: str = SIGNATURE_A, sender: str = CUSTOMER_WALLET, **extra) -> dict:
    return {
        "order_id": order_id,
        "transaction_signature": signature,
        "amount_lamports": amount,
        "sender_wallet": sender,
        **extra,
    }


def _post_webhook(client, payload, signature: str | None = None):
    raw = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    headers = {"content-type": "application/json"}
    headers["x-elurc-signature"] = signature if signature is not None else _sign(raw)
    return client.post("/webhooks/payment", content=raw, headers=headers)


def test_webhook_exact_payment_marks_order_paid(client, db, product, order_factory, mock_send_email):
    order = order_factory([(product, 2)])

    response = _post_webhook(client, _report(order.id, 5_000_000))

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"received": True, "applied": True}
    db.refresh(order)
    assert order.status == "paid"
    assert order.transaction_signature == SIGNATURE_A
    assert order.received_amount_elurc == 5_000_000
    assert order.paid_at is not None
    assert order.has_discrepancy is False
    mock_send_email.assert_called_once()
    assert "Confirmed" in mock_send_email.call_args.kwargs["subject"]


def test_webhook_payment_within_tolerance_is_exact(client, db, product, order_factory):
    order = order_factory([(product, 2)])

    _post_webhook(client, _report(order.id, 4_999_500))

    db.refresh(order)
    assert order.status == "paid"
    assert order.has_discrepancy is False


def test_webhook_overpayment(client, db, product, order_factory, mock_send_email):
    order = order_factory([(product, 2)])

    response = _post_webhook(client, _report(order.id, 5_500_000))

    assert response.json()["applied"] is True
    db.refresh(order)
    assert order.status == "paid"
    assert order.discrepancy_type == "overpayment"
    assert order.discrepancy_difference_amount == 500_000
    assert order.discrepancy_resolution == "refund_pending"
    recipients = [call.kwargs["to_email"] for call in mock_send_email.call_args_list]
    assert recipients == ["buyer@example.com", "buyer@example.com", "ops@example.com"]


def test_webhook_underpayment_keeps_order_pending(client, db, product, order_factory, mock_send_email):
    order = order_factory([(product, 2)])

    response = _post_webhook(client, _report(order.id, 4_000_000))

    assert response.json()["applied"] is True
    db.refresh(order)
    assert order.status == "pending"
    assert order.transaction_signature == SIGNATURE_A
    assert order.discrepancy_type == "underpayment"
    assert order.discrepancy_resolution == "pending_review"
    subjects = [call.kwargs["subject"] for call in mock_send_email.call_args_list]
    assert subjects[0].startswith("Payment review needed")
    assert subjects[1].startswith("[Action required] Underpayment Detected")


def test_webhook_is_idempotent(client, db, product, order_factory, mock_send_email):
    order = order_factory([(product, 2)])
    payload = _report(order.id, 5_000_000)

    first = _post_webhook(client, payload)
    second = _post_webhook(client, payload)

    assert first.json()["applied"] is True
    assert second.json()["applied"] is True
    db.refresh(order)
    assert [entry.status for entry in order.status_history] == ["pending", "paid"]
    assert mock_send_email.call_count == 1


def test_webhook_rejects_sender_mismatch(client, db, product, order_factory):
    order = order_factory([(product, 2)])

    response = _post_webhook(client, _report(order.id, 5_000_000, sender=OTHER_WALLET))

    assert response.json() == {"received": True, "applied": False}
    db.refresh(order)
    assert order.status == "pending"
    assert order.transaction_signature is None


def test_webhook_rejects_transaction_older_than_order(client, db, product, order_factory):
    order = order_factory([(product, 2)])

    response = _post_webhook(client, _report(order.id, 5_000_000, block_time=int(time.time()) - 3600))

    assert response.json()["applied"] is False
    db.refresh(order)
    assert order.status == "pending"


def test_webhook_accepts_block_time_after_creation(client, db, product, order_factory):
    order = order_factory([(product, 2)])
    block_time = int(time.time()) + 60

    _post_webhook(client, _report(order.id, 5_000_000, block_time=block_time))

    db.refresh(order)
    assert order.status == "paid"
    assert as_utc(order.paid_at).timestamp() == block_time


def test_webhook_rejects_signature_used_by_another_order(client, db, product, order_factory):
    first = order_factory([(product, 2)])
    second = order_factory([(product, 2)])
    _post_webhook(client, _report(first.id, 5_000_000))

    response = _post_webhook(client, _report(second.id, 5_000_000))

    assert response.json()["applied"] is False
    db.refresh(second)
    assert second.status == "pending"
    assert second.transaction_signature is None


def test_webhook_ignores_orders_that_are_not_pending(client, db, product, order_factory):
    order = order_factory([(product, 2)], status="cancelled")

    response = _post_webhook(client, _report(order.id, 5_000_000))

    assert response.json()["applied"] is False
    db.refresh(order)
    assert order.status == "cancelled"
    assert order.transaction_signature is None
    assert order.admin_notes is None


def test_webhook_second_payment_for_underpaid_order_is_not_applied(client, db, product, order_factory):
    order = order_factory([(product, 2)])
    _post_webhook(client, _report(order.id, 4_000_000))

    response = _post_webhook(client, _report(order.id, 1_000_000, signature=SIGNATURE_B))

    assert response.json()["applied"] is False
    db.refresh(order)
    assert order.transaction_signature == SIGNATURE_A
    assert order.received_amount_elurc == 4_000_000


def test_webhook_unknown_order(client):
    response = _post_webhook(client, _report(999, 5_000_000))
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["applied"] is False


def test_webhook_requires_signature(client, product, order_factory):
    order = order_factory([(product, 2)])

    response = client.post("/webhooks/payment", json=_report(order.id, 5_000_000))

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["detail"] == "Missing webhook signature"


def test_webhook_rejects_invalid_signature(client, db, product, order_factory):
    order = order_factory([(product, 2)])

    response = _post_webhook(client, _report(order.id, 5_000_000), signature="deadbeef")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["detail"] == "Invalid webhook signature"
    db.refresh(order)
    assert order.status == "pending"


def test_webhook_without_secret_skips_verification(client, db, product, order_factory, monkeypatch):
    monkeypatch.setenv("PAYMENT_WEBHOOK_SECRET", "")
    order = order_factory([(product, 2)])

    response = client.post("/webhooks/payment", json=_report(order.id, 5_000_000))

    assert response.json()["applied"] is True


def test_webhook_invalid_json(client):
    assert _post_webhook(client, b"{not json").json()["detail"] == "Invalid JSON"
    response = _post_webhook(client, b"[1, 2]")
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "Invalid JSON"


def test_webhook_validates_fields(client):
    cases = [
        ({"transaction_signature": SIGNATURE_A, "amount_lamports": 1, "sender_wallet": CUSTOMER_WALLET},
         "order_id required"),
        (_report(1, "plenty"), "amount_lamports must be integer"),
        (_report(1, 4_999_999.9), "amount_lamports must be integer"),
        (_report(1, 5_000_000.0), "amount_lamports must be integer"),
        (_report(1, 5, block_time=1.5e9), "block_time must be integer"),
        (_report(1, 0), "amount_lamports must be positive"),
        (_report(True, 5), "order_id must be integer"),
        (_report(1, 5, signature="0OIl"), "Invalid transaction_signature"),
        (_report(1, 5, sender="bad-wallet"), "Invalid sender_wallet"),
    ]
    for payload, detail in cases:
        response = _post_webhook(client, payload)
        assert response.status_code == status.HTTP_400_BAD_REQUEST, detail
        assert response.json()["detail"] == detail


def test_check_payment_requires_order_id(client):
    response = client.get("/api/payment/check")
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "order_id is required"


def test_check_payment_unknown_order(client):
    data = client.get("/api/payment/check", params={"order_id": 999}).json()
    assert data["status"] == "error"
    assert data["message"] == "Order not found"


def test_check_payment_pending(client, product, order_factory):
    order = order_factory([(product, 1)])

    data = client.get("/api/payment/check", params={"order_id": order.id}).json()

    assert data["status"] == "pending"
    assert data["message"] == "Waiting for payment"


def test_check_payment_confirmed(client, product, order_factory):
    order = order_factory([(product, 2)])
    _post_webhook(client, _report(order.id, 5_000_000))

    data = client.get("/api/payment/check", params={"order_id": order.id}).json()

    assert data["status"] == "confirmed"
    assert data["transaction_signature"] == SIGNATURE_A
    assert data["amount"] == 5_000_000
    assert data["timestamp"] is not None


def test_check_payment_underpaid(client, product, order_factory):
    order = order_factory([(product, 2)])
    _post_webhook(client, _report(order.id, 4_000_000))

    data = client.get("/api/payment/check", params={"order_id": order.id}).json()

    assert data["status"] == "underpaid"
    assert data["amount"] == 4_000_000


def test_check_payment_expires_stale_order(client, db, product, order_factory):
    order = order_factory([(product, 1)])
    order.created_at = utcnow() - timedelta(minutes=11)
    db.commit()

    data = client.get("/api/payment/check", params={"order_id": order.id}).json()

    assert data["status"] == "timeout"
    db.refresh(order)
    assert order.status == "timeout"
    assert order.status_history[-1].changed_by == "system"
    assert order.status_history[-1].reason == "Payment window expired"


def test_underpaid_order_is_never_timed_out(client, db, product, order_factory):
    order = order_factory([(product, 2)])
    _post_webhook(client, _report(order.id, 4_000_000))
    db.refresh(order)
    order.created_at = utcnow() - timedelta(minutes=30)
    db.commit()

    data = client.get("/api/payment/check", params={"order_id": order.id}).json()

    assert data["status"] == "underpaid"
    db.refresh(order)
    assert order.status == "pending"


def _land_report_during_check(db, order_id: int, **columns):
    """Write straight to the row, bypassing the session, as a concurrent webhook commit would."""
    assignments = ", ".join(f"{name} = :{name}" for name in columns)

    def expired(order):
        db.connection().execute(text(f"UPDATE orders SET {assignments} WHERE id = :id"), {"id": order_id, **columns})
        return True

    return patch("app.services.payment_service.is_payment_window_expired", side_effect=expired)


def test_expiry_rechecks_order_paid_after_first_read(client, db, product, order_factory):
    order = order_factory([(product, 2)])

    with _land_report_during_check(
        db, order.id, status="paid", transaction_signature=SIGNATURE_A, received_amount_elurc=5_000_000
    ):
        data = client.get("/api/payment/check", params={"order_id": order.id}).json()

    assert data["status"] == "confirmed"
    assert data["transaction_signature"] == SIGNATURE_A
    db.refresh(order)
    assert order.status == "paid"
    assert "timeout" not in [entry.status for entry in order.status_history]


def test_expiry_rechecks_underpayment_opened_after_first_read(client, db, product, order_factory):
    order = order_factory([(product, 2)])

    with _land_report_during_check(
        db,
        order.id,
        transaction_signature=SIGNATURE_A,
        received_amount_elurc=4_000_000,
        has_discrepancy=True,
        discrepancy_type="underpayment",
        discrepancy_resolution="pending_review",
    ):
        data = client.get("/api/payment/check", params={"order_id": order.id}).json()

    assert data["status"] == "underpaid"
    db.refresh(order)
    assert order.status == "pending"


def test_check_payment_cancelled(client, product, order_factory):
    order = order_factory([(product, 1)], status="cancelled")
    data = client.get("/api/payment/check", params={"order_id": order.id}).json()
    assert data["status"] == "error"


def test_wallet_balance(client):
    with patch("app.api.payment.get_elurc_balance", return_value=12_500_000) as mock_balance:
        response = client.get("/api/wallet/balance", params={"address": CUSTOMER_WALLET})

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "address": CUSTOMER_WALLET,
        "balance": 12_500_000,
        "balance_elurc": "12.50",
    }
    mock_balance.assert_called_once_with(CUSTOMER_WALLET)


def test_wallet_balance_invalid_address(client):
    response = client.get("/api/wallet/balance", params={"address": "nope"})
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_wallet_balance_upstream_errors(client):
    with patch("app.api.payment.get_elurc_balance", side_effect=WalletServiceError("Solana RPC error: HTTP 500")):
        bad_gateway = client.get("/api/wallet/balance", params={"address": CUSTOMER_WALLET})
    with patch("app.api.payment.get_elurc_balance", side_effect=ValueError("ELURC_TOKEN_ADDRESS is not set")):
        unavailable = client.get("/api/wallet/balance", params={"address": CUSTOMER_WALLET})

    assert bad_gateway.status_code == status.HTTP_502_BAD_GATEWAY
    assert unavailable.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert unavailable.json()["detail"] == "ELURC_TOKEN_ADDRESS is not set"
