import pytest

from app.models import Refund
from app.services import discrepancy
from app.services.exceptions import DiscrepancyError
from app.services.timeutils import utcnow
from tests.factories import SIGNATURE_A


def test_classify_payment_within_tolerance_is_exact():
    assert discrepancy.classify_payment(5_000_000, 5_000_000).kind == "exact"
    assert discrepancy.classify_payment(5_000_000, 5_001_000).kind == "exact"
    assert discrepancy.classify_payment(5_000_000, 4_999_000).kind == "exact"


def test_classify_payment_outside_tolerance():
    over = discrepancy.classify_payment(5_000_000, 5_001_001)
    assert over.kind == "overpayment"
    assert over.difference == 1_001

    under = discrepancy.classify_payment(5_000_000, 4_998_999)
    assert under.kind == "underpayment"
    assert under.difference == -1_001
    assert under.has_discrepancy


def test_classify_payment_custom_tolerance():
    assert discrepancy.classify_payment(100, 150, tolerance=0).kind == "overpayment"
    assert discrepancy.classify_payment(100, 150, tolerance=50).kind == "exact"


def test_record_exact_payment_marks_paid(db, product, order_factory):
    order = order_factory([(product, 2)])

    result = discrepancy.record_payment(order, SIGNATURE_A, 5_000_000, utcnow())
    db.commit()

    assert result.kind == "exact"
    assert order.status == "paid"
    assert order.transaction_signature == SIGNATURE_A
    assert order.has_discrepancy is False
    assert [entry.status for entry in order.status_history] == ["pending", "paid"]
    assert order.status_history[-1].changed_by == "system"


def test_record_overpayment_marks_paid_with_refund_pending(db, product, order_factory):
    order = order_factory([(product, 2)])

    discrepancy.record_payment(order, SIGNATURE_A, 6_000_000, utcnow())
    db.commit()

    assert order.status == "paid"
    assert order.has_discrepancy is True
    assert order.discrepancy_type == "overpayment"
    assert order.discrepancy_expected_amount == 5_000_000
    assert order.discrepancy_received_amount == 6_000_000
    assert order.discrepancy_difference_amount == 1_000_000
    assert order.discrepancy_resolution == "refund_pending"


def test_record_underpayment_keeps_order_pending_for_review(db, product, order_factory):
    order = order_factory([(product, 2)])

    discrepancy.record_payment(order, SIGNATURE_A, 4_000_000, utcnow())
    db.commit()

    assert order.status == "pending"
    assert order.discrepancy_type == "underpayment"
    assert order.discrepancy_difference_amount == -1_000_000
    assert order.discrepancy_resolution == "pending_review"
    assert discrepancy.has_open_underpayment(order)
    assert "Underpayment detected" in order.admin_notes


def test_record_payment_requires_pending_order(db, product, order_factory):
    order = order_factory([(product, 1)], status="paid")
    with pytest.raises(DiscrepancyError):
        discrepancy.record_payment(order, SIGNATURE_A, 2_500_000, utcnow())


def test_approve_underpayment_with_waiver(db, product, order_factory):
    order = order_factory([(product, 2)])
    discrepancy.record_payment(order, SIGNATURE_A, 4_000_000, utcnow())
    db.commit()

    approved, shortage = discrepancy.approve_underpayment(db, order.id, "Loyal customer", waive_amount=True)

    assert shortage == 1_000_000
    assert approved.status == "paid"
    assert approved.discrepancy_resolution == "manually_approved"
    assert approved.discrepancy_resolution_notes == (
        "Manually approved with 1.00 ELURC waived. Reason: Loyal customer"
    )
    assert "Manually approved with 1.00 ELURC waived" in approved.admin_notes
    assert approved.status_history[-1].changed_by == "admin"
    assert approved.status_history[-1].reason == "Loyal customer"


def test_approve_underpayment_without_waiver(db, product, order_factory):
    order = order_factory([(product, 2)])
    discrepancy.record_payment(order, SIGNATURE_A, 4_000_000, utcnow())
    db.commit()

    approved, _ = discrepancy.approve_underpayment(db, order.id, "Customer paid the rest in store")

    assert approved.discrepancy_resolution_notes == "Manually approved. Reason: Customer paid the rest in store"


def test_approve_underpayment_requires_reason(db, product, order_factory):
    order = order_factory([(product, 2)])
    with pytest.raises(DiscrepancyError, match="reason is required"):
        discrepancy.approve_underpayment(db, order.id, "  ")


def test_approve_underpayment_rejects_orders_without_underpayment(db, product, order_factory):
    order = order_factory([(product, 2)])
    discrepancy.record_payment(order, SIGNATURE_A, 6_000_000, utcnow())
    db.commit()

    with pytest.raises(DiscrepancyError, match="does not have an underpayment"):
        discrepancy.approve_underpayment(db, order.id, "reason")


def test_approve_underpayment_twice_is_rejected(db, product, order_factory):
    order = order_factory([(product, 2)])
    discrepancy.record_payment(order, SIGNATURE_A, 4_000_000, utcnow())
    db.commit()
    discrepancy.approve_underpayment(db, order.id, "first")

    with pytest.raises(DiscrepancyError, match="not awaiting review"):
        discrepancy.approve_underpayment(db, order.id, "second")


def test_mark_refund_completed_only_touches_overpayments(db, product, order_factory):
    order = order_factory([(product, 2)])
    discrepancy.record_payment(order, SIGNATURE_A, 6_000_000, utcnow())
    refund = Refund(amount=1_000_000, transaction_signature="9" * 88)

    discrepancy.mark_refund_completed(order, refund)

    assert order.discrepancy_resolution == "refund_completed"
    assert "1.00 ELURC" in order.discrepancy_resolution_notes
    assert "9" * 88 in order.discrepancy_resolution_notes

    exact_order = order_factory([(product, 1)])
    discrepancy.mark_refund_completed(exact_order, refund)
    assert exact_order.discrepancy_resolution is None
