"""
Unit tests for the status types in brickflow/models/status.py and the
transition methods on the Requisition / DeliveryChallan / Payment models.

Models are built as transient instances; nothing touches a database.
"""

from datetime import date, timedelta
from decimal import Decimal
from itertools import product

import pytest

from brickflow.models.delivery_challan import DeliveryChallan
from brickflow.models.payment import Payment
from brickflow.models.requisition import Requisition
from brickflow.models.status import (
    DeliveryStatus,
    PaymentStatus,
    RequisitionStatus,
    derive_payment_status,
)

REQUISITION_CHAIN = [
    RequisitionStatus.SUBMITTED,
    RequisitionStatus.ASSIGNED,
    RequisitionStatus.DELIVERED,
    RequisitionStatus.PAID,
    RequisitionStatus.COMPLETE,
]


# ---------------------------------------------------------------------------
# Requisition
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("current,target", list(product(RequisitionStatus, RequisitionStatus)))
def test_requisition_transition_closure(current, target):
    index = REQUISITION_CHAIN.index(current)
    successor = REQUISITION_CHAIN[index + 1] if index + 1 < len(REQUISITION_CHAIN) else None
    assert current.can_transition_to(target) is (target == successor)


def test_requisition_rejects_unknown_target():
    assert not RequisitionStatus.SUBMITTED.can_transition_to("cancelled")
    assert not RequisitionStatus.SUBMITTED.can_transition_to(None)


def test_requisition_update_status_mutates_only_on_legal_edge():
    req = Requisition(status=RequisitionStatus.SUBMITTED)

    assert req.update_status("delivered") is False
    assert req.status == RequisitionStatus.SUBMITTED

    assert req.update_status("assigned") is True
    assert req.status == RequisitionStatus.ASSIGNED


def test_requisition_recalculate_total_prefers_entered_price():
    req = Requisition(
        quantity=Decimal("100"),
        price_per_unit=Decimal("25.00"),
        entered_price=Decimal("25.50"),
        total_amount=Decimal("0"),
    )
    assert req.recalculate_total() == Decimal("2550.00")

    req.entered_price = None
    assert req.recalculate_total() == Decimal("2500.00")


def test_complete_is_terminal():
    assert RequisitionStatus.COMPLETE.is_terminal
    assert not RequisitionStatus.PAID.is_terminal


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------

def test_delivery_cannot_skip_to_in_transit():
    assert not DeliveryStatus.PENDING.can_transition_to("in_transit")


def test_delivery_failed_can_retry():
    assert DeliveryStatus.FAILED.can_transition_to("assigned")
    assert not DeliveryStatus.FAILED.can_transition_to("in_transit")


@pytest.mark.parametrize("target", list(DeliveryStatus))
def test_delivered_is_terminal(target):
    assert not DeliveryStatus.DELIVERED.can_transition_to(target)


@pytest.mark.parametrize(
    "current", [DeliveryStatus.PENDING, DeliveryStatus.ASSIGNED, DeliveryStatus.IN_TRANSIT]
)
def test_every_open_delivery_state_can_fail(current):
    assert current.can_transition_to(DeliveryStatus.FAILED)


def test_update_delivery_status_stamps_delivery_date_once():
    challan = DeliveryChallan(delivery_status=DeliveryStatus.IN_TRANSIT, delivery_date=None)

    assert challan.update_delivery_status("delivered") is True
    assert challan.delivery_status == DeliveryStatus.DELIVERED
    assert challan.delivery_date == date.today()


def test_update_delivery_status_keeps_existing_delivery_date():
    earlier = date.today() - timedelta(days=3)
    challan = DeliveryChallan(delivery_status=DeliveryStatus.IN_TRANSIT, delivery_date=earlier)

    challan.update_delivery_status("delivered")
    assert challan.delivery_date == earlier


def test_update_delivery_status_rejects_unknown_and_illegal():
    challan = DeliveryChallan(delivery_status=DeliveryStatus.PENDING)

    assert challan.update_delivery_status("lost") is False
    assert challan.update_delivery_status("delivered") is False
    assert challan.delivery_status == DeliveryStatus.PENDING


def test_mark_as_printed_increments():
    challan = DeliveryChallan(print_count=0)
    assert challan.mark_as_printed() == 1
    assert challan.mark_as_printed() == 2


# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------

PAYMENT_EDGES = {
    PaymentStatus.PENDING: {PaymentStatus.PARTIAL, PaymentStatus.PAID, PaymentStatus.OVERDUE},
    PaymentStatus.PARTIAL: {PaymentStatus.PAID, PaymentStatus.OVERDUE},
    PaymentStatus.PAID: {PaymentStatus.APPROVED},
    PaymentStatus.OVERDUE: {PaymentStatus.PARTIAL, PaymentStatus.PAID},
    PaymentStatus.APPROVED: set(),
}


@pytest.mark.parametrize("current,target", list(product(PaymentStatus, PaymentStatus)))
def test_payment_transition_table(current, target):
    assert current.can_transition_to(target) is (target in PAYMENT_EDGES[current])


@pytest.mark.parametrize("total", [Decimal("0.01"), Decimal("1000"), Decimal("98765.43")])
def test_payment_status_derivation(total):
    assert derive_payment_status(total, Decimal("0")) == PaymentStatus.PENDING
    assert derive_payment_status(total, total / 2) == PaymentStatus.PARTIAL
    assert derive_payment_status(total, total) == PaymentStatus.PAID
    assert derive_payment_status(total, total + 1) == PaymentStatus.PAID


def test_payment_remaining_amount():
    payment = Payment(total_amount=Decimal("1000.00"), amount_received=Decimal("250.00"))
    assert payment.remaining_amount == Decimal("750.00")
    assert not payment.is_fully_paid


def test_status_values_are_stable_strings():
    assert RequisitionStatus.values() == ["submitted", "assigned", "delivered", "paid", "complete"]
    assert DeliveryStatus.values() == ["pending", "assigned", "in_transit", "delivered", "failed"]
    assert PaymentStatus.values() == ["pending", "partial", "paid", "approved", "overdue"]
