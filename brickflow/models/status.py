"""
Closed status types for requisitions, delivery challans and payments.

Each enum owns its adjacency map; ``can_transition_to`` is the only place the
legal edges are consulted.
"""

import enum
from decimal import Decimal

from sqlalchemy import Enum as SAEnum


class _StatusEnum(str, enum.Enum):
    @classmethod
    def parse(cls, value):
        """Return the member for ``value`` or None when it is not a known status."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None

    @classmethod
    def values(cls) -> list[str]:
        return [m.value for m in cls]

    def allowed_targets(self) -> frozenset:
        return _TRANSITIONS[type(self)].get(self, frozenset())

    def can_transition_to(self, target) -> bool:
        target = type(self).parse(target)
        return target is not None and target in self.allowed_targets()

    @property
    def is_terminal(self) -> bool:
        return not self.allowed_targets()


class RequisitionStatus(_StatusEnum):
    SUBMITTED = "submitted"
    ASSIGNED = "assigned"
    DELIVERED = "delivered"
    PAID = "paid"
    COMPLETE = "complete"


class DeliveryStatus(_StatusEnum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    FAILED = "failed"


class PaymentStatus(_StatusEnum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    APPROVED = "approved"
    OVERDUE = "overdue"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CHEQUE = "cheque"
    BANK_TRANSFER = "bank_transfer"
    UPI = "upi"


_TRANSITIONS = {
    RequisitionStatus: {
        RequisitionStatus.SUBMITTED: frozenset({RequisitionStatus.ASSIGNED}),
        RequisitionStatus.ASSIGNED: frozenset({RequisitionStatus.DELIVERED}),
        RequisitionStatus.DELIVERED: frozenset({RequisitionStatus.PAID}),
        RequisitionStatus.PAID: frozenset({RequisitionStatus.COMPLETE}),
        RequisitionStatus.COMPLETE: frozenset(),
    },
    DeliveryStatus: {
        DeliveryStatus.PENDING: frozenset({DeliveryStatus.ASSIGNED, DeliveryStatus.FAILED}),
        DeliveryStatus.ASSIGNED: frozenset({DeliveryStatus.IN_TRANSIT, DeliveryStatus.FAILED}),
        DeliveryStatus.IN_TRANSIT: frozenset({DeliveryStatus.DELIVERED, DeliveryStatus.FAILED}),
        DeliveryStatus.DELIVERED: frozenset(),
        DeliveryStatus.FAILED: frozenset({DeliveryStatus.ASSIGNED}),
    },
    PaymentStatus: {
        PaymentStatus.PENDING: frozenset(
            {PaymentStatus.PARTIAL, PaymentStatus.PAID, PaymentStatus.OVERDUE}
        ),
        PaymentStatus.PARTIAL: frozenset({PaymentStatus.PAID, PaymentStatus.OVERDUE}),
        PaymentStatus.PAID: frozenset({PaymentStatus.APPROVED}),
        PaymentStatus.OVERDUE: frozenset({PaymentStatus.PARTIAL, PaymentStatus.PAID}),
        PaymentStatus.APPROVED: frozenset(),
    },
}


def derive_payment_status(total_amount: Decimal, amount_received: Decimal) -> PaymentStatus:
    if amount_received <= 0:
        return PaymentStatus.PENDING
    if amount_received < total_amount:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PAID


def status_type(enum_cls, name: str) -> SAEnum:
    """Store an enum by value in a VARCHAR with a CHECK constraint."""
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        create_constraint=True,
        validate_strings=True,
        length=20,
        values_callable=lambda e: [m.value for m in e],
    )
