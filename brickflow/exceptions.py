"""
Business rule violations raised by the order-to-cash core.

Each kind carries a field-keyed ``errors`` map and the HTTP status the
response layer should use. They are expected, user-facing outcomes and are
turned into ``fail`` envelopes rather than logged as faults.
"""

from decimal import Decimal
from typing import Any, Iterable, Optional


def _money(value) -> str:
    return f"{Decimal(value):.2f}"


class BusinessRuleViolation(Exception):
    status_code: int = 422
    default_message: str = "Business rule violation"

    def __init__(
        self,
        message: Optional[str] = None,
        errors: Optional[dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message or self.default_message
        self.errors = dict(errors or {})
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {
            "status": "fail",
            "message": self.message,
            "data": None,
            "errors": self.errors,
        }


class ValidationFailed(BusinessRuleViolation):
    default_message = "Validation failed"


class CalculationMismatch(BusinessRuleViolation):
    default_message = "Calculation mismatch detected"

    @classmethod
    def with_details(cls, expected, submitted, quantity, unit_price) -> "CalculationMismatch":
        return cls(
            "The calculated total does not match the expected value. Please refresh and try again.",
            {
                "total_amount": [
                    f"Expected {_money(expected)} but received {_money(submitted)}"
                ],
                "expected_total": _money(expected),
                "submitted_total": _money(submitted),
                "quantity": str(quantity),
                "price_per_unit": _money(unit_price),
            },
        )


class PriceChanged(BusinessRuleViolation):
    default_message = "Brick price has changed"

    @classmethod
    def with_details(cls, current_price, submitted_price) -> "PriceChanged":
        return cls(
            "The brick price has changed since you started this order. Please review the new price.",
            {
                "brick_price": [
                    f"Price changed from {_money(submitted_price)} to {_money(current_price)}"
                ],
                "current_price": _money(current_price),
                "submitted_price": _money(submitted_price),
            },
        )


class PaymentExceedsOrder(BusinessRuleViolation):
    default_message = "Payment amount exceeds order total"

    @classmethod
    def with_details(
        cls, order_total, attempted_payment, already_received
    ) -> "PaymentExceedsOrder":
        remaining = Decimal(order_total) - Decimal(already_received)
        return cls(
            "The payment amount exceeds the order total.",
            {
                "amount_received": [
                    f"Amount received cannot exceed the order total of {_money(order_total)}"
                ],
                "order_total": _money(order_total),
                "attempted_payment": _money(attempted_payment),
                "already_received": _money(already_received),
                "remaining_amount": _money(remaining),
            },
        )


class RecordImmutable(BusinessRuleViolation):
    status_code = 403
    default_message = "This record cannot be modified"

    @classmethod
    def for_approved_payment(cls) -> "RecordImmutable":
        return cls(
            "Approved payments are locked and cannot be modified or deleted.",
            {"payment_status": ["Payment is approved and locked"]},
        )

    @classmethod
    def for_advanced_requisition(cls, status: str) -> "RecordImmutable":
        return cls(
            "Requisitions cannot be modified once they have been processed.",
            {"requisition_status": [f"Requisition is {status} and can no longer be changed"]},
        )

    @classmethod
    def for_requisition_deletion(cls) -> "RecordImmutable":
        return cls(
            "Requisitions cannot be deleted.",
            {"requisition": ["Requisitions are kept for the audit trail"]},
        )

    @classmethod
    def for_delivered_challan(cls) -> "RecordImmutable":
        return cls(
            "Delivered challans cannot be modified.",
            {"delivery_status": ["Challan has been delivered"]},
        )

    @classmethod
    def for_challan_deletion(cls) -> "RecordImmutable":
        return cls(
            "Delivery challans cannot be deleted.",
            {"delivery_challan": ["Challans are kept for the audit trail"]},
        )


class UnauthorizedRole(BusinessRuleViolation):
    status_code = 403
    default_message = "You are not authorized to perform this action"

    @classmethod
    def with_roles(cls, required: Iterable[str], user_role: Optional[str]) -> "UnauthorizedRole":
        required = list(required)
        return cls(
            f"This action requires one of the following roles: {', '.join(required)}",
            {
                "authorization": ["Insufficient role for this action"],
                "required_roles": required,
                "user_role": user_role,
            },
        )


class InvalidTransition(BusinessRuleViolation):
    default_message = "Invalid status transition"

    @classmethod
    def between(cls, field: str, current: str, requested: str) -> "InvalidTransition":
        return cls(
            f"Cannot change status from {current} to {requested}",
            {
                field: [f"Invalid status transition from {current} to {requested}"],
                "current_status": current,
                "requested_status": requested,
            },
        )


class NotFound(BusinessRuleViolation):
    status_code = 404
    default_message = "Resource not found"

    @classmethod
    def for_entity(cls, entity: str, entity_id: Any = None) -> "NotFound":
        key = entity.lower().replace(" ", "_")
        return cls(
            f"{entity} not found",
            {key: [f"{entity} {entity_id} does not exist" if entity_id else f"{entity} does not exist"]},
        )


class SequenceLockUnavailable(RuntimeError):
    """Identifier generation was attempted without an exclusive lock."""

    def __init__(self, prefix: str):
        self.prefix = prefix
        super().__init__(
            f"Refusing to issue a '{prefix}' identifier without a row lock or sequence mutex"
        )
