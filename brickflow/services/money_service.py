"""Server-side money checks. All comparisons use one absolute tolerance."""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from brickflow.exceptions import CalculationMismatch, PaymentExceedsOrder, PriceChanged

Number = Union[Decimal, int, float, str]

MONEY_TOLERANCE = Decimal("0.01")
_CENT = Decimal("0.01")


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # str() keeps 25.5 as Decimal("25.5")
        return Decimal(str(value))
    return Decimal(value)


def quantize_money(value: Number) -> Decimal:
    return to_decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


def amounts_differ(left: Number, right: Number) -> bool:
    return abs(to_decimal(left) - to_decimal(right)) > MONEY_TOLERANCE


def line_total(quantity: Number, unit_price: Number) -> Decimal:
    return quantize_money(to_decimal(quantity) * to_decimal(unit_price))


def verify_total(quantity: Number, unit_price: Number, submitted_total: Number) -> Decimal:
    """Return the authoritative total, or raise when the submitted one disagrees."""
    expected = to_decimal(quantity) * to_decimal(unit_price)
    if amounts_differ(expected, submitted_total):
        raise CalculationMismatch.with_details(
            expected, to_decimal(submitted_total), quantity, unit_price
        )
    return quantize_money(expected)


def verify_price_unchanged(current_price: Number, submitted_price: Number) -> None:
    if amounts_differ(current_price, submitted_price):
        raise PriceChanged.with_details(current_price, submitted_price)


def verify_payment_within_bounds(
    total_amount: Number,
    amount_received: Number,
    already_received: Number = Decimal("0"),
) -> None:
    if to_decimal(amount_received) > to_decimal(total_amount):
        raise PaymentExceedsOrder.with_details(
            total_amount, amount_received, already_received
        )
