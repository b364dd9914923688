"""Delivery and payment reporting. Read-only; amounts are summed as Decimal."""

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from brickflow.exceptions import ValidationFailed
from brickflow.models.delivery_challan import DeliveryChallan
from brickflow.models.payment import Payment
from brickflow.models.status import DeliveryStatus, PaymentStatus
from brickflow.schemas.report import (
    DailyBreakdown,
    DeliveredOrderRow,
    DeliveryReport,
    PaymentSummary,
    ReportSummary,
    StatusBucket,
)

logger = structlog.get_logger()

ZERO = Decimal("0.00")

# Longest range a single report may cover.
MAX_REPORT_DAYS = 366


def _empty_breakdown() -> dict[str, dict]:
    return {
        status.value: {"count": 0, "expected": ZERO, "received": ZERO}
        for status in PaymentStatus
    }


def _bucket(entry: dict) -> StatusBucket:
    return StatusBucket(
        count=entry["count"],
        expected_amount=entry["expected"],
        received_amount=entry["received"],
        outstanding_amount=entry["expected"] - entry["received"],
    )


def _row(challan: DeliveryChallan) -> DeliveredOrderRow:
    req = challan.requisition
    payment = challan.payment
    expected = req.total_amount
    received = payment.amount_received if payment else ZERO
    return DeliveredOrderRow(
        challan_number=challan.challan_number,
        order_number=challan.order_number,
        delivery_date=challan.delivery_date,
        customer_name=req.customer_name,
        brick_type=req.brick_type.name if req.brick_type else None,
        quantity=req.quantity,
        expected_amount=expected,
        received_amount=received,
        outstanding_amount=expected - received,
        payment_status=PaymentStatus(payment.payment_status).value if payment else PaymentStatus.PENDING.value,
    )


def status_breakdown(rows: Iterable[DeliveredOrderRow]) -> dict[str, StatusBucket]:
    breakdown = _empty_breakdown()
    for row in rows:
        entry = breakdown[row.payment_status]
        entry["count"] += 1
        entry["expected"] += row.expected_amount
        entry["received"] += row.received_amount
    return {status: _bucket(entry) for status, entry in breakdown.items()}


def summarize(rows: list[DeliveredOrderRow]) -> ReportSummary:
    expected = sum((r.expected_amount for r in rows), ZERO)
    received = sum((r.received_amount for r in rows), ZERO)
    return ReportSummary(
        total_delivered_orders=len(rows),
        total_expected_amount=expected,
        total_received_amount=received,
        total_outstanding_amount=expected - received,
    )


def daily_breakdown(rows: list[DeliveredOrderRow]) -> list[DailyBreakdown]:
    by_day: dict[date, list[DeliveredOrderRow]] = defaultdict(list)
    for row in rows:
        by_day[row.delivery_date].append(row)

    days = []
    for day in sorted(by_day):
        expected = sum((r.expected_amount for r in by_day[day]), ZERO)
        received = sum((r.received_amount for r in by_day[day]), ZERO)
        days.append(
            DailyBreakdown(
                date=day,
                delivered_orders=len(by_day[day]),
                expected_amount=expected,
                received_amount=received,
                outstanding_amount=expected - received,
            )
        )
    return days


async def _delivered_between(
    session: AsyncSession, from_date: date, to_date: date
) -> list[DeliveryChallan]:
    result = await session.execute(
        select(DeliveryChallan)
        .where(
            DeliveryChallan.delivery_status == DeliveryStatus.DELIVERED,
            DeliveryChallan.delivery_date >= from_date,
            DeliveryChallan.delivery_date <= to_date,
        )
        .order_by(DeliveryChallan.delivery_date, DeliveryChallan.challan_number)
    )
    return list(result.scalars().all())


async def daily_report(session: AsyncSession, report_date: date) -> DeliveryReport:
    rows = [_row(c) for c in await _delivered_between(session, report_date, report_date)]
    logger.info("daily_report_generated", date=report_date.isoformat(), orders=len(rows))
    return DeliveryReport(
        from_date=report_date,
        to_date=report_date,
        summary=summarize(rows),
        status_breakdown=status_breakdown(rows),
        orders=rows,
    )


async def range_report(session: AsyncSession, from_date: date, to_date: date) -> DeliveryReport:
    if to_date < from_date:
        raise ValidationFailed(
            "Validation failed", {"to_date": ["End date must be on or after the start date"]}
        )
    if to_date - from_date > timedelta(days=MAX_REPORT_DAYS):
        raise ValidationFailed(
            "Validation failed",
            {"to_date": [f"Reports can cover at most {MAX_REPORT_DAYS} days"]},
        )

    rows = [_row(c) for c in await _delivered_between(session, from_date, to_date)]
    logger.info(
        "range_report_generated",
        from_date=from_date.isoformat(),
        to_date=to_date.isoformat(),
        orders=len(rows),
    )
    return DeliveryReport(
        from_date=from_date,
        to_date=to_date,
        summary=summarize(rows),
        status_breakdown=status_breakdown(rows),
        orders=rows,
        daily_breakdown=daily_breakdown(rows),
    )


async def payment_summary(session: AsyncSession) -> PaymentSummary:
    """Totals over every payment record, grouped by status."""
    payments = (await session.execute(select(Payment))).scalars().all()

    breakdown = _empty_breakdown()
    for payment in payments:
        entry = breakdown[PaymentStatus(payment.payment_status).value]
        entry["count"] += 1
        entry["expected"] += payment.total_amount
        entry["received"] += payment.amount_received

    expected = sum((e["expected"] for e in breakdown.values()), ZERO)
    received = sum((e["received"] for e in breakdown.values()), ZERO)
    return PaymentSummary(
        total_payments=len(payments),
        total_expected_amount=expected,
        total_received_amount=received,
        total_outstanding_amount=expected - received,
        status_breakdown={status: _bucket(entry) for status, entry in breakdown.items()},
    )
