from datetime import date as date_type
from typing import Optional

from pydantic import BaseModel

from brickflow.schemas.common import Money


class StatusBucket(BaseModel):
    count: int = 0
    expected_amount: Money
    received_amount: Money
    outstanding_amount: Money


class ReportSummary(BaseModel):
    total_delivered_orders: int
    total_expected_amount: Money
    total_received_amount: Money
    total_outstanding_amount: Money


class DeliveredOrderRow(BaseModel):
    challan_number: str
    order_number: str
    delivery_date: Optional[date_type] = None
    customer_name: str
    brick_type: Optional[str] = None
    quantity: Money
    expected_amount: Money
    received_amount: Money
    outstanding_amount: Money
    payment_status: str


class DailyBreakdown(BaseModel):
    date: date_type
    delivered_orders: int
    expected_amount: Money
    received_amount: Money
    outstanding_amount: Money


class DeliveryReport(BaseModel):
    from_date: date_type
    to_date: date_type
    summary: ReportSummary
    status_breakdown: dict[str, StatusBucket]
    orders: list[DeliveredOrderRow]
    daily_breakdown: Optional[list[DailyBreakdown]] = None


class PaymentSummary(BaseModel):
    total_payments: int
    total_expected_amount: Money
    total_received_amount: Money
    total_outstanding_amount: Money
    status_breakdown: dict[str, StatusBucket]
