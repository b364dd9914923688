from datetime import date as date_type, datetime
from decimal import Decimal
from typing import Optional
import uuid

from pydantic import BaseModel, Field

from brickflow.schemas.common import Money


class PaymentCreate(BaseModel):
    delivery_challan_id: uuid.UUID
    total_amount: Optional[Decimal] = None
    amount_received: Optional[Decimal] = None
    payment_date: Optional[date_type] = None
    payment_method: Optional[str] = None
    reference_number: Optional[str] = Field(None, max_length=100)
    remarks: Optional[str] = None


class PaymentUpdate(BaseModel):
    amount_received: Optional[Decimal] = None
    payment_status: Optional[str] = None
    payment_date: Optional[date_type] = None
    payment_method: Optional[str] = None
    reference_number: Optional[str] = Field(None, max_length=100)
    remarks: Optional[str] = None


class PaymentResponse(BaseModel):
    id: str
    delivery_challan_id: str
    challan_number: Optional[str] = None
    order_number: Optional[str] = None
    payment_status: str
    total_amount: Money
    amount_received: Money
    remaining_amount: Money
    payment_date: Optional[date_type] = None
    payment_method: Optional[str] = None
    reference_number: Optional[str] = None
    remarks: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PaymentHistoryEntry(BaseModel):
    action: str
    actor_id: Optional[str] = None
    actor_role: Optional[str] = None
    changed_fields: Optional[list[str]] = None
    before_state: Optional[dict] = None
    after_state: Optional[dict] = None
    created_at: Optional[datetime] = None
