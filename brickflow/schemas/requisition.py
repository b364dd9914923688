from datetime import date as date_type, datetime
from decimal import Decimal
from typing import Optional
import uuid

from pydantic import BaseModel, Field

from brickflow.schemas.common import Money


class RequisitionCreate(BaseModel):
    brick_type_id: uuid.UUID
    quantity: Decimal
    entered_price: Decimal
    total_amount: Decimal
    # The unit price the client was quoted; checked against the live brick price.
    price_per_unit: Optional[Decimal] = None
    customer_name: str = Field("", max_length=255)
    customer_phone: str = Field("", max_length=20)
    customer_address: str = ""
    customer_location: str = Field("", max_length=255)


class RequisitionUpdate(BaseModel):
    quantity: Optional[Decimal] = None
    entered_price: Optional[Decimal] = None
    total_amount: Optional[Decimal] = None
    customer_name: Optional[str] = Field(None, max_length=255)
    customer_phone: Optional[str] = Field(None, max_length=20)
    customer_address: Optional[str] = None
    customer_location: Optional[str] = Field(None, max_length=255)


class PriceCheckRequest(BaseModel):
    brick_type_id: uuid.UUID
    submitted_price: Decimal


class PriceCheckResponse(BaseModel):
    brick_type_id: str
    brick_type_name: str
    current_price: Money
    submitted_price: Money
    price_changed: bool


class RequisitionResponse(BaseModel):
    id: str
    order_number: str
    date: date_type
    user_id: str
    sales_executive: Optional[str] = None
    brick_type_id: str
    brick_type_name: Optional[str] = None
    quantity: Money
    price_per_unit: Money
    entered_price: Optional[Money] = None
    total_amount: Money
    customer_name: str
    customer_phone: str
    customer_address: str
    customer_location: str
    status: str
    has_challan: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
