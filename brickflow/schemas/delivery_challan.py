from datetime import date as date_type, datetime
from typing import Any, Optional
import uuid

from pydantic import BaseModel, Field

from brickflow.schemas.common import Money


class ChallanCreate(BaseModel):
    requisition_id: uuid.UUID
    vehicle_number: str = Field(..., min_length=1, max_length=50)
    driver_name: str = Field(..., min_length=1, max_length=255)
    vehicle_type: Optional[str] = Field(None, max_length=100)
    location: str = Field(..., min_length=1, max_length=255)
    remarks: Optional[str] = None


class ChallanUpdate(BaseModel):
    vehicle_number: Optional[str] = Field(None, min_length=1, max_length=50)
    driver_name: Optional[str] = Field(None, min_length=1, max_length=255)
    vehicle_type: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, min_length=1, max_length=255)
    remarks: Optional[str] = None


class DeliveryStatusUpdate(BaseModel):
    delivery_status: str


class ChallanResponse(BaseModel):
    id: str
    challan_number: str
    requisition_id: str
    order_number: str
    date: date_type
    vehicle_number: str
    driver_name: str
    vehicle_type: Optional[str] = None
    location: str
    remarks: Optional[str] = None
    delivery_status: str
    delivery_date: Optional[date_type] = None
    print_count: int
    customer_name: Optional[str] = None
    total_amount: Optional[Money] = None
    has_payment: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PrintableChallan(BaseModel):
    challan_info: dict[str, Any]
    order_details: dict[str, Any]
    customer_details: dict[str, Any]
    vehicle_details: dict[str, Any]
    sales_executive: dict[str, Any]
    delivery_info: dict[str, Any]
    print_info: dict[str, Any]
