"""Entity → response-schema conversion shared by the orchestrator and routes."""

from datetime import datetime
from typing import Optional

from sqlalchemy import inspect

from brickflow.models.audit_log import AuditLog
from brickflow.models.delivery_challan import DeliveryChallan
from brickflow.models.payment import Payment
from brickflow.models.requisition import Requisition
from brickflow.schemas.delivery_challan import ChallanResponse
from brickflow.schemas.payment import PaymentHistoryEntry, PaymentResponse
from brickflow.schemas.requisition import RequisitionResponse


def loaded(entity, name: str):
    """Relationship value if already in memory, else None (no lazy load under asyncio)."""
    if name in inspect(entity).unloaded:
        return None
    return getattr(entity, name)


def _value(status) -> Optional[str]:
    return getattr(status, "value", status)


def to_requisition_response(req: Requisition) -> RequisitionResponse:
    user = loaded(req, "user")
    brick_type = loaded(req, "brick_type")
    return RequisitionResponse(
        id=str(req.id),
        order_number=req.order_number,
        date=req.date,
        user_id=str(req.user_id),
        sales_executive=user.name if user else None,
        brick_type_id=str(req.brick_type_id),
        brick_type_name=brick_type.name if brick_type else None,
        quantity=req.quantity,
        price_per_unit=req.price_per_unit,
        entered_price=req.entered_price,
        total_amount=req.total_amount,
        customer_name=req.customer_name,
        customer_phone=req.customer_phone,
        customer_address=req.customer_address,
        customer_location=req.customer_location,
        status=_value(req.status),
        has_challan=loaded(req, "delivery_challan") is not None,
        created_at=req.created_at,
        updated_at=req.updated_at,
    )


def to_challan_response(challan: DeliveryChallan) -> ChallanResponse:
    req = loaded(challan, "requisition")
    return ChallanResponse(
        id=str(challan.id),
        challan_number=challan.challan_number,
        requisition_id=str(challan.requisition_id),
        order_number=challan.order_number,
        date=challan.date,
        vehicle_number=challan.vehicle_number,
        driver_name=challan.driver_name,
        vehicle_type=challan.vehicle_type,
        location=challan.location,
        remarks=challan.remarks,
        delivery_status=_value(challan.delivery_status),
        delivery_date=challan.delivery_date,
        print_count=challan.print_count or 0,
        customer_name=req.customer_name if req else None,
        total_amount=req.total_amount if req else None,
        has_payment=loaded(challan, "payment") is not None,
        created_at=challan.created_at,
        updated_at=challan.updated_at,
    )


def to_payment_response(payment: Payment) -> PaymentResponse:
    challan = loaded(payment, "delivery_challan")
    return PaymentResponse(
        id=str(payment.id),
        delivery_challan_id=str(payment.delivery_challan_id),
        challan_number=challan.challan_number if challan else None,
        order_number=challan.order_number if challan else None,
        payment_status=_value(payment.payment_status),
        total_amount=payment.total_amount,
        amount_received=payment.amount_received,
        remaining_amount=payment.remaining_amount,
        payment_date=payment.payment_date,
        payment_method=_value(payment.payment_method),
        reference_number=payment.reference_number,
        remarks=payment.remarks,
        approved_by=str(payment.approved_by) if payment.approved_by else None,
        approved_at=payment.approved_at,
        created_at=payment.created_at,
        updated_at=payment.updated_at,
    )


def to_history_entry(log: AuditLog) -> PaymentHistoryEntry:
    return PaymentHistoryEntry(
        action=log.action,
        actor_id=str(log.actor_id) if log.actor_id else None,
        actor_role=log.actor_role,
        changed_fields=log.changed_fields,
        before_state=log.before_state,
        after_state=log.after_state,
        created_at=log.created_at,
    )


def format_display_date(value) -> Optional[str]:
    return value.strftime("%d/%m/%Y") if value else None


def format_display_timestamp(value: datetime) -> str:
    return value.strftime("%d/%m/%Y %H:%M:%S")
