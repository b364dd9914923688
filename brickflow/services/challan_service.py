"""
Delivery challan rules: creation from a requisition, delivery tracking,
printing. Functions flush only; the orchestrator owns the transaction.
"""

from datetime import date
from typing import Optional
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from brickflow.actor import Actor, Role, ensure_role
from brickflow.config import settings
from brickflow.database import utcnow
from brickflow.exceptions import (
    InvalidTransition,
    NotFound,
    RecordImmutable,
    ValidationFailed,
)
from brickflow.models.delivery_challan import DeliveryChallan
from brickflow.models.payment import Payment
from brickflow.models.status import DeliveryStatus, RequisitionStatus
from brickflow.schemas.delivery_challan import ChallanCreate, ChallanUpdate, PrintableChallan
from brickflow.services.audit_service import create_audit_log, snapshot
from brickflow.services.presenters import format_display_date, format_display_timestamp
from brickflow.services.requisition_service import get_requisition
from brickflow.services.sequence_service import next_identifier

logger = structlog.get_logger()

AUDIT_FIELDS = (
    "challan_number",
    "order_number",
    "vehicle_number",
    "driver_name",
    "vehicle_type",
    "location",
    "remarks",
    "delivery_status",
    "delivery_date",
    "print_count",
)


async def get_challan(
    session: AsyncSession, challan_id: uuid.UUID, for_update: bool = False
) -> DeliveryChallan:
    q = select(DeliveryChallan).where(DeliveryChallan.id == challan_id)
    if for_update:
        q = q.with_for_update()
    challan = (await session.execute(q)).scalar_one_or_none()
    if challan is None:
        raise NotFound.for_entity("Delivery challan", challan_id)
    return challan


def validate_requisition_for_challan(req) -> None:
    if req.status != RequisitionStatus.SUBMITTED:
        raise ValidationFailed(
            "Only submitted requisitions can have delivery challans created",
            {"requisition": ["Only submitted requisitions can have delivery challans created."]},
        )
    if req.delivery_challan is not None:
        raise ValidationFailed(
            "This requisition already has a delivery challan",
            {"requisition": ["This requisition already has a delivery challan."]},
        )


async def create_challan_from_requisition(
    session: AsyncSession, actor: Actor, body: ChallanCreate
) -> DeliveryChallan:
    ensure_role(actor, Role.LOGISTICS)

    req = await get_requisition(session, body.requisition_id, for_update=True)
    validate_requisition_for_challan(req)

    challan_number = await next_identifier(
        session,
        DeliveryChallan.challan_number,
        settings.CHALLAN_NUMBER_PREFIX,
        settings.SEQUENCE_PAD_WIDTH,
    )
    challan = DeliveryChallan(
        challan_number=challan_number,
        requisition=req,
        order_number=req.order_number,
        date=date.today(),
        vehicle_number=body.vehicle_number,
        driver_name=body.driver_name,
        vehicle_type=body.vehicle_type,
        location=body.location,
        remarks=body.remarks,
        delivery_status=DeliveryStatus.PENDING,
        print_count=0,
    )
    session.add(challan)
    if not req.update_status(RequisitionStatus.ASSIGNED):
        raise InvalidTransition.between(
            "status", RequisitionStatus(req.status).value, RequisitionStatus.ASSIGNED.value
        )
    await session.flush()

    await create_audit_log(
        session, actor, "CHALLAN_CREATED", "delivery_challan", challan.id,
        after_state=snapshot(challan, AUDIT_FIELDS),
    )
    logger.info(
        "challan_created",
        challan_id=str(challan.id),
        challan_number=challan.challan_number,
        order_number=challan.order_number,
    )
    return challan


async def update_delivery_status(
    session: AsyncSession, actor: Actor, challan_id: uuid.UUID, target: str
) -> DeliveryChallan:
    ensure_role(actor, Role.LOGISTICS)
    challan = await get_challan(session, challan_id, for_update=True)
    current = DeliveryStatus(challan.delivery_status).value

    if DeliveryStatus.parse(target) is None:
        raise ValidationFailed(
            "Validation failed",
            {"delivery_status": [f"Delivery status must be one of: {', '.join(DeliveryStatus.values())}"]},
        )
    before = snapshot(challan, AUDIT_FIELDS)
    if not challan.update_delivery_status(target):
        raise InvalidTransition.between("delivery_status", current, target)

    if challan.delivery_status == DeliveryStatus.DELIVERED:
        req = challan.requisition
        if not req.update_status(RequisitionStatus.DELIVERED):
            raise InvalidTransition.between(
                "status", RequisitionStatus(req.status).value, RequisitionStatus.DELIVERED.value
            )
    await session.flush()

    await create_audit_log(
        session, actor, "DELIVERY_STATUS_CHANGED", "delivery_challan", challan.id,
        before_state=before, after_state=snapshot(challan, AUDIT_FIELDS),
    )
    logger.info(
        "delivery_status_changed",
        challan_number=challan.challan_number,
        from_status=current,
        to_status=DeliveryStatus(challan.delivery_status).value,
    )
    return challan


async def update_challan_details(
    session: AsyncSession, actor: Actor, challan_id: uuid.UUID, body: ChallanUpdate
) -> DeliveryChallan:
    ensure_role(actor, Role.LOGISTICS)
    challan = await get_challan(session, challan_id, for_update=True)
    if challan.is_delivered:
        raise RecordImmutable.for_delivered_challan()

    changes = body.model_dump(exclude_unset=True)
    if not changes:
        return challan

    before = snapshot(challan, AUDIT_FIELDS)
    for field, value in changes.items():
        setattr(challan, field, value)
    await session.flush()

    await create_audit_log(
        session, actor, "CHALLAN_UPDATED", "delivery_challan", challan.id,
        before_state=before, after_state=snapshot(challan, AUDIT_FIELDS),
    )
    return challan


def build_printable_document(challan: DeliveryChallan) -> PrintableChallan:
    req = challan.requisition
    brick_type = req.brick_type
    sales_executive = req.user
    return PrintableChallan(
        challan_info={
            "challan_number": challan.challan_number,
            "order_number": challan.order_number,
            "date": format_display_date(challan.date),
            "delivery_status": DeliveryStatus(challan.delivery_status).value.replace("_", " ").capitalize(),
        },
        order_details={
            "brick_type": brick_type.name,
            "quantity": f"{req.quantity:.2f}",
            "unit": brick_type.unit,
            "price_per_unit": f"{req.price_per_unit:.2f}",
            "total_amount": f"{req.total_amount:.2f}",
        },
        customer_details={
            "name": req.customer_name,
            "phone": req.customer_phone,
            "address": req.customer_address,
            "location": req.customer_location,
        },
        vehicle_details={
            "vehicle_number": challan.vehicle_number,
            "driver_name": challan.driver_name,
            "vehicle_type": challan.vehicle_type,
            "location": challan.location,
        },
        sales_executive={
            "name": sales_executive.name or sales_executive.email,
            "email": sales_executive.email,
        },
        delivery_info={
            "delivery_date": format_display_date(challan.delivery_date),
            "remarks": challan.remarks,
        },
        print_info={
            "print_count": challan.print_count,
            "generated_at": format_display_timestamp(utcnow()),
        },
    )


async def print_challan(
    session: AsyncSession, actor: Actor, challan_id: uuid.UUID
) -> PrintableChallan:
    """Count the print and return the data the document renderer needs."""
    ensure_role(actor, Role.LOGISTICS, Role.ADMIN)
    challan = await get_challan(session, challan_id, for_update=True)
    before = snapshot(challan, AUDIT_FIELDS)
    challan.mark_as_printed()
    await session.flush()

    await create_audit_log(
        session, actor, "CHALLAN_PRINTED", "delivery_challan", challan.id,
        before_state=before, after_state=snapshot(challan, AUDIT_FIELDS),
    )
    logger.info("challan_printed", challan_number=challan.challan_number, print_count=challan.print_count)
    return build_printable_document(challan)


async def list_challans(
    session: AsyncSession,
    delivery_status: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[DeliveryChallan], int]:
    q = select(DeliveryChallan)
    count_q = select(func.count(DeliveryChallan.id))
    if delivery_status:
        parsed = DeliveryStatus.parse(delivery_status)
        if parsed is None:
            raise ValidationFailed(
                "Validation failed",
                {"delivery_status": [f"Delivery status must be one of: {', '.join(DeliveryStatus.values())}"]},
            )
        q = q.where(DeliveryChallan.delivery_status == parsed)
        count_q = count_q.where(DeliveryChallan.delivery_status == parsed)

    total = (await session.execute(count_q)).scalar() or 0
    result = await session.execute(
        q.order_by(DeliveryChallan.created_at.desc()).offset((page - 1) * limit).limit(limit)
    )
    return list(result.scalars().all()), total


async def challans_awaiting_payment(session: AsyncSession) -> list[DeliveryChallan]:
    result = await session.execute(
        select(DeliveryChallan)
        .outerjoin(Payment, Payment.delivery_challan_id == DeliveryChallan.id)
        .where(DeliveryChallan.delivery_status == DeliveryStatus.PENDING, Payment.id.is_(None))
        .order_by(DeliveryChallan.created_at.asc())
    )
    return list(result.scalars().all())
