"""
Requisition (customer order) rules.

Functions take the caller's AsyncSession and only flush; the workflow
orchestrator owns the transaction.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from brickflow.actor import Actor, Role, ensure_role
from brickflow.config import settings
from brickflow.exceptions import NotFound, RecordImmutable, ValidationFailed
from brickflow.models.delivery_challan import DeliveryChallan
from brickflow.models.requisition import Requisition
from brickflow.models.status import RequisitionStatus
from brickflow.schemas.requisition import RequisitionCreate, RequisitionUpdate
from brickflow.services.audit_service import create_audit_log, snapshot
from brickflow.services.brick_type_service import get_active_brick_type
from brickflow.services.money_service import (
    amounts_differ,
    line_total,
    verify_price_unchanged,
    verify_total,
)
from brickflow.services.sequence_service import next_identifier

logger = structlog.get_logger()

AUDIT_FIELDS = (
    "order_number",
    "status",
    "quantity",
    "price_per_unit",
    "entered_price",
    "total_amount",
    "customer_name",
    "customer_phone",
    "customer_address",
    "customer_location",
)

CUSTOMER_FIELDS = {
    "customer_name": "Customer name",
    "customer_phone": "Customer phone",
    "customer_address": "Customer address",
    "customer_location": "Customer location",
}

POSITIVE_FIELDS = {
    "quantity": "Quantity",
    "entered_price": "Entered price",
    "total_amount": "Total amount",
}


def validate_requisition_fields(values: dict) -> None:
    errors: dict[str, list[str]] = {}
    for field, label in CUSTOMER_FIELDS.items():
        if not (values.get(field) or "").strip():
            errors[field] = [f"{label} is required"]
    for field, label in POSITIVE_FIELDS.items():
        if field not in values:
            continue
        value = values[field]
        if value is None or Decimal(value) <= 0:
            errors[field] = [f"{label} must be greater than zero"]
    if errors:
        raise ValidationFailed("Validation failed", errors)


def can_view(actor: Actor, req: Requisition) -> bool:
    if actor.has_role(Role.SALES_EXECUTIVE):
        return req.user_id == actor.user_id
    return True


async def get_requisition(
    session: AsyncSession,
    requisition_id: uuid.UUID,
    actor: Optional[Actor] = None,
    for_update: bool = False,
) -> Requisition:
    q = select(Requisition).where(Requisition.id == requisition_id)
    if for_update:
        q = q.with_for_update()
    req = (await session.execute(q)).scalar_one_or_none()
    if req is None or (actor is not None and not can_view(actor, req)):
        raise NotFound.for_entity("Requisition", requisition_id)
    return req


async def create_requisition(
    session: AsyncSession, actor: Actor, body: RequisitionCreate
) -> Requisition:
    ensure_role(actor, Role.SALES_EXECUTIVE)

    brick_type = await get_active_brick_type(session, body.brick_type_id)
    total_amount = verify_total(body.quantity, body.entered_price, body.total_amount)
    if body.price_per_unit is not None:
        verify_price_unchanged(brick_type.current_price, body.price_per_unit)
    validate_requisition_fields(body.model_dump())

    order_number = await next_identifier(
        session,
        Requisition.order_number,
        settings.ORDER_NUMBER_PREFIX,
        settings.SEQUENCE_PAD_WIDTH,
    )
    req = Requisition(
        order_number=order_number,
        date=date.today(),
        user_id=actor.user_id,
        brick_type=brick_type,
        quantity=body.quantity,
        price_per_unit=brick_type.current_price,
        entered_price=body.entered_price,
        total_amount=total_amount,
        customer_name=body.customer_name.strip(),
        customer_phone=body.customer_phone.strip(),
        customer_address=body.customer_address.strip(),
        customer_location=body.customer_location.strip(),
        status=RequisitionStatus.SUBMITTED,
    )
    session.add(req)
    await session.flush()

    await create_audit_log(
        session, actor, "REQUISITION_CREATED", "requisition", req.id,
        after_state=snapshot(req, AUDIT_FIELDS),
    )
    logger.info(
        "requisition_created",
        requisition_id=str(req.id),
        order_number=req.order_number,
        total_amount=str(req.total_amount),
    )
    return req


async def update_requisition(
    session: AsyncSession,
    actor: Actor,
    requisition_id: uuid.UUID,
    body: RequisitionUpdate,
) -> Requisition:
    """Edit an order that logistics has not picked up yet. Owner only."""
    ensure_role(actor, Role.SALES_EXECUTIVE)
    req = await get_requisition(session, requisition_id, actor=actor, for_update=True)
    if req.status != RequisitionStatus.SUBMITTED:
        raise RecordImmutable.for_advanced_requisition(RequisitionStatus(req.status).value)

    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        return req

    quantity = changes.get("quantity", req.quantity)
    unit_price = changes.get("entered_price", req.unit_price_for_total)
    if "total_amount" in changes:
        changes["total_amount"] = verify_total(quantity, unit_price, changes["total_amount"])

    merged = {name: getattr(req, name) for name in CUSTOMER_FIELDS}
    merged.update(
        {
            "quantity": quantity,
            "entered_price": unit_price,
            "total_amount": changes.get("total_amount", line_total(quantity, unit_price)),
        }
    )
    merged.update({k: v for k, v in changes.items() if k in CUSTOMER_FIELDS})
    validate_requisition_fields(merged)

    before = snapshot(req, AUDIT_FIELDS)
    for field, value in changes.items():
        setattr(req, field, value.strip() if isinstance(value, str) else value)
    await session.flush()

    await create_audit_log(
        session, actor, "REQUISITION_UPDATED", "requisition", req.id,
        before_state=before, after_state=snapshot(req, AUDIT_FIELDS),
    )
    logger.info("requisition_updated", requisition_id=str(req.id), fields=sorted(changes))
    return req


async def list_requisitions(
    session: AsyncSession,
    actor: Actor,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[Requisition], int]:
    q = select(Requisition)
    count_q = select(func.count(Requisition.id))

    if actor.has_role(Role.SALES_EXECUTIVE):
        q = q.where(Requisition.user_id == actor.user_id)
        count_q = count_q.where(Requisition.user_id == actor.user_id)
    if status:
        parsed = RequisitionStatus.parse(status)
        if parsed is None:
            raise ValidationFailed(
                "Validation failed",
                {"status": [f"Status must be one of: {', '.join(RequisitionStatus.values())}"]},
            )
        q = q.where(Requisition.status == parsed)
        count_q = count_q.where(Requisition.status == parsed)

    total = (await session.execute(count_q)).scalar() or 0
    result = await session.execute(
        q.order_by(Requisition.created_at.desc()).offset((page - 1) * limit).limit(limit)
    )
    return list(result.scalars().all()), total


async def pending_orders_queue(session: AsyncSession) -> list[Requisition]:
    """Submitted orders that still need a delivery challan, oldest first."""
    result = await session.execute(
        select(Requisition)
        .outerjoin(DeliveryChallan, DeliveryChallan.requisition_id == Requisition.id)
        .where(Requisition.status == RequisitionStatus.SUBMITTED, DeliveryChallan.id.is_(None))
        .order_by(Requisition.created_at.asc())
    )
    return list(result.scalars().all())


async def check_brick_price_changed(
    session: AsyncSession, brick_type_id: uuid.UUID, submitted_price: Decimal
) -> dict:
    brick_type = await get_active_brick_type(session, brick_type_id)
    return {
        "brick_type_id": str(brick_type.id),
        "brick_type_name": brick_type.name,
        "current_price": brick_type.current_price,
        "submitted_price": submitted_price,
        "price_changed": amounts_differ(brick_type.current_price, submitted_price),
    }
