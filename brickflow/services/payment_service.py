"""
Payment rules: booking a payment against a challan, amount updates with
status derivation, approval, and the approval lock.

Approved payments are also frozen by the mapper guards in
``brickflow.models.payment``; the checks here give the caller an early, clear
error before anything is flushed.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from brickflow.actor import Actor, Role, ensure_role
from brickflow.database import utcnow
from brickflow.exceptions import (
    InvalidTransition,
    NotFound,
    RecordImmutable,
    ValidationFailed,
)
from brickflow.models.payment import Payment
from brickflow.models.status import (
    DeliveryStatus,
    PaymentMethod,
    PaymentStatus,
    RequisitionStatus,
    derive_payment_status,
)
from brickflow.schemas.payment import PaymentCreate, PaymentUpdate
from brickflow.services.audit_service import create_audit_log, list_audit_logs, snapshot
from brickflow.services.challan_service import get_challan
from brickflow.services.money_service import quantize_money, verify_payment_within_bounds

logger = structlog.get_logger()

AUDIT_FIELDS = (
    "payment_status",
    "total_amount",
    "amount_received",
    "payment_date",
    "payment_method",
    "reference_number",
    "remarks",
    "approved_by",
    "approved_at",
)


async def get_payment(
    session: AsyncSession, payment_id: uuid.UUID, for_update: bool = False
) -> Payment:
    q = select(Payment).where(Payment.id == payment_id)
    if for_update:
        q = q.with_for_update()
    payment = (await session.execute(q)).scalar_one_or_none()
    if payment is None:
        raise NotFound.for_entity("Payment", payment_id)
    return payment


def _parse_method(value: Optional[str]) -> Optional[PaymentMethod]:
    if value is None:
        return None
    try:
        return PaymentMethod(value)
    except ValueError:
        raise ValidationFailed(
            "Validation failed",
            {"payment_method": [f"Payment method must be one of: {', '.join(m.value for m in PaymentMethod)}"]},
        ) from None


def _require_non_negative(amount: Decimal) -> Decimal:
    if amount < 0:
        raise ValidationFailed(
            "Validation failed",
            {"amount_received": ["Amount received cannot be negative"]},
        )
    return quantize_money(amount)


def _advance_requisition(payment: Payment, target: RequisitionStatus) -> None:
    req = payment.delivery_challan.requisition
    if req.update_status(target):
        logger.info(
            "requisition_advanced_by_payment",
            order_number=req.order_number,
            to_status=target.value,
        )


async def create_payment(session: AsyncSession, actor: Actor, body: PaymentCreate) -> Payment:
    ensure_role(actor, Role.ACCOUNTS)

    challan = await get_challan(session, body.delivery_challan_id, for_update=True)
    if challan.delivery_status != DeliveryStatus.PENDING:
        raise ValidationFailed(
            "Can only create payment for pending challans",
            {"delivery_challan_id": ["Can only create payment for pending challans"]},
        )
    if challan.payment is not None:
        raise ValidationFailed(
            "Payment record already exists for this challan",
            {"delivery_challan_id": ["Payment record already exists for this challan"]},
        )

    req = challan.requisition
    total = quantize_money(body.total_amount if body.total_amount is not None else req.total_amount)
    if total <= 0:
        raise ValidationFailed(
            "Validation failed", {"total_amount": ["Total amount must be greater than zero"]}
        )
    received = _require_non_negative(
        body.amount_received if body.amount_received is not None else Decimal("0")
    )
    verify_payment_within_bounds(total, received)

    payment = Payment(
        delivery_challan=challan,
        total_amount=total,
        amount_received=received,
        payment_status=derive_payment_status(total, received),
        payment_date=body.payment_date or date.today(),
        payment_method=_parse_method(body.payment_method),
        reference_number=body.reference_number,
        remarks=body.remarks,
    )
    session.add(payment)

    # Booking a payment is what closes the delivery.
    challan.mark_delivered()
    if req.update_status(RequisitionStatus.DELIVERED):
        logger.info("requisition_advanced_by_payment", order_number=req.order_number, to_status="delivered")
    if payment.payment_status == PaymentStatus.PAID and payment.is_fully_paid:
        _advance_requisition(payment, RequisitionStatus.PAID)
    await session.flush()

    await create_audit_log(
        session, actor, "PAYMENT_CREATED", "payment", payment.id,
        after_state=snapshot(payment, AUDIT_FIELDS),
    )
    logger.info(
        "payment_created",
        payment_id=str(payment.id),
        challan_number=challan.challan_number,
        payment_status=payment.payment_status.value,
        amount_received=str(payment.amount_received),
    )
    return payment


def _apply_approval(payment: Payment, actor: Actor) -> None:
    if payment.is_approved:
        raise InvalidTransition(
            "Payment is already approved",
            {"payment_status": ["Payment is already approved"]},
        )
    if not payment.is_fully_paid:
        raise ValidationFailed(
            "Can only approve fully paid payments",
            {"amount_received": ["Can only approve fully paid payments"]},
        )
    payment.payment_status = PaymentStatus.APPROVED
    payment.approved_by = actor.user_id
    payment.approved_at = utcnow()
    _advance_requisition(payment, RequisitionStatus.PAID)
    _advance_requisition(payment, RequisitionStatus.COMPLETE)


async def update_payment(
    session: AsyncSession, actor: Actor, payment_id: uuid.UUID, body: PaymentUpdate
) -> Payment:
    ensure_role(actor, Role.ACCOUNTS)
    payment = await get_payment(session, payment_id, for_update=True)
    if payment.is_approved:
        raise RecordImmutable.for_approved_payment()

    changes = body.model_dump(exclude_unset=True)
    before = snapshot(payment, AUDIT_FIELDS)
    current = PaymentStatus(payment.payment_status)

    requested = None
    if changes.get("payment_status") is not None:
        requested = PaymentStatus.parse(changes["payment_status"])
        if requested is None:
            raise ValidationFailed(
                "Validation failed",
                {"payment_status": [f"Payment status must be one of: {', '.join(PaymentStatus.values())}"]},
            )

    if changes.get("amount_received") is not None:
        received = _require_non_negative(changes["amount_received"])
        verify_payment_within_bounds(payment.total_amount, received, payment.amount_received)
        derived = derive_payment_status(payment.total_amount, received)
        if requested is not None and requested != derived:
            raise InvalidTransition.between("payment_status", derived.value, requested.value)
        if derived != current and not current.can_transition_to(derived):
            raise InvalidTransition.between("payment_status", current.value, derived.value)
        payment.amount_received = received
        payment.payment_status = derived
    elif requested is not None and requested != current:
        if not current.can_transition_to(requested):
            raise InvalidTransition.between("payment_status", current.value, requested.value)
        if requested == PaymentStatus.APPROVED:
            _apply_approval(payment, actor)
        else:
            payment.payment_status = requested

    if "payment_method" in changes:
        payment.payment_method = _parse_method(changes["payment_method"])
    for field in ("payment_date", "reference_number", "remarks"):
        if field in changes:
            setattr(payment, field, changes[field])

    if payment.payment_status == PaymentStatus.PAID and payment.is_fully_paid:
        _advance_requisition(payment, RequisitionStatus.PAID)
    await session.flush()

    await create_audit_log(
        session, actor, "PAYMENT_UPDATED", "payment", payment.id,
        before_state=before, after_state=snapshot(payment, AUDIT_FIELDS),
    )
    logger.info(
        "payment_updated",
        payment_id=str(payment.id),
        from_status=current.value,
        to_status=PaymentStatus(payment.payment_status).value,
    )
    return payment


async def approve_payment(session: AsyncSession, actor: Actor, payment_id: uuid.UUID) -> Payment:
    ensure_role(actor, Role.ACCOUNTS)
    payment = await get_payment(session, payment_id, for_update=True)
    before = snapshot(payment, AUDIT_FIELDS)
    _apply_approval(payment, actor)
    await session.flush()

    await create_audit_log(
        session, actor, "PAYMENT_APPROVED", "payment", payment.id,
        before_state=before, after_state=snapshot(payment, AUDIT_FIELDS),
    )
    logger.info("payment_approved", payment_id=str(payment.id), approved_by=str(actor.user_id))
    return payment


async def delete_payment(session: AsyncSession, actor: Actor, payment_id: uuid.UUID) -> None:
    ensure_role(actor, Role.ACCOUNTS)
    payment = await get_payment(session, payment_id, for_update=True)
    if payment.is_approved:
        raise RecordImmutable.for_approved_payment()

    before = snapshot(payment, AUDIT_FIELDS)
    await session.delete(payment)
    await session.flush()

    await create_audit_log(
        session, actor, "PAYMENT_DELETED", "payment", payment_id, before_state=before
    )
    logger.info("payment_deleted", payment_id=str(payment_id))


async def payment_history(session: AsyncSession, payment_id: uuid.UUID):
    await get_payment(session, payment_id)
    return await list_audit_logs(session, "payment", payment_id)


async def list_payments(
    session: AsyncSession,
    payment_status: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[Payment], int]:
    q = select(Payment)
    count_q = select(func.count(Payment.id))
    if payment_status:
        parsed = PaymentStatus.parse(payment_status)
        if parsed is None:
            raise ValidationFailed(
                "Validation failed",
                {"payment_status": [f"Payment status must be one of: {', '.join(PaymentStatus.values())}"]},
            )
        q = q.where(Payment.payment_status == parsed)
        count_q = count_q.where(Payment.payment_status == parsed)

    total = (await session.execute(count_q)).scalar() or 0
    result = await session.execute(
        q.order_by(Payment.created_at.desc()).offset((page - 1) * limit).limit(limit)
    )
    return list(result.scalars().all()), total
