import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from brickflow.actor import Actor, Role
from brickflow.database import get_db
from brickflow.middleware.auth import get_current_actor
from brickflow.middleware.authorization import require_roles
from brickflow.schemas.common import build_pagination
from brickflow.schemas.payment import PaymentCreate, PaymentUpdate
from brickflow.services import payment_service
from brickflow.services.presenters import to_history_entry, to_payment_response
from brickflow.services.workflow_service import (
    OperationResult,
    WorkflowOrchestrator,
    get_orchestrator,
)

router = APIRouter()


@router.get("")
async def list_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    payment_status: str = Query(None, alias="status"),
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles(Role.ACCOUNTS, Role.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    items, total = await payment_service.list_payments(
        db, payment_status=payment_status, page=page, limit=limit
    )
    return OperationResult.success(
        "Payments retrieved successfully",
        {
            "items": [to_payment_response(p).model_dump(mode="json") for p in items],
            "pagination": build_pagination(page, limit, total).model_dump(),
        },
    ).as_response()


@router.get("/{payment_id}")
async def get_payment(
    payment_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles(Role.ACCOUNTS, Role.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    payment = await payment_service.get_payment(db, payment_id)
    return OperationResult.success(
        "Payment retrieved successfully", to_payment_response(payment).model_dump(mode="json")
    ).as_response()


@router.get("/{payment_id}/history")
async def get_payment_history(
    payment_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles(Role.ACCOUNTS, Role.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    logs = await payment_service.payment_history(db, payment_id)
    return OperationResult.success(
        "Payment history retrieved successfully",
        [to_history_entry(log).model_dump(mode="json") for log in logs],
    ).as_response()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_payment(
    body: PaymentCreate,
    actor: Actor = Depends(get_current_actor),
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    return (await orchestrator.create_payment(actor, body)).as_response()


@router.put("/{payment_id}")
async def update_payment(
    payment_id: uuid.UUID,
    body: PaymentUpdate,
    actor: Actor = Depends(get_current_actor),
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    return (await orchestrator.update_payment(actor, payment_id, body)).as_response()


@router.post("/{payment_id}/approve")
async def approve_payment(
    payment_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    return (await orchestrator.approve_payment(actor, payment_id)).as_response()


@router.delete("/{payment_id}")
async def delete_payment(
    payment_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    return (await orchestrator.delete_payment(actor, payment_id)).as_response()
