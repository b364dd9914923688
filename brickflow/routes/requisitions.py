import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from brickflow.actor import Actor, Role
from brickflow.database import get_db
from brickflow.middleware.auth import get_current_actor
from brickflow.middleware.authorization import require_roles
from brickflow.schemas.common import build_pagination
from brickflow.schemas.requisition import (
    PriceCheckRequest,
    PriceCheckResponse,
    RequisitionCreate,
    RequisitionUpdate,
)
from brickflow.services import requisition_service
from brickflow.services.presenters import to_requisition_response
from brickflow.services.workflow_service import (
    OperationResult,
    WorkflowOrchestrator,
    get_orchestrator,
)

router = APIRouter()


@router.get("")
async def list_requisitions(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    req_status: str = Query(None, alias="status"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    items, total = await requisition_service.list_requisitions(
        db, actor, status=req_status, page=page, limit=limit
    )
    return OperationResult.success(
        "Requisitions retrieved successfully",
        {
            "items": [to_requisition_response(r).model_dump(mode="json") for r in items],
            "pagination": build_pagination(page, limit, total).model_dump(),
        },
    ).as_response()


@router.get("/pending-queue")
async def pending_orders_queue(
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles(Role.LOGISTICS, Role.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    items = await requisition_service.pending_orders_queue(db)
    return OperationResult.success(
        "Pending orders retrieved successfully",
        [to_requisition_response(r).model_dump(mode="json") for r in items],
    ).as_response()


@router.post("/price-check")
async def check_brick_price(
    body: PriceCheckRequest,
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles(Role.SALES_EXECUTIVE, Role.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    result = await requisition_service.check_brick_price_changed(
        db, body.brick_type_id, body.submitted_price
    )
    return OperationResult.success(
        "Price check completed", PriceCheckResponse(**result).model_dump(mode="json")
    ).as_response()


@router.get("/{requisition_id}")
async def get_requisition(
    requisition_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    req = await requisition_service.get_requisition(db, requisition_id, actor=actor)
    return OperationResult.success(
        "Requisition retrieved successfully",
        to_requisition_response(req).model_dump(mode="json"),
    ).as_response()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_requisition(
    body: RequisitionCreate,
    actor: Actor = Depends(get_current_actor),
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    return (await orchestrator.create_requisition(actor, body)).as_response()


@router.put("/{requisition_id}")
async def update_requisition(
    requisition_id: uuid.UUID,
    body: RequisitionUpdate,
    actor: Actor = Depends(get_current_actor),
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    return (await orchestrator.update_requisition(actor, requisition_id, body)).as_response()


@router.delete("/{requisition_id}")
async def delete_requisition(
    requisition_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    return (await orchestrator.delete_requisition(actor, requisition_id)).as_response()
