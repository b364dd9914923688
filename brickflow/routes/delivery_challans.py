import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from brickflow.actor import Actor, Role
from brickflow.database import get_db
from brickflow.middleware.auth import get_current_actor
from brickflow.middleware.authorization import require_roles
from brickflow.schemas.common import build_pagination
from brickflow.schemas.delivery_challan import ChallanCreate, ChallanUpdate, DeliveryStatusUpdate
from brickflow.services import challan_service
from brickflow.services.presenters import to_challan_response
from brickflow.services.workflow_service import (
    OperationResult,
    WorkflowOrchestrator,
    get_orchestrator,
)

router = APIRouter()

READ_ROLES = (Role.LOGISTICS, Role.ACCOUNTS, Role.ADMIN)


@router.get("")
async def list_challans(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    delivery_status: str = Query(None),
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles(*READ_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    items, total = await challan_service.list_challans(
        db, delivery_status=delivery_status, page=page, limit=limit
    )
    return OperationResult.success(
        "Delivery challans retrieved successfully",
        {
            "items": [to_challan_response(c).model_dump(mode="json") for c in items],
            "pagination": build_pagination(page, limit, total).model_dump(),
        },
    ).as_response()


@router.get("/awaiting-payment")
async def challans_awaiting_payment(
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles(Role.ACCOUNTS, Role.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    items = await challan_service.challans_awaiting_payment(db)
    return OperationResult.success(
        "Challans awaiting payment retrieved successfully",
        [to_challan_response(c).model_dump(mode="json") for c in items],
    ).as_response()


@router.get("/{challan_id}")
async def get_challan(
    challan_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles(*READ_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    challan = await challan_service.get_challan(db, challan_id)
    return OperationResult.success(
        "Delivery challan retrieved successfully",
        to_challan_response(challan).model_dump(mode="json"),
    ).as_response()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_challan(
    body: ChallanCreate,
    actor: Actor = Depends(get_current_actor),
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    return (await orchestrator.create_challan_from_requisition(actor, body)).as_response()


@router.put("/{challan_id}")
async def update_challan(
    challan_id: uuid.UUID,
    body: ChallanUpdate,
    actor: Actor = Depends(get_current_actor),
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    return (await orchestrator.update_challan(actor, challan_id, body)).as_response()


@router.patch("/{challan_id}/delivery-status")
async def update_delivery_status(
    challan_id: uuid.UUID,
    body: DeliveryStatusUpdate,
    actor: Actor = Depends(get_current_actor),
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    result = await orchestrator.update_delivery_status(actor, challan_id, body.delivery_status)
    return result.as_response()


@router.post("/{challan_id}/print")
async def print_challan(
    challan_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    return (await orchestrator.print_challan(actor, challan_id)).as_response()


@router.delete("/{challan_id}")
async def delete_challan(
    challan_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    return (await orchestrator.delete_challan(actor, challan_id)).as_response()
