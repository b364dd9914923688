from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from brickflow.actor import Actor, Role
from brickflow.database import get_db
from brickflow.middleware.auth import get_current_actor
from brickflow.middleware.authorization import require_roles
from brickflow.services import report_service
from brickflow.services.workflow_service import OperationResult

router = APIRouter()

REPORT_ROLES = (Role.ACCOUNTS, Role.ADMIN)


@router.get("/daily")
async def daily_report(
    report_date: date = Query(None, alias="date"),
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles(*REPORT_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    report = await report_service.daily_report(db, report_date or date.today())
    return OperationResult.success(
        "Daily report generated successfully", report.model_dump(mode="json")
    ).as_response()


@router.get("/range")
async def range_report(
    from_date: date = Query(...),
    to_date: date = Query(...),
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles(*REPORT_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    report = await report_service.range_report(db, from_date, to_date)
    return OperationResult.success(
        "Range report generated successfully", report.model_dump(mode="json")
    ).as_response()


@router.get("/payment-summary")
async def payment_summary(
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles(*REPORT_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    summary = await report_service.payment_summary(db)
    return OperationResult.success(
        "Payment summary generated successfully", summary.model_dump(mode="json")
    ).as_response()
