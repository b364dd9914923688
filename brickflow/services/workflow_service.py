"""
Workflow orchestrator: runs each order-to-cash use-case as one unit of work
and turns its outcome into an ``OperationResult``.

Business rule violations come back as ``fail`` results and are logged as
rejected outcomes. Anything else is logged with its traceback and comes back
as a generic ``error`` result. Lock contention (OperationalError) re-runs the
whole unit of work a bounded number of times.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional
import uuid

from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
import structlog

from brickflow.actor import Actor
from brickflow.config import settings
from brickflow.database import AsyncSessionLocal, unit_of_work
from brickflow.exceptions import BusinessRuleViolation, RecordImmutable
from brickflow.schemas.delivery_challan import ChallanCreate, ChallanUpdate
from brickflow.schemas.payment import PaymentCreate, PaymentUpdate
from brickflow.schemas.requisition import RequisitionCreate, RequisitionUpdate
from brickflow.services import challan_service, payment_service, requisition_service
from brickflow.services.presenters import (
    to_challan_response,
    to_payment_response,
    to_requisition_response,
)

INTERNAL_ERROR_MESSAGE = "Internal server error"


@dataclass
class OperationResult:
    status: str
    message: str
    data: Any = None
    errors: dict = field(default_factory=dict)
    http_status: int = 200

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "message": self.message,
            "data": self.data,
            "errors": self.errors,
        }

    def as_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.http_status, content=self.to_dict())

    @classmethod
    def success(cls, message: str, data: Any = None, http_status: int = 200) -> "OperationResult":
        return cls("success", message, data, {}, http_status)

    @classmethod
    def failure(cls, exc: BusinessRuleViolation) -> "OperationResult":
        return cls("fail", exc.message, None, exc.errors, exc.status_code)

    @classmethod
    def server_error(cls) -> "OperationResult":
        return cls("error", INTERNAL_ERROR_MESSAGE, None, {}, 500)


def _dump(model) -> Any:
    return model.model_dump(mode="json") if model is not None else None


class WorkflowOrchestrator:
    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        logger=None,
        max_attempts: Optional[int] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.logger = logger or structlog.get_logger()
        self.max_attempts = max_attempts or settings.UNIT_OF_WORK_MAX_ATTEMPTS

    async def _run(
        self,
        operation: str,
        actor: Actor,
        work: Callable[[AsyncSession], Awaitable[Any]],
        *,
        success_message: str,
        http_status: int = 200,
        serialize: Iterable[str] = (),
        context: Optional[dict] = None,
    ) -> OperationResult:
        log = self.logger.bind(
            operation=operation,
            actor_id=str(actor.user_id),
            actor_role=actor.role,
            **(context or {}),
        )
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(OperationalError),
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=0.05, max=1),
                reraise=True,
            ):
                with attempt:
                    async with unit_of_work(self.session_factory, serialize=serialize) as session:
                        data = await work(session)
        except BusinessRuleViolation as exc:
            log.info("use_case_rejected", reason=exc.kind, message=exc.message)
            return OperationResult.failure(exc)
        except Exception:
            log.exception("use_case_failed")
            return OperationResult.server_error()

        log.info("use_case_completed")
        return OperationResult.success(success_message, data, http_status)

    # -- requisitions -------------------------------------------------------

    async def create_requisition(self, actor: Actor, body: RequisitionCreate) -> OperationResult:
        async def work(session: AsyncSession):
            req = await requisition_service.create_requisition(session, actor, body)
            return _dump(to_requisition_response(req))

        return await self._run(
            "create_requisition", actor, work,
            success_message="Requisition created successfully",
            http_status=201,
            serialize=(settings.ORDER_NUMBER_PREFIX,),
        )

    async def update_requisition(
        self, actor: Actor, requisition_id: uuid.UUID, body: RequisitionUpdate
    ) -> OperationResult:
        async def work(session: AsyncSession):
            req = await requisition_service.update_requisition(session, actor, requisition_id, body)
            return _dump(to_requisition_response(req))

        return await self._run(
            "update_requisition", actor, work,
            success_message="Requisition updated successfully",
            context={"requisition_id": str(requisition_id)},
        )

    async def delete_requisition(self, actor: Actor, requisition_id: uuid.UUID) -> OperationResult:
        async def work(session: AsyncSession):
            raise RecordImmutable.for_requisition_deletion()

        return await self._run(
            "delete_requisition", actor, work,
            success_message="Requisition deleted",
            context={"requisition_id": str(requisition_id)},
        )

    # -- delivery challans --------------------------------------------------

    async def create_challan_from_requisition(
        self, actor: Actor, body: ChallanCreate
    ) -> OperationResult:
        async def work(session: AsyncSession):
            challan = await challan_service.create_challan_from_requisition(session, actor, body)
            return _dump(to_challan_response(challan))

        return await self._run(
            "create_challan", actor, work,
            success_message="Delivery challan created successfully",
            http_status=201,
            serialize=(settings.CHALLAN_NUMBER_PREFIX,),
            context={"requisition_id": str(body.requisition_id)},
        )

    async def update_delivery_status(
        self, actor: Actor, challan_id: uuid.UUID, delivery_status: str
    ) -> OperationResult:
        async def work(session: AsyncSession):
            challan = await challan_service.update_delivery_status(
                session, actor, challan_id, delivery_status
            )
            return _dump(to_challan_response(challan))

        return await self._run(
            "update_delivery_status", actor, work,
            success_message="Delivery status updated successfully",
            context={"challan_id": str(challan_id), "target": delivery_status},
        )

    async def update_challan(
        self, actor: Actor, challan_id: uuid.UUID, body: ChallanUpdate
    ) -> OperationResult:
        async def work(session: AsyncSession):
            challan = await challan_service.update_challan_details(session, actor, challan_id, body)
            return _dump(to_challan_response(challan))

        return await self._run(
            "update_challan", actor, work,
            success_message="Delivery challan updated successfully",
            context={"challan_id": str(challan_id)},
        )

    async def delete_challan(self, actor: Actor, challan_id: uuid.UUID) -> OperationResult:
        async def work(session: AsyncSession):
            raise RecordImmutable.for_challan_deletion()

        return await self._run(
            "delete_challan", actor, work,
            success_message="Delivery challan deleted",
            context={"challan_id": str(challan_id)},
        )

    async def print_challan(self, actor: Actor, challan_id: uuid.UUID) -> OperationResult:
        async def work(session: AsyncSession):
            return _dump(await challan_service.print_challan(session, actor, challan_id))

        return await self._run(
            "print_challan", actor, work,
            success_message="Printable challan generated",
            context={"challan_id": str(challan_id)},
        )

    # -- payments -----------------------------------------------------------

    async def create_payment(self, actor: Actor, body: PaymentCreate) -> OperationResult:
        async def work(session: AsyncSession):
            payment = await payment_service.create_payment(session, actor, body)
            return _dump(to_payment_response(payment))

        return await self._run(
            "create_payment", actor, work,
            success_message="Payment created successfully",
            http_status=201,
            context={"challan_id": str(body.delivery_challan_id)},
        )

    async def update_payment(
        self, actor: Actor, payment_id: uuid.UUID, body: PaymentUpdate
    ) -> OperationResult:
        async def work(session: AsyncSession):
            payment = await payment_service.update_payment(session, actor, payment_id, body)
            return _dump(to_payment_response(payment))

        return await self._run(
            "update_payment", actor, work,
            success_message="Payment updated successfully",
            context={"payment_id": str(payment_id)},
        )

    async def approve_payment(self, actor: Actor, payment_id: uuid.UUID) -> OperationResult:
        async def work(session: AsyncSession):
            payment = await payment_service.approve_payment(session, actor, payment_id)
            return _dump(to_payment_response(payment))

        return await self._run(
            "approve_payment", actor, work,
            success_message="Payment approved successfully",
            context={"payment_id": str(payment_id)},
        )

    async def delete_payment(self, actor: Actor, payment_id: uuid.UUID) -> OperationResult:
        async def work(session: AsyncSession):
            await payment_service.delete_payment(session, actor, payment_id)
            return None

        return await self._run(
            "delete_payment", actor, work,
            success_message="Payment deleted successfully",
            context={"payment_id": str(payment_id)},
        )


def get_orchestrator() -> WorkflowOrchestrator:
    """FastAPI dependency: orchestrator bound to the application session factory."""
    return WorkflowOrchestrator()
