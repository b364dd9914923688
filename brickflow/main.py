from fastapi import FastAPI, Depends, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional
import structlog

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from brickflow.config import settings
from brickflow.database import init_db, close_db, get_db
from brickflow.exceptions import BusinessRuleViolation
from brickflow.logging_config import setup_logging
from brickflow.middleware.correlation import CorrelationIdMiddleware
from brickflow.services.workflow_service import INTERNAL_ERROR_MESSAGE

# Import models so they are registered with Base.metadata
import brickflow.models  # noqa: F401

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("starting_brickflow", env=settings.ENVIRONMENT)
    await init_db()
    yield
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Global exception handlers: every error leaves as
# {"status": "fail"|"error", "message": ..., "data": null, "errors": {...}}
# ---------------------------------------------------------------------------

def _envelope(status_marker: str, message: str, errors: Optional[dict] = None) -> dict:
    return {"status": status_marker, "message": message, "data": None, "errors": errors or {}}


@app.exception_handler(BusinessRuleViolation)
async def business_rule_handler(request: Request, exc: BusinessRuleViolation) -> JSONResponse:
    logger.info("request_rejected", reason=exc.kind, path=request.url.path)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=_envelope("fail", message),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        errors.setdefault(".".join(loc) or "request", []).append(err.get("msg", "Invalid value"))
    return JSONResponse(status_code=422, content=_envelope("fail", "Validation failed", errors))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", path=request.url.path, method=request.method)
    return JSONResponse(status_code=500, content=_envelope("error", INTERNAL_ERROR_MESSAGE))


app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With", "X-Request-ID"],
)


@app.get("/health", tags=["System"])
async def health(response: Response, db: AsyncSession = Depends(get_db)):
    health_status = {"status": "healthy", "version": settings.APP_VERSION, "checks": {}}

    try:
        await db.execute(text("SELECT 1"))
        health_status["checks"]["db"] = "ok"
    except Exception as e:
        logger.error("health_check_db_failed", error=str(e))
        health_status["checks"]["db"] = "error"
        health_status["status"] = "unhealthy"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return health_status


# --- Routers ---
from brickflow.routes.requisitions import router as requisitions_router  # noqa: E402
from brickflow.routes.delivery_challans import router as delivery_challans_router  # noqa: E402
from brickflow.routes.payments import router as payments_router  # noqa: E402
from brickflow.routes.reports import router as reports_router  # noqa: E402

app.include_router(requisitions_router, prefix="/api/v1/requisitions", tags=["Requisitions"])
app.include_router(delivery_challans_router, prefix="/api/v1/delivery-challans", tags=["Delivery Challans"])
app.include_router(payments_router, prefix="/api/v1/payments", tags=["Payments"])
app.include_router(reports_router, prefix="/api/v1/reports", tags=["Reports"])
