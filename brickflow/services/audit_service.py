"""Audit logging service: records entity state changes."""

from typing import Any, Optional
from datetime import date, datetime
from decimal import Decimal
import enum
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from brickflow.actor import Actor
from brickflow.database import utcnow
from brickflow.models.audit_log import AuditLog

logger = structlog.get_logger()


def _jsonable(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def snapshot(entity, fields: tuple[str, ...]) -> dict:
    """Plain JSON-safe dict of the named attributes, for before/after states."""
    return {name: _jsonable(getattr(entity, name)) for name in fields}


def _compute_changed_fields(
    before: Optional[dict], after: Optional[dict]
) -> Optional[list[str]]:
    """Diff two state dicts and return list of changed field names."""
    if not before or not after:
        return None
    changed = []
    all_keys = set(before.keys()) | set(after.keys())
    for key in sorted(all_keys):
        if before.get(key) != after.get(key):
            changed.append(key)
    return changed or None


async def create_audit_log(
    session: AsyncSession,
    actor: Optional[Actor],
    action: str,
    entity_type: str,
    entity_id: uuid.UUID,
    before_state: Optional[dict] = None,
    after_state: Optional[dict] = None,
) -> AuditLog:
    """
    Create an audit log entry.

    Uses session.flush(); the caller owns the transaction.
    """
    changed_fields = _compute_changed_fields(before_state, after_state)
    request_id = structlog.contextvars.get_contextvars().get("request_id")

    audit = AuditLog(
        actor_id=actor.user_id if actor else None,
        actor_role=actor.role if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        before_state=before_state,
        after_state=after_state,
        changed_fields=changed_fields,
        request_id=request_id,
        created_at=utcnow(),
    )
    session.add(audit)
    await session.flush()

    logger.info(
        "audit_log_created",
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        actor_id=str(actor.user_id) if actor else None,
    )
    return audit


async def list_audit_logs(
    session: AsyncSession, entity_type: str, entity_id: uuid.UUID
) -> list[AuditLog]:
    result = await session.execute(
        select(AuditLog)
        .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
        .order_by(AuditLog.created_at.desc())
    )
    return list(result.scalars().all())
