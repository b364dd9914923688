"""
Gapless human-readable identifiers (order numbers, challan numbers).

One ``sequence_counters`` row per prefix holds the last number issued. The row
is read with SELECT ... FOR UPDATE and bumped inside the caller's transaction,
so concurrent issuers of the same prefix queue on the row lock and a rollback
hands the number back. On engines without row locks the caller must hold the
prefix mutex taken by ``unit_of_work(serialize=...)``; otherwise issuing fails.

The first issue for a prefix seeds the counter from the highest identifier
already stored in the owning column.
"""

import re
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute
import structlog

from brickflow.database import SERIALIZED_PREFIXES, supports_row_locks
from brickflow.exceptions import SequenceLockUnavailable
from brickflow.models.sequence import SequenceCounter

logger = structlog.get_logger()


def format_identifier(prefix: str, number: int, pad_width: int) -> str:
    return f"{prefix}{number:0{pad_width}d}"


def parse_identifier(prefix: str, identifier: str) -> Optional[int]:
    """Numeric suffix of ``identifier`` or None when it is not one of ours."""
    if not identifier or not identifier.startswith(prefix):
        return None
    suffix = identifier[len(prefix):]
    if not re.fullmatch(r"\d+", suffix):
        return None
    return int(suffix)


def _ensure_exclusive(session: AsyncSession, prefix: str) -> None:
    if supports_row_locks(session):
        return
    if prefix not in session.info.get(SERIALIZED_PREFIXES, frozenset()):
        raise SequenceLockUnavailable(prefix)


async def _lock_counter(session: AsyncSession, prefix: str) -> Optional[SequenceCounter]:
    result = await session.execute(
        select(SequenceCounter)
        .where(SequenceCounter.prefix == prefix)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _last_issued(session: AsyncSession, column: InstrumentedAttribute, prefix: str) -> int:
    # Longest then lexicographically greatest: "ORD1000000" sorts after "ORD999999".
    result = await session.execute(
        select(column)
        .where(column.like(f"{prefix}%"))
        .order_by(func.length(column).desc(), column.desc())
        .limit(1)
    )
    return parse_identifier(prefix, result.scalar_one_or_none()) or 0


async def _create_counter(session: AsyncSession, prefix: str, seed: int) -> SequenceCounter:
    counter = SequenceCounter(prefix=prefix, current_value=seed)
    if not supports_row_locks(session):
        session.add(counter)
        return counter
    try:
        async with session.begin_nested():
            session.add(counter)
    except IntegrityError:
        # Another transaction inserted the row first; queue on its lock.
        return await _lock_counter(session, prefix)
    return counter


async def next_identifier(
    session: AsyncSession,
    column: InstrumentedAttribute,
    prefix: str,
    pad_width: int,
) -> str:
    """
    Issue the next identifier for ``prefix``.

    Must run inside the transaction that inserts the row consuming the
    identifier. Flushes only; the caller owns the transaction.
    """
    _ensure_exclusive(session, prefix)

    counter = await _lock_counter(session, prefix)
    if counter is None:
        seed = await _last_issued(session, column, prefix)
        counter = await _create_counter(session, prefix, seed)
        logger.info("sequence_counter_seeded", prefix=prefix, seed=seed)

    counter.current_value += 1
    await session.flush()

    identifier = format_identifier(prefix, counter.current_value, pad_width)
    logger.debug("sequence_identifier_issued", prefix=prefix, identifier=identifier)
    return identifier
