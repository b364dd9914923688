import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brickflow.exceptions import NotFound
from brickflow.models.brick_type import BrickType


async def get_active_brick_type(session: AsyncSession, brick_type_id: uuid.UUID) -> BrickType:
    result = await session.execute(
        select(BrickType).where(BrickType.id == brick_type_id, BrickType.is_active.is_(True))
    )
    brick_type = result.scalar_one_or_none()
    if brick_type is None:
        raise NotFound.for_entity("Brick type", brick_type_id)
    return brick_type
