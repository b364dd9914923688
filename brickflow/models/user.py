import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, CheckConstraint, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from brickflow.actor import Role
from brickflow.database import Base, utcnow


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20))
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "role IN (" + ",".join(f"'{r.value}'" for r in Role) + ")",
            name="chk_user_role",
        ),
        Index("idx_users_role", "role"),
    )
