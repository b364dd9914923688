from datetime import datetime

from sqlalchemy import String, BigInteger, DateTime, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from brickflow.database import Base, utcnow


class SequenceCounter(Base):
    """Last number issued per identifier prefix. Locked FOR UPDATE while issuing."""

    __tablename__ = "sequence_counters"

    prefix: Mapped[str] = mapped_column(String(20), primary_key=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("current_value >= 0", name="chk_sequence_value"),
    )
