import uuid
from datetime import date as date_type, datetime
from decimal import Decimal
from typing import Optional, TYPE_CHECKING

from sqlalchemy import (
    String,
    Text,
    Date,
    DateTime,
    Numeric,
    ForeignKey,
    CheckConstraint,
    Index,
    Uuid,
    event,
    select,
)
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column, relationship

from brickflow.database import Base, utcnow
from brickflow.exceptions import RecordImmutable
from brickflow.models.status import PaymentMethod, PaymentStatus, status_type

if TYPE_CHECKING:
    from brickflow.models.delivery_challan import DeliveryChallan
    from brickflow.models.user import User


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    delivery_challan_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("delivery_challans.id"), nullable=False, unique=True
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        status_type(PaymentStatus, "payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    amount_received: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00")
    )
    payment_date: Mapped[Optional[date_type]] = mapped_column(Date)
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        status_type(PaymentMethod, "payment_method")
    )
    reference_number: Mapped[Optional[str]] = mapped_column(String(100))
    remarks: Mapped[Optional[str]] = mapped_column(Text)
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"))
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    delivery_challan: Mapped["DeliveryChallan"] = relationship(
        back_populates="payment", lazy="selectin"
    )
    approver: Mapped[Optional["User"]] = relationship(lazy="selectin")

    __table_args__ = (
        CheckConstraint("total_amount > 0", name="chk_payment_total"),
        CheckConstraint("amount_received >= 0", name="chk_payment_received_min"),
        CheckConstraint("amount_received <= total_amount", name="chk_payment_received_max"),
        Index("idx_payments_status", "payment_status"),
        Index("idx_payments_date", "payment_date"),
    )

    @hybrid_property
    def remaining_amount(self) -> Decimal:
        return self.total_amount - self.amount_received

    @property
    def is_approved(self) -> bool:
        return self.payment_status == PaymentStatus.APPROVED

    @property
    def is_fully_paid(self) -> bool:
        return self.amount_received >= self.total_amount

    def can_transition_to(self, target) -> bool:
        return PaymentStatus(self.payment_status).can_transition_to(target)


def _persisted_status(connection, target: Payment) -> Optional[PaymentStatus]:
    table = Payment.__table__
    value = connection.scalar(
        select(table.c.payment_status).where(table.c.id == target.id)
    )
    return PaymentStatus.parse(value) if value is not None else None


@event.listens_for(Payment, "before_update")
def _block_update_when_approved(mapper, connection, target: Payment):
    if _persisted_status(connection, target) == PaymentStatus.APPROVED:
        raise RecordImmutable.for_approved_payment()


@event.listens_for(Payment, "before_delete")
def _block_delete_when_approved(mapper, connection, target: Payment):
    if _persisted_status(connection, target) == PaymentStatus.APPROVED:
        raise RecordImmutable.for_approved_payment()
