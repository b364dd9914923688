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
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from brickflow.database import Base, utcnow
from brickflow.models.status import RequisitionStatus, status_type
from brickflow.services.money_service import line_total

if TYPE_CHECKING:
    from brickflow.models.brick_type import BrickType
    from brickflow.models.delivery_challan import DeliveryChallan
    from brickflow.models.user import User

# Columns whose change forces total_amount to be recomputed before persisting.
TOTAL_INPUTS = ("quantity", "price_per_unit", "entered_price")


class Requisition(Base):
    __tablename__ = "requisitions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    date: Mapped[date_type] = mapped_column(Date, nullable=False, default=date_type.today)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    brick_type_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("brick_types.id"), nullable=False
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    price_per_unit: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    entered_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    customer_address: Mapped[str] = mapped_column(Text, nullable=False)
    customer_location: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[RequisitionStatus] = mapped_column(
        status_type(RequisitionStatus, "requisition_status"),
        nullable=False,
        default=RequisitionStatus.SUBMITTED,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    user: Mapped["User"] = relationship(lazy="selectin")
    brick_type: Mapped["BrickType"] = relationship(lazy="selectin")
    delivery_challan: Mapped[Optional["DeliveryChallan"]] = relationship(
        back_populates="requisition", uselist=False, lazy="selectin"
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="chk_requisition_quantity"),
        CheckConstraint("price_per_unit >= 0", name="chk_requisition_price"),
        CheckConstraint(
            "entered_price IS NULL OR entered_price > 0", name="chk_requisition_entered_price"
        ),
        CheckConstraint("total_amount >= 0", name="chk_requisition_total"),
        Index("idx_requisitions_status", "status"),
        Index("idx_requisitions_user", "user_id"),
        Index("idx_requisitions_date", "date"),
    )

    @property
    def unit_price_for_total(self) -> Decimal:
        return self.entered_price if self.entered_price is not None else self.price_per_unit

    def can_transition_to(self, target) -> bool:
        return RequisitionStatus(self.status).can_transition_to(target)

    def update_status(self, target) -> bool:
        """Advance to ``target`` when it is the immediate successor. Never raises."""
        if not self.can_transition_to(target):
            return False
        self.status = RequisitionStatus(target)
        return True

    def recalculate_total(self) -> Decimal:
        self.total_amount = line_total(self.quantity, self.unit_price_for_total)
        return self.total_amount


@event.listens_for(Requisition, "before_insert")
def _total_before_insert(mapper, connection, target: Requisition):
    target.recalculate_total()


@event.listens_for(Requisition, "before_update")
def _total_before_update(mapper, connection, target: Requisition):
    attrs = inspect(target).attrs
    if any(attrs[name].history.has_changes() for name in TOTAL_INPUTS):
        target.recalculate_total()
