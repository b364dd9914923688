import uuid
from datetime import date as date_type, datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import (
    String,
    Text,
    Date,
    DateTime,
    Integer,
    ForeignKey,
    CheckConstraint,
    Index,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from brickflow.database import Base, utcnow
from brickflow.models.status import DeliveryStatus, status_type

if TYPE_CHECKING:
    from brickflow.models.payment import Payment
    from brickflow.models.requisition import Requisition


class DeliveryChallan(Base):
    __tablename__ = "delivery_challans"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    challan_number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    requisition_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("requisitions.id"), nullable=False, unique=True
    )
    order_number: Mapped[str] = mapped_column(String(20), nullable=False)
    date: Mapped[date_type] = mapped_column(Date, nullable=False, default=date_type.today)
    vehicle_number: Mapped[str] = mapped_column(String(50), nullable=False)
    driver_name: Mapped[str] = mapped_column(String(255), nullable=False)
    vehicle_type: Mapped[Optional[str]] = mapped_column(String(100))
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    remarks: Mapped[Optional[str]] = mapped_column(Text)
    delivery_status: Mapped[DeliveryStatus] = mapped_column(
        status_type(DeliveryStatus, "delivery_status"),
        nullable=False,
        default=DeliveryStatus.PENDING,
    )
    delivery_date: Mapped[Optional[date_type]] = mapped_column(Date)
    print_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    requisition: Mapped["Requisition"] = relationship(
        back_populates="delivery_challan", lazy="selectin"
    )
    payment: Mapped[Optional["Payment"]] = relationship(
        back_populates="delivery_challan", uselist=False, lazy="selectin"
    )

    __table_args__ = (
        CheckConstraint("print_count >= 0", name="chk_challan_print_count"),
        Index("idx_challans_status", "delivery_status"),
        Index("idx_challans_delivery_date", "delivery_date"),
    )

    @property
    def is_delivered(self) -> bool:
        return self.delivery_status == DeliveryStatus.DELIVERED

    def can_transition_to(self, target) -> bool:
        return DeliveryStatus(self.delivery_status).can_transition_to(target)

    def update_delivery_status(self, target) -> bool:
        """Apply a legal edge of the delivery digraph. Returns False otherwise."""
        if DeliveryStatus.parse(target) is None or not self.can_transition_to(target):
            return False
        self.delivery_status = DeliveryStatus(target)
        if self.delivery_status == DeliveryStatus.DELIVERED and self.delivery_date is None:
            self.delivery_date = date_type.today()
        return True

    def mark_delivered(self, on: Optional[date_type] = None) -> None:
        """Close the challan outside the digraph; used when a payment is booked against it."""
        self.delivery_status = DeliveryStatus.DELIVERED
        self.delivery_date = on or date_type.today()

    def mark_as_printed(self) -> int:
        self.print_count = (self.print_count or 0) + 1
        return self.print_count
