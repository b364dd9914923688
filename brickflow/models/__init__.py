"""Central model registry: import all models so Base.metadata sees every table."""

from brickflow.database import Base  # noqa: F401

from brickflow.models.user import User  # noqa: F401
from brickflow.models.brick_type import BrickType  # noqa: F401
from brickflow.models.requisition import Requisition  # noqa: F401
from brickflow.models.delivery_challan import DeliveryChallan  # noqa: F401
from brickflow.models.payment import Payment  # noqa: F401
from brickflow.models.sequence import SequenceCounter  # noqa: F401
from brickflow.models.audit_log import AuditLog  # noqa: F401
from brickflow.models.status import (  # noqa: F401
    DeliveryStatus,
    PaymentMethod,
    PaymentStatus,
    RequisitionStatus,
)
