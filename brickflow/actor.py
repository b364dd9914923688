"""The authenticated caller, passed explicitly into every use-case."""

import enum
import uuid
from dataclasses import dataclass
from typing import Optional

from brickflow.exceptions import UnauthorizedRole


class Role(str, enum.Enum):
    SALES_EXECUTIVE = "Sales Executive"
    LOGISTICS = "Logistics"
    ACCOUNTS = "Accounts"
    ADMIN = "Admin"


@dataclass(frozen=True)
class Actor:
    user_id: uuid.UUID
    role: str
    name: Optional[str] = None
    email: Optional[str] = None

    def has_role(self, *roles: str) -> bool:
        return self.role in {str(getattr(r, "value", r)) for r in roles}


def ensure_role(actor: Actor, *roles: str) -> None:
    if not actor.has_role(*roles):
        raise UnauthorizedRole.with_roles(
            [str(getattr(r, "value", r)) for r in roles], actor.role
        )
