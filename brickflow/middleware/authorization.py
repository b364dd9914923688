from fastapi import Depends

from brickflow.actor import Actor, ensure_role
from brickflow.middleware.auth import get_current_actor


def require_roles(*allowed_roles: str):
    """
    FastAPI dependency factory for role-based access control.

    Usage:
        @router.post("/payments")
        async def create_payment(
            actor: Actor = Depends(get_current_actor),
            _auth: None = Depends(require_roles(Role.ACCOUNTS)),
        ):
    """
    async def check_role(actor: Actor = Depends(get_current_actor)):
        ensure_role(actor, *allowed_roles)
        return None

    return check_role
