import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
import structlog

from brickflow.actor import Actor
from brickflow.config import settings

logger = structlog.get_logger()

security = HTTPBearer()


def decode_actor_token(token: str) -> Actor:
    """Verify a bearer token and turn its claims into an Actor. Raises JWTError."""
    payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    try:
        user_id = uuid.UUID(str(payload["sub"]))
        role = payload["role"]
    except (KeyError, ValueError) as e:
        raise JWTError(f"Malformed claims: {e}")
    return Actor(
        user_id=user_id,
        role=role,
        name=payload.get("name"),
        email=payload.get("email"),
    )


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Actor:
    """FastAPI dependency: extract and verify JWT, return the calling Actor."""
    try:
        return decode_actor_token(credentials.credentials)
    except JWTError as e:
        logger.warning("auth_token_invalid", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
