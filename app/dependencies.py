"""FastAPI dependencies."""

from typing import Annotated
from uuid import UUID

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.permissions import Actor, Role
from app.core.redis_client import CacheManager, get_redis_client
from app.core.security import decode_access_token
from app.database import get_db

logger = structlog.get_logger(__name__)

# Security
security = HTTPBearer()


def _credentials_error(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Actor:
    """
    Extract the calling actor from a JWT access token.

    The token carries the user id in ``sub`` and one of the closed set of
    roles in ``role``.

    Args:
        credentials: Bearer token credentials

    Returns:
        Actor identity

    Raises:
        HTTPException: If the token is invalid, expired or names an unknown role
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise _credentials_error()

    user_id_str = payload.get("sub")
    if user_id_str is None or not isinstance(user_id_str, str):
        raise _credentials_error()

    try:
        user_id = UUID(user_id_str)
    except ValueError:
        raise _credentials_error("Invalid user ID format")

    try:
        role = Role(str(payload.get("role", "")).lower())
    except ValueError:
        raise _credentials_error("Invalid role claim")

    return Actor(id=user_id, role=role)


def get_cache_manager() -> CacheManager | None:
    """
    Get a cache manager backed by the shared Redis client.

    Returns:
        CacheManager, or None when Redis cannot be reached
    """
    try:
        return CacheManager(get_redis_client())
    except Exception as e:
        logger.warning("cache_unavailable", error=str(e))
        return None


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
Cache = Annotated[CacheManager | None, Depends(get_cache_manager)]
