from __future__ import annotations

import uuid
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from .auth.jwt_handler import verify_token
from .config import get_settings
from .database import get_db
from .exceptions import UnauthorizedError
from .models.user import User


def _get_user_id_from_request(request: Request) -> str:
    """Extract user_id from JWT for rate limiting, fallback to IP."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        payload = verify_token(auth_header.split(" ", 1)[1])
        if payload and payload.get("sub"):
            return f"user:{payload['sub']}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=_get_user_id_from_request,
    enabled=get_settings().rate_limit_enabled,
)

security_optional = HTTPBearer(auto_error=False)


async def _resolve_user(token: str, db: AsyncSession) -> User:
    payload = verify_token(token)
    if payload is None:
        raise UnauthorizedError("Invalid token")

    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise UnauthorizedError("Invalid token payload")

    user = await db.get(User, user_id)
    if user is None:
        raise UnauthorizedError("User not found")
    if not user.is_active:
        raise UnauthorizedError("User deactivated")
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_optional),
    db: AsyncSession = Depends(get_db),
) -> User:
    if credentials is None:
        raise UnauthorizedError("Unauthorized")
    return await _resolve_user(credentials.credentials, db)


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_optional),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Like get_current_user, but anonymous callers get None instead of a 401.

    A token that is present but invalid is still rejected.
    """
    if credentials is None:
        return None
    return await _resolve_user(credentials.credentials, db)
