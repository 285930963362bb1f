"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from shiftwatch.auth.jwt import verify_token
from shiftwatch.database import get_session
from shiftwatch.db.models import User
from shiftwatch.users.service import get_user_by_id

_bearer = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> User:
    """Verify the bearer token and return the User row. Raises 401 on failure."""
    try:
        payload = verify_token(credentials.credentials, expected_type="access")
        user_id = int(payload["sub"])
    except (jwt.InvalidTokenError, ValueError) as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    user = await get_user_by_id(db, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Same as get_current_user but rejects non-admins with 403."""
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
