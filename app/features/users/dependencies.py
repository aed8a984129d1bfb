"""
FastAPI dependencies for authentication.
"""
from typing import Annotated
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import Unauthenticated
from app.features.users.models import User
from app.features.users.auth import verify_jwt_token


security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> User:
    """
    Get the current authenticated user from the bearer token.

    This dependency:
    1. Extracts the JWT from the Authorization header
    2. Verifies signature and expiry
    3. Looks up the user the token names

    Usage:
        @router.get("/me/permissions")
        async def my_permissions(user: User = Depends(get_current_user)):
            ...
    """
    if credentials is None or not credentials.credentials:
        raise Unauthenticated("Access token required")

    user_id = verify_jwt_token(credentials.credentials)

    user = await db.get(User, user_id)
    if user is None:
        raise Unauthenticated("Token user no longer exists")

    return user


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
