"""
Authentication utilities: bearer token issue/verify and password hashing.
"""
from datetime import datetime, timedelta, timezone

import jwt
from passlib.context import CryptContext

from app.core import config
from app.core.errors import Unauthenticated


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id: int, expires_delta: timedelta | None = None, **claims) -> str:
    """
    Issue a signed token whose ``sub`` claim is the user id.

    Args:
        user_id: Local user id
        expires_delta: Token lifetime (defaults to JWT_EXPIRES_MINUTES)
        **claims: Extra non-identifying claims (username, email)
    """
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.JWT_EXPIRES_MINUTES))
    payload = {**claims, "sub": str(user_id), "exp": expire}
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def verify_jwt_token(token: str) -> int:
    """
    Verify a bearer token and return the user id it carries.

    Raises:
        Unauthenticated: If the token is expired, malformed or has no usable subject
    """
    try:
        payload = jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token has expired")
    except jwt.InvalidTokenError:
        raise Unauthenticated("Invalid or expired token")

    try:
        return int(payload["sub"])
    except (TypeError, ValueError):
        raise Unauthenticated("Invalid token payload")
