"""
FastAPI Dependencies for Authentication and Authorization.

Key patterns:
1. get_current_user: Extracts and validates the user JWT, returns User object
2. require_admin: Validates an admin-scope JWT (not tied to any user)
3. No global "current user" state - always pass user explicitly

Security model:
- Bearer token in the Authorization header
- User tokens and admin tokens are signed with different secrets, so one
  can never be accepted in place of the other
- Each failure mode (missing, malformed, expired, invalid) has its own message
"""

from datetime import datetime, timedelta, timezone
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from antimat.config import get_settings
from antimat.db.models import User, utcnow
from antimat.db.session import get_db, get_session_factory
from antimat.errors import AuthError, ForbiddenError

settings = get_settings()


# =============================================================================
# JWT UTILITIES
# =============================================================================


def create_access_token(user_id: UUID) -> str:
    """
    Create a JWT access token for a user.

    Token payload contains:
    - sub: user_id as string (standard JWT subject claim)
    - exp: expiration timestamp

    Token is stateless; revocation requires a token blocklist (not implemented).
    """
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expire_minutes)
    payload = {
        "sub": str(user_id),
        "exp": expire,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_admin_token() -> str:
    """Create an admin-scope token. It encodes the admin flag, not a user."""
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.admin_jwt_expire_minutes)
    payload = {
        "sub": "admin",
        "admin": True,
        "exp": expire,
    }
    return jwt.encode(payload, settings.admin_signing_key, algorithm=settings.jwt_algorithm)


def _decode(token: str, key: str) -> dict:
    try:
        return jwt.decode(token, key, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError:
        raise AuthError("Token expired")
    except JWTError:
        raise AuthError("Invalid token")


def decode_access_token(token: str) -> UUID:
    """
    Decode and validate a user access token.

    Raises AuthError if the token is expired, invalid or has no usable subject.
    """
    payload = _decode(token, settings.jwt_secret_key)
    try:
        return UUID(payload.get("sub") or "")
    except ValueError:
        raise AuthError("Invalid token")


def decode_admin_token(token: str) -> dict:
    """
    Decode an admin token.

    Raises AuthError for bad tokens and ForbiddenError when the token is
    valid but does not carry the admin flag.
    """
    payload = _decode(token, settings.admin_signing_key)
    if not payload.get("admin"):
        raise ForbiddenError("Access denied")
    return payload


# =============================================================================
# AUTHENTICATION DEPENDENCIES
# =============================================================================


async def get_token_from_request(
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """Extract the token from 'Authorization: Bearer <token>'."""
    if not authorization:
        raise AuthError("Authorization required")

    parts = authorization.split()
    if len(parts) == 0 or parts[0].lower() != "bearer":
        raise AuthError("Authorization required")
    if len(parts) != 2 or not parts[1]:
        raise AuthError("Token not provided")
    return parts[1]


async def get_current_user(
    token: Annotated[str, Depends(get_token_from_request)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Validate JWT and return the current authenticated user.

    Use it in route handlers:

        @router.get("/words")
        async def list_words(user: CurrentUser):
            ...

    Raises AuthError (401) if the token is missing, invalid or expired,
    or the user no longer exists. Refreshes last_active_at on success.
    """
    user_id = decode_access_token(token)

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise AuthError("User not found")

    user.last_active_at = utcnow()
    return user


async def require_admin(
    token: Annotated[str, Depends(get_token_from_request)],
) -> dict:
    """Validate an admin token; returns its claims."""
    return decode_admin_token(token)


# Type aliases for dependency injection
CurrentUser = Annotated[User, Depends(get_current_user)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
