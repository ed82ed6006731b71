"""FastAPI dependencies for authentication."""

import uuid
from typing import Optional
from fastapi import Header, Depends
from sqlalchemy.orm import Session
from jose import JWTError

from galleria.database import get_db
from galleria.auth.jwt import get_supabase_uid_from_token
from galleria.auth.models import UserProfile
from galleria.exceptions import AuthenticationError, AuthorizationError
from galleria.permissions import Principal


def _parse_bearer(authorization: str) -> str:
    if not authorization.startswith("Bearer "):
        raise AuthenticationError("Invalid authorization header format")
    token = authorization[7:].strip()  # Remove "Bearer " prefix
    if not token:
        raise AuthenticationError("Invalid authorization header format")
    return token


async def get_current_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db)
) -> UserProfile:
    """Verify the bearer token and return the authenticated user's profile.

    Raises:
        AuthenticationError: missing, malformed or invalid token, or no profile
        AuthorizationError: profile exists but is deactivated
    """
    if not authorization:
        raise AuthenticationError("Authorization header required")

    token = _parse_bearer(authorization)

    try:
        supabase_uid = await get_supabase_uid_from_token(token)
        profile_key = uuid.UUID(str(supabase_uid))
    except (JWTError, ValueError):
        raise AuthenticationError("Invalid or expired token")

    user = db.query(UserProfile).filter(
        UserProfile.supabase_uid == profile_key
    ).first()

    if not user:
        raise AuthenticationError("User profile not found. Please complete registration.")

    if not user.is_active:
        raise AuthorizationError("Account is deactivated")

    return user


async def get_optional_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db)
) -> Optional[UserProfile]:
    """Get current user if a bearer token is sent, None otherwise.

    A token that is present but invalid is still rejected with 401 rather
    than silently downgraded to an anonymous request.
    """
    if not authorization:
        return None
    return await get_current_user(authorization, db)


async def get_optional_principal(
    user: Optional[UserProfile] = Depends(get_optional_user),
) -> Optional[Principal]:
    """Resolve the request principal; None for anonymous requests."""
    if user is None:
        return None
    return Principal.from_profile(user)
