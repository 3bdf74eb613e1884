"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to extract
and validate the current user identity from the request.

Two token sources, checked in order:
1. Authorization: Bearer <jwt>
2. The auth cookie set by POST /auth/login
"""

import uuid
from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from displayhub.auth.jwt import TokenError, verify_token
from displayhub.config import settings
from displayhub.db.engine import get_db
from displayhub.db.models import User


class CurrentIdentity:
    """The authenticated user making the request."""

    def __init__(self, user_id: str, username: Optional[str] = None):
        self.user_id = user_id
        self.username = username


def extract_token(
    authorization: Optional[str], cookies: dict[str, str]
) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:]
    return cookies.get(settings.auth_cookie_name)


def identity_from_token(token: str) -> CurrentIdentity:
    """Raises TokenError if the token is invalid or expired."""
    payload = verify_token(token)
    return CurrentIdentity(user_id=payload["sub"], username=payload.get("name"))


async def get_current_user_optional(request: Request) -> Optional[CurrentIdentity]:
    token = extract_token(request.headers.get("authorization"), request.cookies)
    if not token:
        return None
    try:
        return identity_from_token(token)
    except TokenError as e:
        raise HTTPException(
            status_code=401,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_user(
    identity: Optional[CurrentIdentity] = Depends(get_current_user_optional),
) -> CurrentIdentity:
    """Extract current identity (required — 401 if no auth)."""
    if not identity:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


async def require_admin(
    identity: CurrentIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CurrentIdentity:
    """Admin-only routes answer 404 to everyone else, hiding that they exist."""
    try:
        user = await db.get(User, uuid.UUID(identity.user_id))
    except ValueError:
        user = None
    if not user or not user.is_admin:
        raise HTTPException(status_code=404, detail="Not found")
    return identity
