"""JWT token creation and verification.

Learn: JWT (JSON Web Token) provides stateless authentication.
Tokens live 24 hours by default, or 30 days when the user ticks
"stay logged in". The subject is the user's UUID; the name is carried
along for log context.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from displayhub.config import settings


class TokenError(Exception):
    """Raised when token creation/verification fails."""


def token_lifetime(stay_logged_in: bool = False) -> timedelta:
    if stay_logged_in:
        return timedelta(days=settings.stay_logged_in_days)
    return timedelta(hours=settings.token_expire_hours)


def create_access_token(
    user_id: str,
    username: Optional[str] = None,
    lifetime: Optional[timedelta] = None,
) -> str:
    """Create a JWT access token."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "type": "access",
        "exp": now + (lifetime or token_lifetime()),
        "iat": now,
    }
    if username:
        payload["name"] = username
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict:
    """Verify and decode a JWT token.

    Returns the payload dict on success.
    Raises TokenError on failure.
    """
    try:
        payload = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")
    if "sub" not in payload:
        raise TokenError("Invalid token: missing subject")
    return payload
