"""User store — the database side of the poll engines.

Learn: The music engine needs three things from persistence: read a
user's credential, save a refreshed one, and (for the WebSocket side)
look up where a user lives. `UserStore` is that contract; `SqlUserStore`
implements it with one short-lived session per call so a slow poll never
holds a connection across upstream I/O.
"""

import uuid
from datetime import timezone
from typing import Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from displayhub.db.models import User
from displayhub.polling.keys import location_key
from displayhub.upstream.models import Credential


class UserStore(Protocol):
    async def get_credential(self, user_id: str) -> Optional[Credential]: ...

    async def save_credential(self, user_id: str, credential: Credential) -> None: ...

    async def get_user_location(self, user_id: str) -> Optional[str]: ...


def credential_from_user(user: User) -> Optional[Credential]:
    if not (user.spotify_access_token and user.spotify_refresh_token and user.spotify_expires_at):
        return None
    expires_at = user.spotify_expires_at
    if expires_at.tzinfo is None:
        # SQLite hands back naive datetimes; everything is stored as UTC.
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return Credential(
        access_token=user.spotify_access_token,
        refresh_token=user.spotify_refresh_token,
        expires_at=expires_at,
        scope=user.spotify_scope or "",
    )


def apply_credential(user: User, credential: Optional[Credential]) -> None:
    user.spotify_access_token = credential.access_token if credential else None
    user.spotify_refresh_token = credential.refresh_token if credential else None
    user.spotify_expires_at = credential.expires_at if credential else None
    user.spotify_scope = credential.scope if credential else None


class SqlUserStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], *, location_precision: int = 2):
        self.session_factory = session_factory
        self.location_precision = location_precision

    async def get_credential(self, user_id: str) -> Optional[Credential]:
        async with self.session_factory() as db:
            user = await db.get(User, _as_uuid(user_id))
            return credential_from_user(user) if user else None

    async def save_credential(self, user_id: str, credential: Credential) -> None:
        async with self.session_factory() as db:
            user = await db.get(User, _as_uuid(user_id))
            if user is None:
                return
            apply_credential(user, credential)
            await db.commit()

    async def get_user_location(self, user_id: str) -> Optional[str]:
        async with self.session_factory() as db:
            user = await db.get(User, _as_uuid(user_id))
            if user is None or user.latitude is None or user.longitude is None:
                return None
            return location_key(user.latitude, user.longitude, self.location_precision)


def _as_uuid(user_id: str) -> uuid.UUID:
    return user_id if isinstance(user_id, uuid.UUID) else uuid.UUID(str(user_id))
