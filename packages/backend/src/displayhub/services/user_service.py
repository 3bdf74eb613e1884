"""User service — business logic for accounts, settings and the Spotify link.

Learn: Service layer separates business logic from HTTP routing.
API routes call services, services call the database. Every committed
profile change is announced on the event bus as UserProfileUpdated, so
live displays pick up new settings and a changed location moves their
weather subscription — the API never talks to the poll engines directly.
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from displayhub.auth.password import hash_password, password_problem, verify_password
from displayhub.db.models import User
from displayhub.db.store import apply_credential
from displayhub.events.bus import EventBus
from displayhub.events.types import UserProfileUpdated
from displayhub.schemas.user import Location, UserRead
from displayhub.upstream.models import Credential

logger = structlog.get_logger()

_UNSET = object()


class UserNotFoundError(Exception):
    pass


class UserExistsError(Exception):
    pass


class PasswordPolicyError(Exception):
    pass


class UserService:
    def __init__(self, db: AsyncSession, bus: Optional[EventBus] = None):
        self.db = db
        self.bus = bus

    # ─── Lookup ─────────────────────────────────────────

    async def get(self, user_id: str) -> User:
        try:
            user = await self.db.get(User, uuid.UUID(str(user_id)))
        except ValueError:
            user = None
        if not user:
            raise UserNotFoundError(f"User {user_id} not found")
        return user

    async def get_by_name(self, name: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(func.lower(User.name) == name.lower())
        )
        return result.scalars().first()

    async def list_users(self) -> list[User]:
        result = await self.db.execute(select(User).order_by(User.name))
        return list(result.scalars().all())

    # ─── Accounts ───────────────────────────────────────

    async def create_user(
        self, name: str, password: str, timezone: str, location: Location
    ) -> User:
        if await self.get_by_name(name):
            raise UserExistsError(f"Username {name!r} already exists")
        problem = password_problem(password)
        if problem:
            raise PasswordPolicyError(problem)

        user = User(
            name=name,
            password_hash=hash_password(password),
            timezone=timezone,
            location_name=location.name,
            latitude=location.lat,
            longitude=location.lon,
            is_admin=False,
            is_visible=False,
            can_be_modified=False,
        )
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)
        logger.info("user.created", user_id=str(user.id), name=name)
        return user

    async def authenticate(self, name: str, password: str) -> Optional[User]:
        user = await self.get_by_name(name)
        if not user or not verify_password(password, user.password_hash):
            return None
        return user

    async def change_password(self, user_id: str, password: str) -> None:
        problem = password_problem(password)
        if problem:
            raise PasswordPolicyError(problem)
        user = await self.get(user_id)
        user.password_hash = hash_password(password)
        await self.db.commit()

    # ─── Profile ────────────────────────────────────────

    async def update_profile(
        self,
        user_id: str,
        *,
        timezone: Optional[str] = None,
        location: Optional[Location] = None,
        last_state=_UNSET,
    ) -> User:
        user = await self.get(user_id)
        if timezone is not None:
            user.timezone = timezone
        if location is not None:
            user.location_name = location.name
            user.latitude = location.lat
            user.longitude = location.lon
        if last_state is not _UNSET:
            user.last_state = last_state
        await self.db.commit()
        await self.db.refresh(user)
        self._announce(user)
        return user

    # ─── Spotify credential ─────────────────────────────

    async def set_spotify_credential(self, user_id: str, credential: Credential) -> User:
        user = await self.get(user_id)
        apply_credential(user, credential)
        await self.db.commit()
        await self.db.refresh(user)
        logger.info("user.spotify_connected", user_id=user_id)
        self._announce(user)
        return user

    async def clear_spotify_credential(self, user_id: str) -> User:
        """Disconnect Spotify. A running music poll sees the missing credential and ends."""
        user = await self.get(user_id)
        apply_credential(user, None)
        await self.db.commit()
        await self.db.refresh(user)
        logger.info("user.spotify_disconnected", user_id=user_id)
        self._announce(user)
        return user

    def _announce(self, user: User) -> None:
        if self.bus is not None:
            self.bus.publish(UserProfileUpdated(user=UserRead.from_model(user)))
