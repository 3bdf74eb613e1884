"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Column types are the portable ones (Uuid, JSON) so the same models run on
PostgreSQL in production and SQLite in tests. Alembic migrations live in
db/migrations.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, String, Text, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


class User(Base):
    """A display owner.

    Learn: Besides login data the user row holds everything the live
    widgets need: the location polled for weather, the last display state
    restored on reconnect, and the Spotify credential the music poller
    uses. The credential columns are all-or-nothing — cleared together
    when the user disconnects Spotify.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_visible: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_be_modified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    timezone: Mapped[str] = mapped_column(String(64), nullable=False)
    location_name: Mapped[Optional[str]] = mapped_column(String(200))
    latitude: Mapped[Optional[float]] = mapped_column(Float)
    longitude: Mapped[Optional[float]] = mapped_column(Float)

    # Display state restored on connect (mode, brightness, text, clock, ...)
    last_state: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON)

    # Spotify OAuth credential
    spotify_access_token: Mapped[Optional[str]] = mapped_column(Text)
    spotify_refresh_token: Mapped[Optional[str]] = mapped_column(Text)
    spotify_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    spotify_scope: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=utcnow
    )
