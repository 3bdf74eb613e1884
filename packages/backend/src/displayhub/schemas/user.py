"""Pydantic schemas for users and their display settings.

Learn: Pydantic v2 models validate request/response data. Separate
"Create"/"Update" schemas (input) from "Read" schemas (output).
`UserRead` is also the user view carried on the event bus and cached by
each live connection, so it never contains secrets or Spotify tokens.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

# Sent as the STATE payload when a user has never saved a display state.
DEFAULT_DISPLAY_STATE: dict[str, Any] = {
    "global": {
        "mode": "idle",
        "brightness": 100,
    },
}


# ─── Location ───────────────────────────────────────────

class Location(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


# ─── Users ──────────────────────────────────────────────

class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=100)
    password: str = Field(..., min_length=8)
    timezone: str = Field(..., min_length=1, max_length=64)
    location: Location


class UserRead(BaseModel):
    id: uuid.UUID
    name: str
    timezone: str
    location: Optional[Location] = None
    last_state: Optional[dict[str, Any]] = None
    is_admin: bool = False
    is_visible: bool = False
    can_be_modified: bool = False
    spotify_connected: bool = False
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @classmethod
    def from_model(cls, user) -> "UserRead":
        """Build the public view of a `User` row."""
        location = None
        if user.latitude is not None and user.longitude is not None:
            location = Location(
                name=user.location_name or "",
                lat=user.latitude,
                lon=user.longitude,
            )
        return cls(
            id=user.id,
            name=user.name,
            timezone=user.timezone,
            location=location,
            last_state=user.last_state,
            is_admin=user.is_admin,
            is_visible=user.is_visible,
            can_be_modified=user.can_be_modified,
            spotify_connected=user.spotify_refresh_token is not None,
            created_at=user.created_at,
        )


class UserUpdate(BaseModel):
    """Partial profile update — omitted fields are left untouched."""
    timezone: Optional[str] = Field(None, min_length=1, max_length=64)
    location: Optional[Location] = None
    last_state: Optional[dict[str, Any]] = None


class PasswordChange(BaseModel):
    password: str = Field(..., min_length=8)
    password_confirmation: str = Field(..., min_length=8)


class SpotifyCredentialWrite(BaseModel):
    access_token: str = Field(..., min_length=1)
    refresh_token: str = Field(..., min_length=1)
    scope: str = ""
    expires_at: datetime
