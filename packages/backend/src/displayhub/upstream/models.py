"""Typed upstream snapshots and the Spotify credential.

Learn: Snapshots are what the poll engines cache, compare and publish.
They are parsed from the raw upstream JSON once, at the client edge,
so nothing downstream deals with dict-shaped API responses. Unknown
fields are ignored; every field the display does not strictly need is
optional so partial upstream payloads (podcast episodes, ads, missing
sunrise data) still parse.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, Field


# ─── Credentials ────────────────────────────────────────


class Credential(BaseModel):
    """Spotify OAuth credential owned by a user."""

    access_token: str
    refresh_token: str
    expires_at: datetime
    scope: str = ""

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return now > expires_at

    @classmethod
    def from_token_response(
        cls, data: dict, *, fallback_refresh_token: Optional[str] = None
    ) -> "Credential":
        """Build a credential from an OAuth token endpoint response."""
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or fallback_refresh_token or "",
            expires_at=datetime.now(timezone.utc)
            + timedelta(seconds=int(data.get("expires_in", 3600))),
            scope=data.get("scope", ""),
        )


# ─── Music ──────────────────────────────────────────────


class Artist(BaseModel):
    name: str
    uri: Optional[str] = None


class Image(BaseModel):
    url: str
    height: Optional[int] = None
    width: Optional[int] = None


class Album(BaseModel):
    name: str
    uri: Optional[str] = None
    images: list[Image] = Field(default_factory=list)


class Show(BaseModel):
    name: str
    publisher: Optional[str] = None
    images: list[Image] = Field(default_factory=list)


class PlayingItem(BaseModel):
    """A track or podcast episode."""

    id: Optional[str] = None
    name: str
    uri: Optional[str] = None
    type: str = "track"
    duration_ms: Optional[int] = None
    artists: list[Artist] = Field(default_factory=list)
    album: Optional[Album] = None
    show: Optional[Show] = None
    images: list[Image] = Field(default_factory=list)

    @property
    def identity(self) -> Optional[str]:
        """Stable identity of the item (local files have no id, only a uri)."""
        return self.id or self.uri


class PlaybackContext(BaseModel):
    type: str
    uri: str


class MusicSnapshot(BaseModel):
    """One poll of the user's currently-playing state."""

    is_playing: bool = False
    progress_ms: Optional[int] = None
    timestamp: Optional[int] = None
    currently_playing_type: Optional[str] = None
    context: Optional[PlaybackContext] = None
    item: Optional[PlayingItem] = None


# ─── Weather ────────────────────────────────────────────


class WeatherSnapshot(BaseModel):
    """Current weather at one location."""

    lat: float
    lon: float
    place: Optional[str] = None
    observed_at: Optional[datetime] = None
    condition: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None
    temperature: Optional[float] = None
    feels_like: Optional[float] = None
    temperature_min: Optional[float] = None
    temperature_max: Optional[float] = None
    humidity: Optional[int] = None
    pressure: Optional[int] = None
    wind_speed: Optional[float] = None
    wind_direction: Optional[int] = None
    cloudiness: Optional[int] = None
    sunrise: Optional[datetime] = None
    sunset: Optional[datetime] = None
    units: str = "metric"

    @classmethod
    def from_owm(cls, data: dict, *, units: str) -> "WeatherSnapshot":
        """Parse an OpenWeatherMap current-weather response."""
        coord = data.get("coord") or {}
        main = data.get("main") or {}
        wind = data.get("wind") or {}
        sys_ = data.get("sys") or {}
        conditions = data.get("weather") or [{}]
        condition = conditions[0]

        def _ts(value):
            return datetime.fromtimestamp(value, tz=timezone.utc) if value else None

        return cls(
            lat=coord.get("lat", 0.0),
            lon=coord.get("lon", 0.0),
            place=data.get("name") or None,
            observed_at=_ts(data.get("dt")),
            condition=condition.get("main"),
            description=condition.get("description"),
            icon=condition.get("icon"),
            temperature=main.get("temp"),
            feels_like=main.get("feels_like"),
            temperature_min=main.get("temp_min"),
            temperature_max=main.get("temp_max"),
            humidity=main.get("humidity"),
            pressure=main.get("pressure"),
            wind_speed=wind.get("speed"),
            wind_direction=wind.get("deg"),
            cloudiness=(data.get("clouds") or {}).get("all"),
            sunrise=_ts(sys_.get("sunrise")),
            sunset=_ts(sys_.get("sunset")),
            units=units,
        )


class LocationMatch(BaseModel):
    """A geocoding search result."""

    name: str
    lat: float
    lon: float
    country: Optional[str] = None
    state: Optional[str] = None
