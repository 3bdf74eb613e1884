"""Upstream API clients (Spotify, OpenWeatherMap).

Learn: Clients return typed snapshots or raise one of the upstream
errors. The poll engines depend on the small protocols below rather
than the concrete clients, so tests can hand them plain fakes.
"""

from typing import Optional, Protocol

from displayhub.upstream.errors import (
    CredentialRefreshError,
    RateLimitedError,
    TransientUpstreamError,
    UnauthorizedError,
    UpstreamError,
)
from displayhub.upstream.models import Credential, MusicSnapshot, WeatherSnapshot

__all__ = [
    "CredentialRefreshError",
    "MusicUpstream",
    "RateLimitedError",
    "TransientUpstreamError",
    "UnauthorizedError",
    "UpstreamError",
    "WeatherUpstream",
]


class MusicUpstream(Protocol):
    async def get_currently_playing(self, access_token: str) -> Optional[MusicSnapshot]: ...

    async def refresh_credential(self, credential: Credential) -> Credential: ...


class WeatherUpstream(Protocol):
    async def get_current(self, lat: float, lon: float) -> WeatherSnapshot: ...
