"""Application runtime — the long-lived objects shared by HTTP and WebSocket.

Learn: One Runtime is built per application by create_app() and stored
on app.state. It owns the event bus, the upstream clients, both poll
engines and the live-connection registry; everything that needs them
receives them from here (FastAPI dependency or websocket.app.state)
instead of importing module-level globals.
"""

from dataclasses import dataclass

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from displayhub.config import Settings
from displayhub.db.store import SqlUserStore
from displayhub.events.bus import EventBus
from displayhub.polling.music import MusicPollEngine
from displayhub.polling.weather import WeatherPollEngine
from displayhub.realtime.connections import ConnectionManager
from displayhub.upstream.spotify import SpotifyClient
from displayhub.upstream.weather import WeatherClient


@dataclass
class Runtime:
    bus: EventBus
    spotify: SpotifyClient
    weather_client: WeatherClient
    music: MusicPollEngine
    weather: WeatherPollEngine
    connections: ConnectionManager
    session_factory: async_sessionmaker[AsyncSession]

    async def aclose(self) -> None:
        await self.music.close()
        await self.weather.close()
        await self.spotify.aclose()
        await self.weather_client.aclose()


def build_runtime(
    config: Settings, session_factory: async_sessionmaker[AsyncSession]
) -> Runtime:
    bus = EventBus()
    spotify = SpotifyClient(
        config.spotify_client_id,
        config.spotify_client_secret,
        api_url=config.spotify_api_url,
        accounts_url=config.spotify_accounts_url,
        timeout=config.upstream_timeout_seconds,
        default_retry_after=config.default_retry_after_seconds,
    )
    weather_client = WeatherClient(
        config.owm_api_key,
        api_url=config.owm_api_url,
        geo_url=config.owm_geo_url,
        units=config.owm_units,
        timeout=config.upstream_timeout_seconds,
        default_retry_after=config.default_retry_after_seconds,
    )
    store = SqlUserStore(session_factory, location_precision=config.location_precision)
    return Runtime(
        bus=bus,
        spotify=spotify,
        weather_client=weather_client,
        music=MusicPollEngine(
            bus, spotify, store, interval=config.music_poll_interval_seconds
        ),
        weather=WeatherPollEngine(
            bus, weather_client, interval=config.weather_poll_interval_seconds
        ),
        connections=ConnectionManager(),
        session_factory=session_factory,
    )


def get_runtime(request: Request) -> Runtime:
    """FastAPI dependency — the app's Runtime."""
    return request.app.state.runtime
