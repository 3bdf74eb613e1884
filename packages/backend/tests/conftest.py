"""Test fixtures — fakes for the upstreams, a manual clock, and an app on SQLite.

Learn: Two kinds of tests live here:

1. Engine tests drive the poll engines with fake upstreams and a
   ManualClock injected as the engines' `sleep`. Advancing the clock
   resolves due sleeps in deadline order and lets the event loop settle
   in between, so "after exactly 5s" is something a test can assert.
2. API tests run the FastAPI app over httpx's ASGITransport against an
   in-memory SQLite database (aiosqlite). Each test gets fresh tables;
   get_db is overridden to hand out sessions on that database, and the
   app's Runtime is swapped for one built on the same fakes.
"""

import asyncio
import heapq
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

# Must be set before displayhub.config is imported anywhere.
os.environ.setdefault("DISPLAYHUB_DATABASE_URL", "sqlite+aiosqlite://")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from displayhub.auth.jwt import create_access_token
from displayhub.auth.password import hash_password
from displayhub.db.engine import get_db
from displayhub.db.models import Base, User
from displayhub.events.bus import EventBus
from displayhub.events.types import MusicStateUpdated, UserProfileUpdated, WeatherStateUpdated
from displayhub.main import app
from displayhub.polling.music import MusicPollEngine
from displayhub.polling.weather import WeatherPollEngine
from displayhub.realtime.connections import ConnectionManager
from displayhub.runtime import Runtime
from displayhub.upstream.models import (
    Credential,
    LocationMatch,
    MusicSnapshot,
    PlayingItem,
    WeatherSnapshot,
)

TEST_PASSWORD = "Sup3r-secret!"


# ─── Manual clock ───────────────────────────────────────


async def settle(rounds: int = 20) -> None:
    """Let every ready task run until the loop goes quiet."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class ManualClock:
    """Drop-in `sleep` whose time only moves when the test says so."""

    def __init__(self):
        self.now = 0.0
        self._seq = 0
        self._waiters: list[tuple[float, int, asyncio.Future]] = []

    async def sleep(self, delay: float) -> None:
        future = asyncio.get_running_loop().create_future()
        heapq.heappush(self._waiters, (self.now + delay, self._seq, future))
        self._seq += 1
        await future

    async def advance(self, seconds: float) -> None:
        target = self.now + seconds
        await settle()
        while self._waiters and self._waiters[0][0] <= target:
            deadline, _, future = heapq.heappop(self._waiters)
            self.now = deadline
            if not future.done():
                future.set_result(None)
            await settle()
        self.now = target
        await settle()

    @property
    def pending(self) -> int:
        return sum(1 for _, _, f in self._waiters if not f.done())


# ─── Snapshots ──────────────────────────────────────────


def track(item_id: Optional[str], playing: bool = True, progress_ms: int = 0) -> MusicSnapshot:
    item = PlayingItem(id=item_id, name=f"Song {item_id}") if item_id else None
    return MusicSnapshot(is_playing=playing, progress_ms=progress_ms, item=item)


def weather(temperature: float = 12.5, lat: float = 52.5, lon: float = 13.4) -> WeatherSnapshot:
    return WeatherSnapshot(lat=lat, lon=lon, temperature=temperature, condition="Clouds")


def credential(expired: bool = False, token: str = "access-1") -> Credential:
    delta = timedelta(hours=-1) if expired else timedelta(hours=1)
    return Credential(
        access_token=token,
        refresh_token="refresh-1",
        expires_at=datetime.now(timezone.utc) + delta,
        scope="user-read-currently-playing",
    )


# ─── Fakes ──────────────────────────────────────────────


class Script:
    """Plays back scripted results; the last one repeats forever.

    A result that is an exception instance is raised instead of returned.
    """

    def __init__(self, *results):
        self.results = list(results)
        self.calls: list = []

    def set(self, *results) -> None:
        self.results = list(results)

    async def __call__(self, *args):
        self.calls.append(args)
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, BaseException):
            raise result
        return result


class FakeMusicUpstream:
    def __init__(self, *results):
        self.playing = Script(*(results or (None,)))
        self.refresh = Script(credential(token="access-2"))
        self.exchange = Script(credential(token="access-code"))
        self.closed = False

    @property
    def calls(self) -> int:
        return len(self.playing.calls)

    async def get_currently_playing(self, access_token: str):
        return await self.playing(access_token)

    async def refresh_credential(self, credential: Credential) -> Credential:
        return await self.refresh(credential)

    async def exchange_code(self, code: str, redirect_uri: str) -> Credential:
        return await self.exchange(code, redirect_uri)

    async def aclose(self) -> None:
        self.closed = True


class FakeWeatherUpstream:
    def __init__(self, *results):
        self.current = Script(*(results or (weather(),)))
        self.matches: list[LocationMatch] = [
            LocationMatch(name="Berlin", lat=52.5200, lon=13.4050, country="DE", state="Berlin"),
        ]
        self.closed = False

    @property
    def calls(self) -> int:
        return len(self.current.calls)

    async def get_current(self, lat: float, lon: float) -> WeatherSnapshot:
        return await self.current(lat, lon)

    async def search_locations(self, query: str, limit: int = 5) -> list[LocationMatch]:
        return [m for m in self.matches if query.lower() in m.name.lower()][:limit]

    async def aclose(self) -> None:
        self.closed = True


class FakeUserStore:
    def __init__(self):
        self.credentials: dict[str, Credential] = {}
        self.locations: dict[str, str] = {}
        self.saved: list[tuple[str, Credential]] = []

    async def get_credential(self, user_id: str) -> Optional[Credential]:
        return self.credentials.get(user_id)

    async def save_credential(self, user_id: str, credential: Credential) -> None:
        self.saved.append((user_id, credential))
        self.credentials[user_id] = credential

    async def get_user_location(self, user_id: str) -> Optional[str]:
        return self.locations.get(user_id)


class EventRecorder:
    """Collects everything published on a bus, per event class."""

    def __init__(self, bus: EventBus):
        self.music: list[MusicStateUpdated] = []
        self.weather: list[WeatherStateUpdated] = []
        self.profiles: list[UserProfileUpdated] = []
        bus.subscribe(MusicStateUpdated, self.music.append)
        bus.subscribe(WeatherStateUpdated, self.weather.append)
        bus.subscribe(UserProfileUpdated, self.profiles.append)


# ─── Engine fixtures ────────────────────────────────────


@pytest.fixture()
def clock():
    return ManualClock()


@pytest.fixture()
def bus():
    return EventBus()


@pytest.fixture()
def events(bus):
    return EventRecorder(bus)


@pytest.fixture()
def store():
    return FakeUserStore()


@pytest.fixture()
def music_upstream():
    return FakeMusicUpstream()


@pytest.fixture()
def weather_upstream():
    return FakeWeatherUpstream()


@pytest_asyncio.fixture()
async def music_engine(bus, music_upstream, store, clock):
    engine = MusicPollEngine(bus, music_upstream, store, interval=3.0, sleep=clock.sleep)
    yield engine
    await engine.close()


@pytest_asyncio.fixture()
async def weather_engine(bus, weather_upstream, clock):
    engine = WeatherPollEngine(bus, weather_upstream, interval=600.0, sleep=clock.sleep)
    yield engine
    await engine.close()


# ─── Database + app fixtures ────────────────────────────


@pytest_asyncio.fixture()
async def session_factory():
    """Fresh in-memory database per test; one shared connection (StaticPool)."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture()
async def runtime(bus, music_engine, weather_engine, music_upstream, weather_upstream, session_factory):
    return Runtime(
        bus=bus,
        spotify=music_upstream,
        weather_client=weather_upstream,
        music=music_engine,
        weather=weather_engine,
        connections=ConnectionManager(),
        session_factory=session_factory,
    )


@pytest_asyncio.fixture()
async def client(runtime, session_factory):
    """HTTP client against the app, wired to the test database and runtime."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    previous = app.state.runtime
    app.state.runtime = runtime
    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    app.state.runtime = previous


async def create_user(session_factory, name: str = "alice", **fields) -> User:
    values = {
        "name": name,
        "password_hash": hash_password(TEST_PASSWORD),
        "timezone": "Europe/Berlin",
        "location_name": "Berlin",
        "latitude": 52.52,
        "longitude": 13.4,
        **fields,
    }
    async with session_factory() as db:
        user = User(**values)
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user


def bearer(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(str(user.id), user.name)}"}


@pytest_asyncio.fixture()
async def alice(session_factory):
    return await create_user(session_factory, "alice")


@pytest_asyncio.fixture()
async def admin(session_factory):
    return await create_user(session_factory, "root", is_admin=True)
