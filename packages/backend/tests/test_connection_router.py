"""ConnectionEventRouter — per-connection filtering and subscription bookkeeping."""

import uuid

import pytest
import pytest_asyncio

from conftest import credential, track, weather
from displayhub.events.types import MusicStateUpdated, UserProfileUpdated, WeatherStateUpdated
from displayhub.polling.engine import PollState
from displayhub.realtime.messages import ClientCommand
from displayhub.realtime.router import ConnectionEventRouter
from displayhub.schemas.user import DEFAULT_DISPLAY_STATE, Location, UserRead
from displayhub.upstream.errors import UnauthorizedError

ALICE = uuid.UUID("aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa")
BOB = uuid.UUID("bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb")
BERLIN = Location(name="Berlin", lat=52.52, lon=13.4)
PARIS = Location(name="Paris", lat=48.8566, lon=2.3522)


def user_view(user_id=ALICE, location=BERLIN, **fields) -> UserRead:
    return UserRead(
        id=user_id,
        name=fields.pop("name", "alice"),
        timezone=fields.pop("timezone", "Europe/Berlin"),
        location=location,
        **fields,
    )


@pytest_asyncio.fixture()
async def make_router(bus, music_engine, weather_engine, store):
    """Router factory; teardown detaches every router while the loop is running."""
    store.credentials[str(ALICE)] = credential()
    store.credentials[str(BOB)] = credential()
    routers = []

    def make(user=None, connection_id=None):
        outbox = []
        router = ConnectionEventRouter(
            connection_id or uuid.uuid4().hex,
            user or user_view(),
            bus=bus,
            music=music_engine,
            weather=weather_engine,
            send=outbox.append,
        )
        router.attach()
        router.outbox = outbox
        routers.append(router)
        return router

    yield make
    for router in routers:
        router.detach()


def types(outbox):
    return [m["type"] for m in outbox]


# ═══════════════════════════════════════════════════════════
# Music
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_music_updates_reach_only_their_user(make_router, music_upstream, clock):
    music_upstream.playing.set(track("song-a"))
    alice = make_router()
    bob = make_router(user_view(BOB, name="bob"))

    alice.handle(ClientCommand.START_MUSIC_UPDATES)
    await clock.advance(0)

    assert types(alice.outbox) == ["MUSIC_UPDATE"]
    assert alice.outbox[0]["payload"]["item"]["id"] == "song-a"
    assert bob.outbox == []


@pytest.mark.asyncio
async def test_nothing_playing_is_sent_as_null_payload(make_router, clock):
    alice = make_router()
    alice.handle(ClientCommand.START_MUSIC_UPDATES)
    await clock.advance(0)
    assert alice.outbox == [{"type": "MUSIC_UPDATE", "payload": None}]


@pytest.mark.asyncio
async def test_stop_music_unsubscribes(make_router, music_engine, clock):
    alice = make_router()
    alice.handle(ClientCommand.START_MUSIC_UPDATES)
    await clock.advance(0)
    assert music_engine.state(str(ALICE)) == PollState.ACTIVE

    alice.handle(ClientCommand.STOP_MUSIC_UPDATES)
    assert music_engine.state(str(ALICE)) == PollState.INACTIVE
    assert not alice.music_subscribed

    # Stopping twice is harmless
    alice.handle(ClientCommand.STOP_MUSIC_UPDATES)


@pytest.mark.asyncio
async def test_repeated_start_holds_one_reference(make_router, music_engine, clock):
    alice = make_router()
    alice.handle(ClientCommand.START_MUSIC_UPDATES)
    alice.handle(ClientCommand.START_MUSIC_UPDATES)
    await clock.advance(0)

    alice.handle(ClientCommand.STOP_MUSIC_UPDATES)
    assert music_engine.state(str(ALICE)) == PollState.INACTIVE


@pytest.mark.asyncio
async def test_start_again_revives_a_stopped_poll(make_router, music_engine, music_upstream, clock):
    music_upstream.playing.set(UnauthorizedError("revoked"), track("song-a"))
    alice = make_router()
    alice.handle(ClientCommand.START_MUSIC_UPDATES)
    await clock.advance(0)
    assert music_engine.state(str(ALICE)) == PollState.STOPPED

    alice.handle(ClientCommand.START_MUSIC_UPDATES)
    await clock.advance(0)
    assert music_engine.state(str(ALICE)) == PollState.ACTIVE
    assert types(alice.outbox) == ["MUSIC_UPDATE"]


@pytest.mark.asyncio
async def test_two_connections_of_one_user_share_the_poll(make_router, music_engine, music_upstream, clock):
    first = make_router()
    second = make_router()
    first.handle(ClientCommand.START_MUSIC_UPDATES)
    second.handle(ClientCommand.START_MUSIC_UPDATES)
    await clock.advance(0)
    assert music_upstream.calls == 1

    first.detach()
    assert music_engine.state(str(ALICE)) == PollState.ACTIVE
    second.detach()
    assert music_engine.state(str(ALICE)) == PollState.INACTIVE


@pytest.mark.asyncio
async def test_credential_removed_and_restored_keeps_each_connections_reference(
    make_router, music_engine, store, clock
):
    first = make_router()
    second = make_router()
    first.handle(ClientCommand.START_MUSIC_UPDATES)
    second.handle(ClientCommand.START_MUSIC_UPDATES)
    await clock.advance(0)

    saved = store.credentials.pop(str(ALICE))
    await clock.advance(3)
    assert music_engine.state(str(ALICE)) == PollState.STOPPED

    store.credentials[str(ALICE)] = saved
    first.handle(ClientCommand.START_MUSIC_UPDATES)
    await clock.advance(0)
    assert music_engine.state(str(ALICE)) == PollState.ACTIVE

    # The other display closing must not end the first one's updates
    second.handle(ClientCommand.STOP_MUSIC_UPDATES)
    assert music_engine.state(str(ALICE)) == PollState.ACTIVE
    first.detach()
    assert music_engine.state(str(ALICE)) == PollState.INACTIVE


# ═══════════════════════════════════════════════════════════
# Weather
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_weather_updates_follow_subscriber_list(make_router, weather_engine, clock):
    alice = make_router()
    bob = make_router(user_view(BOB, name="bob"))

    alice.handle(ClientCommand.START_WEATHER_UPDATES)
    await clock.advance(0)

    assert alice.weather_key == "52.52,13.40"
    assert types(alice.outbox) == ["WEATHER_UPDATE"]
    assert alice.outbox[0]["payload"]["temperature"] == 12.5
    assert bob.outbox == []


@pytest.mark.asyncio
async def test_weather_without_location_is_ignored(make_router, weather_engine):
    alice = make_router(user_view(location=None))
    alice.handle(ClientCommand.START_WEATHER_UPDATES)

    assert alice.weather_key is None
    assert weather_engine.active_keys() == ()
    assert alice.outbox == []


@pytest.mark.asyncio
async def test_foreign_weather_event_is_ignored(make_router):
    alice = make_router()
    alice.bus.publish(
        WeatherStateUpdated(location_key="1.00,1.00", subscribers=("someone",), snapshot=weather())
    )
    alice.bus.publish(MusicStateUpdated(user_id=str(BOB), snapshot=None))
    assert alice.outbox == []


@pytest.mark.asyncio
async def test_location_change_moves_weather_subscription(make_router, bus, weather_engine, clock):
    alice = make_router()
    alice.handle(ClientCommand.START_WEATHER_UPDATES)
    await clock.advance(0)
    old_key = alice.weather_key

    bus.publish(UserProfileUpdated(user=user_view(location=PARIS)))
    await clock.advance(0)

    assert alice.weather_key == "48.86,2.35"
    assert weather_engine.state(old_key) == PollState.INACTIVE
    assert weather_engine.state("48.86,2.35") == PollState.ACTIVE
    assert alice.user.location == PARIS


@pytest.mark.asyncio
async def test_location_change_with_two_connections_releases_old_key_once(
    make_router, bus, weather_engine, clock
):
    first = make_router()
    second = make_router()
    first.handle(ClientCommand.START_WEATHER_UPDATES)
    second.handle(ClientCommand.START_WEATHER_UPDATES)
    await clock.advance(0)

    bus.publish(UserProfileUpdated(user=user_view(location=PARIS)))

    assert weather_engine.state("52.52,13.40") == PollState.INACTIVE
    assert weather_engine.registry.members("48.86,2.35") == (str(ALICE),)

    first.detach()
    assert weather_engine.state("48.86,2.35") == PollState.ACTIVE
    second.detach()
    assert weather_engine.state("48.86,2.35") == PollState.INACTIVE


@pytest.mark.asyncio
async def test_location_nudge_within_precision_keeps_key(make_router, bus, weather_engine, weather_upstream, clock):
    alice = make_router()
    alice.handle(ClientCommand.START_WEATHER_UPDATES)
    await clock.advance(0)

    nudged = Location(name="Berlin Mitte", lat=52.5201, lon=13.4049)
    bus.publish(UserProfileUpdated(user=user_view(location=nudged)))
    await clock.advance(0)

    assert alice.weather_key == "52.52,13.40"
    assert weather_upstream.calls == 1


@pytest.mark.asyncio
async def test_removed_location_stops_weather(make_router, bus, weather_engine, clock):
    alice = make_router()
    alice.handle(ClientCommand.START_WEATHER_UPDATES)
    await clock.advance(0)

    bus.publish(UserProfileUpdated(user=user_view(location=None)))
    assert alice.weather_key is None
    assert weather_engine.active_keys() == ()


@pytest.mark.asyncio
async def test_profile_update_without_weather_only_refreshes_view(make_router, bus, weather_engine):
    alice = make_router()
    bus.publish(UserProfileUpdated(user=user_view(location=PARIS, timezone="Europe/Paris")))

    assert alice.user.timezone == "Europe/Paris"
    assert weather_engine.active_keys() == ()
    alice.handle(ClientCommand.GET_SETTINGS)
    assert alice.outbox[-1] == {"type": "SETTINGS", "payload": {"timezone": "Europe/Paris"}}


@pytest.mark.asyncio
async def test_other_users_profile_is_ignored(make_router, bus):
    alice = make_router()
    bus.publish(UserProfileUpdated(user=user_view(BOB, name="bob", location=PARIS)))
    assert alice.user.location == BERLIN


# ═══════════════════════════════════════════════════════════
# State / settings / detach
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_state_defaults_to_idle(make_router):
    alice = make_router()
    alice.handle(ClientCommand.GET_STATE)
    assert alice.outbox == [{"type": "STATE", "payload": DEFAULT_DISPLAY_STATE}]


@pytest.mark.asyncio
async def test_state_returns_saved_display_state(make_router):
    saved = {"global": {"mode": "clock", "brightness": 40}}
    alice = make_router(user_view(last_state=saved))
    alice.handle(ClientCommand.GET_STATE)
    assert alice.outbox[-1]["payload"] == saved


@pytest.mark.asyncio
async def test_client_error_report_is_only_logged(make_router):
    alice = make_router()
    alice.handle(ClientCommand.ERROR, {"message": "TypeError", "traceback": "..."})
    assert alice.outbox == []


@pytest.mark.asyncio
async def test_detach_stops_listening_and_releases_everything(
    make_router, bus, music_engine, weather_engine, clock
):
    alice = make_router()
    alice.handle(ClientCommand.START_MUSIC_UPDATES)
    alice.handle(ClientCommand.START_WEATHER_UPDATES)
    await clock.advance(0)
    sent = len(alice.outbox)

    alice.detach()

    assert music_engine.active_keys() == ()
    assert weather_engine.active_keys() == ()
    bus.publish(MusicStateUpdated(user_id=str(ALICE), snapshot=None))
    assert len(alice.outbox) == sent
