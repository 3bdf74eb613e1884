"""Per-connection event router.

Learn: One ConnectionEventRouter exists per live WebSocket. It subscribes
to the process-wide EventBus and forwards only what concerns its user:

- MusicStateUpdated    → MUSIC_UPDATE   if event.user_id is this user
- WeatherStateUpdated  → WEATHER_UPDATE if this user is in event.subscribers
- UserProfileUpdated   → refresh the cached user view; if this connection
                         holds a weather subscription and the location key
                         changed, move that subscription to the new key

Events for other users are the normal case and are simply ignored.

Each router holds at most one subscription reference per kind, and
releases exactly the references it took — on STOP, on location moves and
on detach(). Because subscriptions are reference-counted per subscriber,
a location move performed by every open connection of a user moves each
connection's own reference once; the old key is released exactly when
the last of them has moved.

`send` must not block: the WebSocket endpoint passes a queue's put_nowait.
"""

from typing import Callable, Optional

import structlog

from displayhub.events.bus import EventBus
from displayhub.events.types import MusicStateUpdated, UserProfileUpdated, WeatherStateUpdated
from displayhub.polling.keys import location_key
from displayhub.polling.music import MusicPollEngine
from displayhub.polling.weather import WeatherPollEngine
from displayhub.realtime.messages import ClientCommand, MessageType, envelope
from displayhub.schemas.user import DEFAULT_DISPLAY_STATE, UserRead

logger = structlog.get_logger()


class ConnectionEventRouter:
    def __init__(
        self,
        connection_id: str,
        user: UserRead,
        *,
        bus: EventBus,
        music: MusicPollEngine,
        weather: WeatherPollEngine,
        send: Callable[[dict], None],
        location_precision: int = 2,
    ):
        self.connection_id = connection_id
        self.user = user
        self.bus = bus
        self.music = music
        self.weather = weather
        self.send = send
        self.location_precision = location_precision

        self.music_subscribed = False
        self.weather_key: Optional[str] = None
        self._unsubscribers: list[Callable[[], None]] = []
        self._handlers = {
            ClientCommand.START_MUSIC_UPDATES: self.start_music,
            ClientCommand.STOP_MUSIC_UPDATES: self.stop_music,
            ClientCommand.START_WEATHER_UPDATES: self.start_weather,
            ClientCommand.STOP_WEATHER_UPDATES: self.stop_weather,
            ClientCommand.GET_STATE: self.send_state,
            ClientCommand.GET_SETTINGS: self.send_settings,
        }
        self.log = logger.bind(connection_id=connection_id, user_id=self.user_id)

    @property
    def user_id(self) -> str:
        return str(self.user.id)

    # ─── Lifecycle ──────────────────────────────────────

    def attach(self) -> None:
        self._unsubscribers = [
            self.bus.subscribe(MusicStateUpdated, self._on_music),
            self.bus.subscribe(WeatherStateUpdated, self._on_weather),
            self.bus.subscribe(UserProfileUpdated, self._on_profile),
        ]

    def detach(self) -> None:
        """Stop listening and release every poll subscription this connection holds."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self.stop_music()
        self.stop_weather()

    # ─── Client commands ────────────────────────────────

    def handle(self, command: ClientCommand, payload: Optional[dict] = None) -> None:
        if command is ClientCommand.ERROR:
            payload = payload or {}
            self.log.warning(
                "ws.client_error",
                message=payload.get("message"),
                traceback=payload.get("traceback"),
            )
            return
        self._handlers[command]()

    def start_music(self) -> None:
        if self.music_subscribed:
            # Re-subscribing revives a poll that stopped on an auth failure.
            self.music.unsubscribe_user(self.user_id)
        self.music.subscribe_user(self.user_id)
        self.music_subscribed = True
        self.log.info("ws.music_updates_started")

    def stop_music(self) -> None:
        if not self.music_subscribed:
            return
        self.music.unsubscribe_user(self.user_id)
        self.music_subscribed = False
        self.log.info("ws.music_updates_stopped")

    def start_weather(self) -> None:
        key = self._location_key(self.user)
        if key is None:
            self.log.warning("ws.weather_without_location")
            return
        if self.weather_key is not None:
            self.weather.unsubscribe(self.weather_key, self.user_id)
        self.weather.subscribe(key, self.user_id)
        self.weather_key = key
        self.log.info("ws.weather_updates_started", location_key=key)

    def stop_weather(self) -> None:
        if self.weather_key is None:
            return
        self.weather.unsubscribe(self.weather_key, self.user_id)
        self.log.info("ws.weather_updates_stopped", location_key=self.weather_key)
        self.weather_key = None

    def send_state(self) -> None:
        self.send(envelope(MessageType.STATE, self.user.last_state or DEFAULT_DISPLAY_STATE))

    def send_settings(self) -> None:
        self.send(envelope(MessageType.SETTINGS, {"timezone": self.user.timezone}))

    # ─── Bus handlers ───────────────────────────────────

    def _on_music(self, event: MusicStateUpdated) -> None:
        if event.user_id != self.user_id:
            return
        payload = event.snapshot.model_dump(mode="json") if event.snapshot is not None else None
        self.send(envelope(MessageType.MUSIC_UPDATE, payload))

    def _on_weather(self, event: WeatherStateUpdated) -> None:
        if self.user_id not in event.subscribers:
            return
        self.send(envelope(MessageType.WEATHER_UPDATE, event.snapshot.model_dump(mode="json")))

    def _on_profile(self, event: UserProfileUpdated) -> None:
        if str(event.user.id) != self.user_id:
            return
        self.user = event.user
        if self.weather_key is None:
            return

        new_key = self._location_key(event.user)
        if new_key == self.weather_key:
            return
        self.log.info("ws.location_changed", old=self.weather_key, new=new_key)
        if new_key is None:
            self.stop_weather()
            return
        self.weather.unsubscribe(self.weather_key, self.user_id)
        self.weather.subscribe(new_key, self.user_id)
        self.weather_key = new_key

    def _location_key(self, user: UserRead) -> Optional[str]:
        if user.location is None:
            return None
        return location_key(user.location.lat, user.location.lon, self.location_precision)
