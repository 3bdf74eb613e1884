"""Weather poll engine — one OpenWeatherMap poll per location key.

Learn: Users at the same (rounded) coordinates share a key, so ten
displays in one city cost one upstream call per interval. The published
event lists the key's current subscribers; each connection checks
whether its user is on the list.
"""

from typing import Optional

from displayhub.events.bus import EventBus
from displayhub.events.types import WeatherStateUpdated
from displayhub.polling.changes import weather_changed
from displayhub.polling.engine import PollEngine, Sleep
from displayhub.polling.keys import parse_location_key
from displayhub.upstream import WeatherUpstream
from displayhub.upstream.models import WeatherSnapshot

WEATHER_POLL_INTERVAL = 10 * 60.0


class WeatherPollEngine(PollEngine[WeatherSnapshot]):
    kind = "weather"

    def __init__(
        self,
        bus: EventBus,
        upstream: WeatherUpstream,
        *,
        interval: float = WEATHER_POLL_INTERVAL,
        sleep: Optional[Sleep] = None,
    ):
        super().__init__(bus, interval=interval, sleep=sleep)
        self.upstream = upstream

    async def _fetch(self, key: str) -> WeatherSnapshot:
        lat, lon = parse_location_key(key)
        return await self.upstream.get_current(lat, lon)

    def _is_material(self, previous: Optional[WeatherSnapshot], current: WeatherSnapshot) -> bool:
        return weather_changed(previous, current)

    def _publish(self, key: str, snapshot: WeatherSnapshot, subscribers: tuple[str, ...]) -> None:
        if not subscribers:
            return
        self.bus.publish(
            WeatherStateUpdated(location_key=key, subscribers=subscribers, snapshot=snapshot)
        )
