"""Polling and fanout — the live-widget engine.

Learn: Two poll engines share one implementation (`PollEngine`):
- MusicPollEngine   — keyed by user id, every 3 s, needs a Spotify credential
- WeatherPollEngine — keyed by rounded coordinates, every 10 min, shared by
  every user at the same location

Each engine owns its subscriber registry, per-key timer tasks, backoff
resumes and last-published snapshot cache. Nothing else mutates that
state; callers only use subscribe()/unsubscribe().
"""

from displayhub.polling.engine import PollEngine, PollState, PollTargetGone
from displayhub.polling.keys import location_key, parse_location_key
from displayhub.polling.music import MusicPollEngine
from displayhub.polling.weather import WeatherPollEngine

__all__ = [
    "MusicPollEngine",
    "PollEngine",
    "PollState",
    "PollTargetGone",
    "WeatherPollEngine",
    "location_key",
    "parse_location_key",
]
