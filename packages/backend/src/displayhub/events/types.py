"""Event types carried on the in-process event bus.

Learn: The set of bus events is closed — each kind is its own frozen
dataclass, and handlers subscribe by class. Adding a new kind means
adding a class here, so every producer and consumer is easy to find.
"""

from dataclasses import dataclass
from typing import Any, Optional

from displayhub.schemas.user import UserRead


@dataclass(frozen=True)
class UserProfileUpdated:
    """A user's stored profile changed (settings, location, display state)."""

    user: UserRead


@dataclass(frozen=True)
class MusicStateUpdated:
    """New playback state for one user.

    `snapshot` is None when nothing is playing.
    """

    user_id: str
    snapshot: Optional[Any]


@dataclass(frozen=True)
class WeatherStateUpdated:
    """New weather for a location, addressed to the listed subscribers."""

    location_key: str
    subscribers: tuple[str, ...]
    snapshot: Any


BusEvent = UserProfileUpdated | MusicStateUpdated | WeatherStateUpdated

EVENT_TYPES: tuple[type, ...] = (
    UserProfileUpdated,
    MusicStateUpdated,
    WeatherStateUpdated,
)
