"""Change detection — decides whether a new snapshot is worth publishing."""

from typing import Optional

from displayhub.upstream.models import MusicSnapshot, WeatherSnapshot


def music_changed(
    previous: Optional[MusicSnapshot], current: Optional[MusicSnapshot]
) -> bool:
    """A different item or a play/pause flip is material; progress drift is not.

    None means "nothing playing": None → None is no change, None ↔ anything is.
    """
    if previous is None and current is None:
        return False
    if previous is None or current is None:
        return True
    return (
        _item_identity(previous) != _item_identity(current)
        or previous.is_playing != current.is_playing
    )


def weather_changed(
    previous: Optional[WeatherSnapshot], current: Optional[WeatherSnapshot]
) -> bool:
    # Polls are ten minutes apart; every successful one is published.
    return True


def _item_identity(snapshot: MusicSnapshot) -> Optional[str]:
    return snapshot.item.identity if snapshot.item else None
