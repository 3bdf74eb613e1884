"""Music poll engine — Spotify currently-playing, one poll per user.

Learn: The key and the subscriber are both the user id. Each tick loads
the user's stored credential, refreshes it first if it has expired,
then asks Spotify what is playing. "Nothing playing" (HTTP 204) is a
normal snapshot (None) and goes through change detection like any
other; it never stops the poll. A user without a credential is a
target that is gone: polling stops but subscribers stay registered, so
a START after reconnecting Spotify revives it.
"""

from typing import Optional

from displayhub.events.bus import EventBus
from displayhub.events.types import MusicStateUpdated
from displayhub.polling.changes import music_changed
from displayhub.polling.credentials import CredentialRefresher
from displayhub.polling.engine import PollEngine, PollTargetGone, Sleep
from displayhub.upstream import MusicUpstream
from displayhub.upstream.models import MusicSnapshot

MUSIC_POLL_INTERVAL = 3.0


class MusicPollEngine(PollEngine[Optional[MusicSnapshot]]):
    kind = "music"

    def __init__(
        self,
        bus: EventBus,
        upstream: MusicUpstream,
        store,
        *,
        interval: float = MUSIC_POLL_INTERVAL,
        sleep: Optional[Sleep] = None,
    ):
        super().__init__(bus, interval=interval, sleep=sleep)
        self.upstream = upstream
        self.store = store
        self.refresher = CredentialRefresher(upstream, store)

    def subscribe_user(self, user_id: str) -> None:
        self.subscribe(user_id, user_id)

    def unsubscribe_user(self, user_id: str) -> None:
        self.unsubscribe(user_id, user_id)

    async def _fetch(self, key: str) -> Optional[MusicSnapshot]:
        credential = await self.store.get_credential(key)
        if credential is None:
            raise PollTargetGone(f"user {key} has no Spotify credential")
        if credential.is_expired():
            credential = await self.refresher.refresh(key, credential)
        return await self.upstream.get_currently_playing(credential.access_token)

    def _is_material(
        self, previous: Optional[MusicSnapshot], current: Optional[MusicSnapshot]
    ) -> bool:
        return music_changed(previous, current)

    def _publish(
        self, key: str, snapshot: Optional[MusicSnapshot], subscribers: tuple[str, ...]
    ) -> None:
        # The key is the user id.
        self.bus.publish(MusicStateUpdated(user_id=key, snapshot=snapshot))
