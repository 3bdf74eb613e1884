"""Reference-counted subscriber sets, one per poll key.

Learn: Membership is counted per (key, subscriber). A user with two open
displays holds two references on their music key; closing one display
releases one reference and the user stays subscribed. The registry has
no polling logic — the engine asks it whether a key still has anyone
listening.
"""


class SubscriptionRegistry:
    def __init__(self):
        # key -> {subscriber: refcount}, insertion-ordered
        self._refs: dict[str, dict[str, int]] = {}

    def add(self, key: str, subscriber_id: str) -> bool:
        """Add a reference. Returns True if the subscriber just became a member."""
        refs = self._refs.setdefault(key, {})
        refs[subscriber_id] = refs.get(subscriber_id, 0) + 1
        return refs[subscriber_id] == 1

    def remove(self, key: str, subscriber_id: str) -> bool:
        """Drop a reference. Returns True if the subscriber is no longer a member."""
        refs = self._refs.get(key)
        if not refs or subscriber_id not in refs:
            return False
        refs[subscriber_id] -= 1
        if refs[subscriber_id] > 0:
            return False
        del refs[subscriber_id]
        if not refs:
            del self._refs[key]
        return True

    def is_empty(self, key: str) -> bool:
        return not self._refs.get(key)

    def members(self, key: str) -> tuple[str, ...]:
        return tuple(self._refs.get(key, {}))

    def keys(self) -> tuple[str, ...]:
        return tuple(self._refs)

    def __contains__(self, key: str) -> bool:
        return not self.is_empty(key)
