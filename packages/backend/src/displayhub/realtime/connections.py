"""Registry of live WebSocket connections (admin broadcast / direct messages)."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional


@dataclass
class LiveConnection:
    connection_id: str
    user_id: str
    username: Optional[str]
    send_raw: Callable[[str], None]
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ConnectionManager:
    def __init__(self):
        self._connections: dict[str, LiveConnection] = {}

    def add(self, connection: LiveConnection) -> None:
        self._connections[connection.connection_id] = connection

    def remove(self, connection_id: str) -> None:
        self._connections.pop(connection_id, None)

    def broadcast(self, text: str) -> int:
        """Send `text` to every connection. Returns how many were reached."""
        for connection in list(self._connections.values()):
            connection.send_raw(text)
        return len(self._connections)

    def send_to_user(self, user_id: str, text: str) -> int:
        targets = [c for c in self._connections.values() if c.user_id == user_id]
        for connection in targets:
            connection.send_raw(text)
        return len(targets)

    def list(self) -> list[LiveConnection]:
        return sorted(self._connections.values(), key=lambda c: c.connected_at)

    def __len__(self) -> int:
        return len(self._connections)
