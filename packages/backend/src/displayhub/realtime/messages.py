"""WebSocket message vocabulary.

Learn: Outbound messages are JSON envelopes {"type": ..., "payload": ...}.
Inbound messages are {"type": <command>, "payload": {...}?}. Both sides
are closed enums — an unknown inbound type is rejected at parse time.
"""

import json
from enum import Enum
from typing import Any, Optional


class MessageType(str, Enum):
    """Server → client."""

    MUSIC_UPDATE = "MUSIC_UPDATE"
    WEATHER_UPDATE = "WEATHER_UPDATE"
    STATE = "STATE"
    SETTINGS = "SETTINGS"


class ClientCommand(str, Enum):
    """Client → server."""

    START_MUSIC_UPDATES = "START_MUSIC_UPDATES"
    STOP_MUSIC_UPDATES = "STOP_MUSIC_UPDATES"
    START_WEATHER_UPDATES = "START_WEATHER_UPDATES"
    STOP_WEATHER_UPDATES = "STOP_WEATHER_UPDATES"
    GET_STATE = "GET_STATE"
    GET_SETTINGS = "GET_SETTINGS"
    ERROR = "ERROR"


class InvalidMessage(ValueError):
    pass


def envelope(message_type: MessageType, payload: Any) -> dict:
    return {"type": message_type.value, "payload": payload}


def parse_command(raw: str) -> tuple[ClientCommand, Optional[dict]]:
    """Parse an inbound frame. Raises InvalidMessage on anything unexpected."""
    try:
        message = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InvalidMessage(f"Not JSON: {e}") from e
    if not isinstance(message, dict) or "type" not in message:
        raise InvalidMessage("Message must be an object with a 'type'")
    try:
        command = ClientCommand(message["type"])
    except ValueError:
        raise InvalidMessage(f"Unknown command: {message['type']!r}")
    payload = message.get("payload")
    return command, payload if isinstance(payload, dict) else None
