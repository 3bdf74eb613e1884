"""In-process event bus — fanout from poll engines to live connections.

Learn: Publishing is synchronous: `publish()` calls every handler that
subscribed to the event's class, in subscription order, before it
returns. Handlers must therefore be cheap and non-blocking (the
WebSocket router only enqueues outgoing messages). A handler that
raises is logged and skipped; the remaining handlers still run.

One bus exists per application instance and is injected wherever it is
needed — there is no module-level singleton.
"""

from collections import defaultdict
from typing import Callable

import structlog

from displayhub.events.types import EVENT_TYPES, BusEvent

logger = structlog.get_logger()

Handler = Callable[[BusEvent], None]


class EventBus:
    """Typed publish/subscribe over the closed set of bus events."""

    def __init__(self):
        self._handlers: dict[type, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: Handler) -> Callable[[], None]:
        """Register `handler` for `event_type`. Returns an unsubscribe callable."""
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type!r}")
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, event: BusEvent) -> None:
        event_type = type(event)
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type!r}")
        # Copy: handlers may unsubscribe (or subscribe) while being called.
        for handler in list(self._handlers.get(event_type, ())):
            try:
                handler(event)
            except Exception:
                logger.exception("event_bus.handler_failed", event_type=event_type.__name__)

    def handler_count(self, event_type: type) -> int:
        return len(self._handlers.get(event_type, ()))
