"""Generic poll engine — one recurring poll per key, shared by all subscribers.

Learn: Per key the engine moves through four states:

    INACTIVE ──subscribe──▶ ACTIVE ──rate limited──▶ PAUSED ──retry_after──▶ ACTIVE
                              │                        │
                              ├──unauthorized / target gone──▶ STOPPED (subscribers kept, dormant)
                              └──last unsubscribe──▶ INACTIVE

- ACTIVE: one asyncio task loops poll → sleep(interval). The first poll
  runs immediately when the task starts.
- PAUSED: the loop task is gone; a one-shot resume task sleeps for the
  upstream's retry_after, then starts a fresh loop (immediate poll).
- STOPPED: timer and cache are torn down, subscribers stay registered.
  The next subscribe() for the key starts polling again.

One task per key means at most one poll is in flight per key, and
cache compare → update → publish runs in poll order. Cancelling a task
is synchronous from the caller's point of view: the task can only be
suspended at an await, and there is no await between the cache update
and the publish, so no stray publish can follow an unsubscribe.

Subclasses supply `_fetch`, `_is_material` and `_publish`.
"""

import asyncio
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

import structlog

from displayhub.events.bus import EventBus
from displayhub.polling.registry import SubscriptionRegistry
from displayhub.upstream.errors import RateLimitedError, UnauthorizedError, UpstreamError

logger = structlog.get_logger()

S = TypeVar("S")

Sleep = Callable[[float], Awaitable[Any]]


class PollState(str, Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    PAUSED = "paused"
    STOPPED = "stopped"


class PollTargetGone(Exception):
    """The key no longer has anything to poll (e.g. user removed their credential)."""


class PollEngine(ABC, Generic[S]):
    """Shared subscribe/timer/cache/backoff machinery for one kind of poll."""

    kind: str = "poll"

    def __init__(self, bus: EventBus, *, interval: float, sleep: Optional[Sleep] = None):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.bus = bus
        self.interval = interval
        self._sleep = sleep or asyncio.sleep
        self.registry = SubscriptionRegistry()
        self._timers: dict[str, asyncio.Task] = {}
        self._resumes: dict[str, asyncio.Task] = {}
        self._cache: dict[str, Optional[S]] = {}

    # ─── Subscriber-facing API ──────────────────────────

    def subscribe(self, key: str, subscriber_id: str) -> None:
        """Add a subscriber reference to `key`, starting its poll if needed.

        Never blocks: the first poll runs in the key's task. A key that is
        already polling (or paused) is joined instead; if a snapshot is
        cached, it is delivered to the new subscriber alone right away.
        """
        _require(key, subscriber_id)
        self.registry.add(key, subscriber_id)

        if key in self._timers or key in self._resumes:
            if key in self._cache:
                self._publish(key, self._cache[key], (subscriber_id,))
            return

        self._start(key)

    def unsubscribe(self, key: str, subscriber_id: str) -> None:
        """Release a subscriber reference. The last one tears the key down."""
        _require(key, subscriber_id)
        self.registry.remove(key, subscriber_id)
        if self.registry.is_empty(key):
            self._teardown(key)

    def state(self, key: str) -> PollState:
        if key in self._timers:
            return PollState.ACTIVE
        if key in self._resumes:
            return PollState.PAUSED
        if key in self.registry:
            return PollState.STOPPED
        return PollState.INACTIVE

    def has_timer(self, key: str) -> bool:
        """True while the key is polling or waiting to resume."""
        return key in self._timers or key in self._resumes

    def cached(self, key: str) -> Optional[S]:
        return self._cache.get(key)

    def is_cached(self, key: str) -> bool:
        return key in self._cache

    def active_keys(self) -> tuple[str, ...]:
        return tuple(self._timers)

    async def close(self) -> None:
        """Cancel every timer and resume task (application shutdown)."""
        tasks = [*self._timers.values(), *self._resumes.values()]
        self._timers.clear()
        self._resumes.clear()
        self._cache.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"{self.kind}_poll.closed", cancelled=len(tasks))

    # ─── Subclass hooks ─────────────────────────────────

    @abstractmethod
    async def _fetch(self, key: str) -> S:
        """Resolve the key's parameters and make one upstream call.

        Raises PollTargetGone or an UpstreamError subclass on failure.
        """

    @abstractmethod
    def _is_material(self, previous: Optional[S], current: S) -> bool:
        """Whether `current` differs enough from the cached snapshot to publish."""

    @abstractmethod
    def _publish(self, key: str, snapshot: S, subscribers: tuple[str, ...]) -> None:
        """Put a kind-specific event on the bus."""

    # ─── Timer lifecycle ────────────────────────────────

    def _start(self, key: str) -> None:
        logger.info(f"{self.kind}_poll.started", key=key, interval=self.interval)
        self._timers[key] = asyncio.create_task(
            self._run(key), name=f"{self.kind}-poll:{key}"
        )

    async def _run(self, key: str) -> None:
        me = asyncio.current_task()
        while True:
            await self._poll(key)
            # _poll may have stopped or paused this key
            if self._timers.get(key) is not me:
                return
            await self._sleep(self.interval)

    async def _resume_after(self, key: str, delay: float) -> None:
        await self._sleep(delay)
        if self._resumes.get(key) is not asyncio.current_task():
            return
        del self._resumes[key]
        if self.registry.is_empty(key):
            return
        logger.info(f"{self.kind}_poll.resuming", key=key)
        self._start(key)

    def _pause(self, key: str, delay: float) -> None:
        _cancel(self._timers, key)
        _cancel(self._resumes, key)
        self._resumes[key] = asyncio.create_task(
            self._resume_after(key, delay), name=f"{self.kind}-resume:{key}"
        )

    def _stop(self, key: str) -> None:
        """Stop polling but keep subscribers registered (dormant)."""
        _cancel(self._timers, key)
        _cancel(self._resumes, key)
        self._cache.pop(key, None)

    def _teardown(self, key: str) -> None:
        if self.has_timer(key):
            logger.info(f"{self.kind}_poll.stopped", key=key)
        self._stop(key)

    # ─── One tick ───────────────────────────────────────

    async def _poll(self, key: str) -> None:
        log = logger.bind(key=key)
        try:
            snapshot = await self._fetch(key)
        except PollTargetGone as e:
            log.info(f"{self.kind}_poll.target_gone", reason=str(e))
            self._stop(key)
            return
        except UnauthorizedError as e:
            log.error(f"{self.kind}_poll.unauthorized", error=str(e))
            self._stop(key)
            return
        except RateLimitedError as e:
            log.warning(f"{self.kind}_poll.rate_limited", retry_after=e.retry_after)
            self._pause(key, e.retry_after)
            return
        except UpstreamError as e:
            log.warning(f"{self.kind}_poll.transient_error", error=str(e))
            return
        except Exception:
            log.exception(f"{self.kind}_poll.error")
            return

        if key in self._cache and not self._is_material(self._cache[key], snapshot):
            return
        self._cache[key] = snapshot
        log.debug(f"{self.kind}_poll.changed")
        self._publish(key, snapshot, self.registry.members(key))


def _cancel(tasks: dict[str, asyncio.Task], key: str) -> None:
    task = tasks.pop(key, None)
    # A task never cancels itself here: it returns once it sees it was removed.
    if task is not None and task is not asyncio.current_task():
        task.cancel()


def _require(key: str, subscriber_id: str) -> None:
    if not key:
        raise ValueError("poll key must be non-empty")
    if not subscriber_id:
        raise ValueError("subscriber id must be non-empty")
