"""Leadership notifications raised by the election engine.

Two ways to consume them:

- ElectionCallbacks: plain callables invoked synchronously on the engine task.
  Handlers must be fast; anything slow should be handed off.
- QueueEventSink: turns the callbacks into tagged events on an asyncio.Queue
  for a dedicated consumer task.

Example:
    elector = LeaderElector(config, lock)
    elector.callbacks.add_started_leading(lambda: logger.info("leading"))

    sink = QueueEventSink(elector)
    async for event in sink:
        match event:
            case NewLeader(identity=identity):
                ...
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Union

from leaderrun.election.record import utcnow

if TYPE_CHECKING:
    from leaderrun.election.elector import LeaderElector

logger = logging.getLogger(__name__)

LeadershipHandler = Callable[[], None]
NewLeaderHandler = Callable[[str], None]


@dataclass(frozen=True, slots=True)
class StartedLeading:
    """This participant became leader."""

    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True, slots=True)
class StoppedLeading:
    """This participant gave up leadership."""

    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True, slots=True)
class NewLeader:
    """A different holder identity was observed in the lock."""

    identity: str
    timestamp: datetime = field(default_factory=utcnow)


ElectionEvent = Union[StartedLeading, StoppedLeading, NewLeader]


class ElectionCallbacks:
    """Multi-subscriber handler lists for the three notifications.

    A handler that raises is logged and skipped; the remaining handlers
    still run and the engine keeps going.
    """

    def __init__(self) -> None:
        self.on_started_leading: list[LeadershipHandler] = []
        self.on_stopped_leading: list[LeadershipHandler] = []
        self.on_new_leader: list[NewLeaderHandler] = []

    def add_started_leading(self, handler: LeadershipHandler) -> None:
        self.on_started_leading.append(handler)

    def add_stopped_leading(self, handler: LeadershipHandler) -> None:
        self.on_stopped_leading.append(handler)

    def add_new_leader(self, handler: NewLeaderHandler) -> None:
        self.on_new_leader.append(handler)

    def started_leading(self) -> None:
        for handler in self.on_started_leading:
            self._invoke(handler)

    def stopped_leading(self) -> None:
        for handler in self.on_stopped_leading:
            self._invoke(handler)

    def new_leader(self, identity: str) -> None:
        for handler in self.on_new_leader:
            self._invoke(handler, identity)

    @staticmethod
    def _invoke(handler: Callable[..., None], *args: str) -> None:
        try:
            handler(*args)
        except Exception:
            logger.exception(f"Error in election handler {handler!r}")


class QueueEventSink:
    """Collects an elector's notifications as tagged events.

    Events are queued in delivery order. Iterating the sink yields them
    until the consumer stops.
    """

    def __init__(self, elector: LeaderElector, max_size: int = 0):
        self._queue: asyncio.Queue[ElectionEvent] = asyncio.Queue(maxsize=max_size)
        elector.callbacks.add_started_leading(lambda: self._put(StartedLeading()))
        elector.callbacks.add_stopped_leading(lambda: self._put(StoppedLeading()))
        elector.callbacks.add_new_leader(lambda identity: self._put(NewLeader(identity)))

    def _put(self, event: ElectionEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(f"Election event queue full, dropping {event!r}")

    async def get(self) -> ElectionEvent:
        """Wait for the next event."""
        return await self._queue.get()

    def get_nowait(self) -> ElectionEvent:
        return self._queue.get_nowait()

    @property
    def pending_count(self) -> int:
        """Number of events waiting to be consumed."""
        return self._queue.qsize()

    async def __aiter__(self) -> AsyncIterator[ElectionEvent]:
        while True:
            yield await self._queue.get()
