from __future__ import annotations

import asyncio
import itertools
import json
import logging
import threading
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Optional

from fastapi import Request

from .models import utcnow
from .settings import settings

logger = logging.getLogger(__name__)

CHECKIN_UPDATED = "checkin_updated"
TECHNICAL_UPDATED = "technical_updated"
WEIGHT_UPDATED = "weight_updated"
PARTICIPANT_REGISTERED = "participant_registered"
EVENT_UPDATED = "event_updated"

UPDATE_TYPES = frozenset({CHECKIN_UPDATED, TECHNICAL_UPDATED, WEIGHT_UPDATED, PARTICIPANT_REGISTERED, EVENT_UPDATED})


@dataclass
class Update:
    id: int
    event_id: int
    type: str
    data: dict
    timestamp: datetime = field(default_factory=utcnow)

    def frame(self) -> str:
        body = {"type": self.type, "eventId": self.event_id, "data": self.data, "timestamp": self.timestamp.isoformat()}
        return f"id: {self.id}\nevent: {self.type}\ndata: {json.dumps(body, default=str)}\n\n"


@dataclass(eq=False)
class Subscriber:
    event_id: int
    queue: asyncio.Queue
    loop: asyncio.AbstractEventLoop


class Broadcaster:
    """In-process fan-out of processing updates to SSE subscribers.

    ``publish`` may be called from any thread (sync route handlers run in a
    worker pool); delivery is handed to each subscriber's own event loop.
    """

    def __init__(self, history_size: int | None = None, queue_size: int | None = None):
        self.history_size = history_size or settings.SSE_HISTORY_SIZE
        self.queue_size = queue_size or settings.SSE_QUEUE_SIZE
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._subscribers: dict[int, set[Subscriber]] = defaultdict(set)
        self._history: dict[int, deque[Update]] = defaultdict(lambda: deque(maxlen=self.history_size))

    def subscribe(self, event_id: int, last_seen: Optional[int] = None) -> Subscriber:
        """Register the running loop's consumer; replays history newer than ``last_seen``."""
        sub = Subscriber(event_id=event_id, queue=asyncio.Queue(maxsize=self.queue_size), loop=asyncio.get_running_loop())
        with self._lock:
            self._subscribers[event_id].add(sub)
            backlog = [u for u in self._history[event_id] if last_seen is not None and u.id > last_seen]
        for update in backlog:
            self._offer(sub, update)
        logger.debug("SSE subscriber added for event %s (replayed %d)", event_id, len(backlog))
        return sub

    def unsubscribe(self, sub: Subscriber) -> None:
        with self._lock:
            subs = self._subscribers.get(sub.event_id)
            if subs is not None:
                subs.discard(sub)
                if not subs:
                    del self._subscribers[sub.event_id]
        logger.debug("SSE subscriber removed for event %s", sub.event_id)

    def subscriber_count(self, event_id: int) -> int:
        with self._lock:
            return len(self._subscribers.get(event_id, ()))

    def publish(self, event_id: int, type: str, data: dict[str, Any]) -> Update:
        if type not in UPDATE_TYPES:
            raise ValueError(f"Unknown update type: {type}")
        with self._lock:
            update = Update(id=next(self._ids), event_id=event_id, type=type, data=data)
            self._history[event_id].append(update)
            targets = list(self._subscribers.get(event_id, ()))
        for sub in targets:
            try:
                sub.loop.call_soon_threadsafe(self._offer, sub, update)
            except RuntimeError:
                # loop already closed; the stream's finally will unsubscribe
                logger.debug("Dropped update %s for closed loop", update.id)
        logger.info("Published %s for event %s to %d subscribers", type, event_id, len(targets))
        return update

    def _offer(self, sub: Subscriber, update: Update) -> None:
        try:
            sub.queue.put_nowait(update)
        except asyncio.QueueFull:
            logger.warning("SSE queue full for event %s; dropping update %s", sub.event_id, update.id)


broadcaster = Broadcaster()


def _connected_frame(event_id: int) -> str:
    body = {"type": "connected", "eventId": event_id, "timestamp": utcnow().isoformat()}
    return f"data: {json.dumps(body)}\n\n"


async def event_stream(
    request: Request,
    event_id: int,
    last_seen: Optional[int] = None,
    hub: Broadcaster = broadcaster,
    heartbeat: float | None = None,
) -> AsyncIterator[str]:
    heartbeat = heartbeat or settings.SSE_HEARTBEAT_SECONDS
    sub = hub.subscribe(event_id, last_seen=last_seen)
    try:
        yield _connected_frame(event_id)
        while True:
            if await request.is_disconnected():
                break
            try:
                update = await asyncio.wait_for(sub.queue.get(), timeout=heartbeat)
            except asyncio.TimeoutError:
                yield ": heartbeat\n\n"
                continue
            yield update.frame()
    finally:
        hub.unsubscribe(sub)


def parse_last_event_id(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None
