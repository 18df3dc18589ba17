"""Bounded buffer of recent room events (join, leave, moderation)."""

from __future__ import annotations

import threading
from collections import deque

from roomflow.context.room import RoomEvent, RoomEventType
from roomflow.core.clock import MINUTE_MS, Clock, now_ms

MAX_EVENTS = 100
RETENTION_MS = 30 * MINUTE_MS


class EventBuffer:
    def __init__(
        self,
        max_events: int = MAX_EVENTS,
        retention_ms: int = RETENTION_MS,
        clock: Clock = now_ms,
    ):
        self.retention_ms = retention_ms
        self._events: deque[RoomEvent] = deque(maxlen=max_events)
        self._lock = threading.Lock()
        self._clock = clock

    def add_event(self, type: RoomEventType, name: str, details: str | None = None) -> RoomEvent:
        event = RoomEvent(type=type, name=name, timestamp=int(self._clock()), details=details)
        with self._lock:
            self._events.append(event)
            self._cleanup()
        return event

    def get_recent_events(self, since: int | None = None) -> list[RoomEvent]:
        with self._lock:
            self._cleanup()
            events = list(self._events)
        if since is not None:
            return [e for e in events if e.timestamp > since]
        return events

    def _cleanup(self) -> None:
        cutoff = self._clock() - self.retention_ms
        while self._events and self._events[0].timestamp <= cutoff:
            self._events.popleft()
