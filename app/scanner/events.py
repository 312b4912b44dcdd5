"""
Event sinks for scan progress.

The crawl core reports every milestone through an `EventSink` supplied by
its caller. There is no process-wide emitter: each scan's events go only
to the sink it was given.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any, Protocol

Event = dict[str, Any]

DEFAULT_MAX_BUFFERED_EVENTS = 2000


class EventSink(Protocol):
    def emit(self, event: Event) -> None:
        ...


class CallbackEventSink:
    """
    Forwards events to a plain callable.
    """

    def __init__(self, callback: Callable[[Event], None]) -> None:
        self._callback = callback

    def emit(self, event: Event) -> None:
        self._callback(event)


class ChannelEventSink:
    """
    Thread-safe, bounded event buffer for one scan run.

    Readers keep their own cursor, counted from the first event of the run.
    Once more than `max_events` events have been emitted the oldest are
    discarded, and a reader whose cursor points at a discarded event
    continues from the oldest one still held.
    """

    def __init__(self, *, scan_id: str, site: str, max_events: int = DEFAULT_MAX_BUFFERED_EVENTS) -> None:
        if max_events < 1:
            raise ValueError("max_events must be at least 1")
        self.scan_id = scan_id
        self.site = site
        self._max_events = max_events
        self._events: list[Event] = []
        self._discarded = 0
        self._closed = False
        self._condition = threading.Condition()

    @property
    def closed(self) -> bool:
        with self._condition:
            return self._closed

    def emit(self, event: Event) -> None:
        with self._condition:
            if self._closed:
                return
            self._events.append(dict(event))
            overflow = len(self._events) - self._max_events
            if overflow > 0:
                del self._events[:overflow]
                self._discarded += overflow
            self._condition.notify_all()

    def close(self) -> None:
        with self._condition:
            self._closed = True
            self._condition.notify_all()

    def events(self) -> list[Event]:
        with self._condition:
            return list(self._events)

    def read(self, cursor: int, *, timeout: float | None = None) -> tuple[list[Event], int, bool]:
        """
        Return events from `cursor` on, the cursor for the next read, and
        whether the channel is closed.

        Waits up to `timeout` seconds when nothing new is buffered.
        """

        with self._condition:
            if cursor >= self._discarded + len(self._events) and not self._closed:
                self._condition.wait(timeout=timeout)
            start = max(cursor, self._discarded)
            events = self._events[start - self._discarded:]
            return list(events), start + len(events), self._closed
