"""
Periodic throughput and queue-depth snapshots for a running batch.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from app.scanner.events import Event, EventSink

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatsSample:
    """
    Read-only view over the batch counters at one instant.
    """

    pages_completed: int
    total_visited: int
    queue_depth: int
    domains_checked: int
    concurrency: int


class StatsEmitter:
    """
    Emits a ``stats`` event every `interval_seconds` on a background thread.

    Use as a context manager so the thread always stops with the batch,
    whether it completes, pauses or fails.
    """

    def __init__(
        self,
        *,
        sample: Callable[[], StatsSample],
        sink: EventSink,
        interval_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sample = sample
        self._sink = sink
        self._interval_seconds = interval_seconds
        self._clock = clock
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_completed = 0
        self._last_time = clock()

    def tick(self) -> Event:
        """
        Take one sample, emit it, and return the event.
        """

        sample = self._sample()
        now = self._clock()
        elapsed = now - self._last_time
        completed = sample.pages_completed - self._last_completed
        crawl_rate = completed / elapsed if elapsed > 0 else 0.0
        self._last_completed = sample.pages_completed
        self._last_time = now

        event: Event = {
            "type": "stats",
            "visited": sample.total_visited,
            "inQueue": sample.queue_depth,
            "checkedDomains": sample.domains_checked,
            "crawlRate": crawl_rate,
            "concurrency": sample.concurrency,
        }
        self._sink.emit(event)
        return event

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._last_time = self._clock()
        self._thread = threading.Thread(target=self._run, name="scan-stats", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def __enter__(self) -> "StatsEmitter":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def _run(self) -> None:
        while not self._stop.wait(self._interval_seconds):
            try:
                self.tick()
            except Exception:
                logger.exception("Stats sampling failed")
