"""
Fixed-size worker pool draining one shared task queue.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from typing import Any

from app.scanner.logging_utils import log_event

logger = logging.getLogger(__name__)

TaskErrorHandler = Callable[[str, BaseException], None]

_STOP = object()


class WorkerPool:
    """
    Runs at most `concurrency` tasks at a time.

    Tasks may submit further tasks while running. `join()` returns once the
    queue is empty and no task is executing, which marks the end of a
    batch. A task that raises is logged and reported to `on_error`; it is
    never retried and never stops the pool.
    """

    def __init__(
        self,
        *,
        concurrency: int,
        name: str = "scan-worker",
        on_error: TaskErrorHandler | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._concurrency = concurrency
        self._name = name
        self._on_error = on_error
        self._queue: queue.Queue[Any] = queue.Queue()
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()
        self._active = 0
        self._peak_active = 0

    @property
    def peak_active(self) -> int:
        """Highest number of tasks observed running at the same time."""

        with self._lock:
            return self._peak_active

    @property
    def queued_count(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self._threads:
            return
        for index in range(self._concurrency):
            thread = threading.Thread(
                target=self._work,
                name=f"{self._name}-{index}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)

    def submit(self, kind: str, task: Callable[..., Any], *args: Any) -> None:
        self._queue.put((kind, task, args))

    def join(self) -> None:
        """Block until every submitted task, including follow-ups, is done."""

        self._queue.join()

    def shutdown(self) -> None:
        for _ in self._threads:
            self._queue.put(_STOP)
        for thread in self._threads:
            thread.join()
        self._threads = []

    def __enter__(self) -> "WorkerPool":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    def _work(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                self._queue.task_done()
                return
            kind, task, args = item
            with self._lock:
                self._active += 1
                self._peak_active = max(self._peak_active, self._active)
            try:
                task(*args)
            except Exception as exc:
                log_event(
                    logger,
                    logging.ERROR,
                    "task_failed",
                    kind=kind,
                    error=str(exc),
                )
                self._report(kind, exc)
            finally:
                with self._lock:
                    self._active -= 1
                self._queue.task_done()

    def _report(self, kind: str, exc: BaseException) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(kind, exc)
        except Exception:
            logger.exception("Task error handler failed kind=%s", kind)
