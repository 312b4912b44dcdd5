"""
In-memory crawl frontier for one batch.

Owns three disjoint URL collections and the outbound-domain dedup table:

- ``pending``: discovered, not yet claimed, kept in discovery order
- ``visited``: processed in earlier batches (loaded from the checkpoint)
- ``batch``: claimed during this batch; merged into ``visited`` at
  checkpoint time

Every mutation goes through the methods below under one lock, so a URL is
never in two collections at once even when workers complete concurrently.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable


class Frontier:
    def __init__(
        self,
        *,
        pending: Iterable[str] = (),
        visited: Iterable[str] = (),
    ) -> None:
        self._lock = threading.Lock()
        self._visited: dict[str, None] = dict.fromkeys(visited)
        self._batch: dict[str, None] = {}
        self._pending: dict[str, None] = {
            url: None for url in pending if url not in self._visited
        }
        self._outbound_hosts: set[str] = set()

    def add(self, url: str) -> bool:
        """
        Queue `url` unless it is already known. Returns True when queued.
        """

        with self._lock:
            if url in self._pending or url in self._visited or url in self._batch:
                return False
            self._pending[url] = None
            return True

    def claim_next(self) -> str | None:
        """
        Move the oldest pending URL into the batch working set.
        """

        with self._lock:
            if not self._pending:
                return None
            url = next(iter(self._pending))
            del self._pending[url]
            self._batch[url] = None
            return url

    def release(self, url: str) -> None:
        """
        Return a claimed but unprocessed URL to the head of the queue.
        """

        with self._lock:
            if url not in self._batch:
                return
            del self._batch[url]
            self._pending = {url: None, **self._pending}

    def mark_outbound(self, host: str) -> bool:
        """
        Record an outbound hostname. Returns True the first time it is seen.
        """

        with self._lock:
            if host in self._outbound_hosts:
                return False
            self._outbound_hosts.add(host)
            return True

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def visited_count(self) -> int:
        """Persisted plus this-batch visited URLs."""

        with self._lock:
            return len(self._visited) + len(self._batch)

    def snapshot(self) -> tuple[list[str], list[str]]:
        """
        Return ``(pending, visited)`` with the batch merged into visited.
        """

        with self._lock:
            visited = list(self._visited)
            visited.extend(url for url in self._batch if url not in self._visited)
            return list(self._pending), visited
