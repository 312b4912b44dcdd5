"""
tests/fakes.py

Shared fakes for scanner tests.

Everything here is pure Python: no network, no database, no real DNS.
"""

from __future__ import annotations

import copy
import threading
import time
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import dns.resolver
import requests
from apscheduler.jobstores.base import JobLookupError

from app.scanner.errors import PageFetchError
from app.scanner.fetcher import extract_links
from app.scanner.storage.base import CheckpointStore, ResultStore
from app.scanner.types import (
    LivenessFinding,
    LivenessResult,
    LivenessStatus,
    ScanCheckpoint,
    ScanStatus,
)

FIXED_NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# HTTP fakes
# ---------------------------------------------------------------------------


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        text: str = "",
        headers: dict[str, str] | None = None,
        json_data: Any = None,
    ) -> None:
        self.status_code = status_code
        self.text = text
        self.headers = headers if headers is not None else {"Content-Type": "text/html; charset=utf-8"}
        self._json_data = json_data
        self.closed = False

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if self._json_data is None:
            raise ValueError("No JSON body")
        return self._json_data

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """
    Routes GET/POST by exact URL to a response or an exception instance.
    """

    def __init__(self, routes: dict[str, Any] | None = None) -> None:
        self.routes: dict[str, Any] = dict(routes or {})
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self._lock = threading.Lock()

    def _dispatch(self, method: str, url: str, kwargs: dict[str, Any]) -> FakeResponse:
        with self._lock:
            self.calls.append((method, url, kwargs))
        outcome = self.routes.get(url)
        if outcome is None:
            raise requests.ConnectionError(f"No route for {url}")
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._dispatch("GET", url, kwargs)

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._dispatch("POST", url, kwargs)

    def urls(self, method: str = "GET") -> list[str]:
        with self._lock:
            return [url for called, url, _ in self.calls if called == method]


# ---------------------------------------------------------------------------
# DNS fakes
# ---------------------------------------------------------------------------


class FakeRdata:
    def __init__(self, text: str, target: str | None = None) -> None:
        self._text = text
        self.target = target

    def to_text(self) -> str:
        return self._text


class FakeResolver:
    """
    Answers ``resolve(name, rdtype)`` from a table of rdata lists or
    exceptions; unknown keys raise `default_error`. ``resolve_name`` reads
    the same table under the "ADDR" record type.
    """

    def __init__(
        self,
        answers: dict[tuple[str, str], Any] | None = None,
        default_error: Callable[[], BaseException] | None = None,
    ) -> None:
        self.answers = dict(answers or {})
        self.default_error = default_error or (lambda: dns.resolver.NXDOMAIN())
        self.queries: list[tuple[str, str]] = []
        self.lifetimes: list[float | None] = []

    def resolve(self, name: str, rdtype: str, lifetime: float | None = None) -> list[FakeRdata]:
        self.queries.append((name, rdtype))
        self.lifetimes.append(lifetime)
        outcome = self.answers.get((name, rdtype))
        if outcome is None:
            raise self.default_error()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def resolve_name(self, name: str, lifetime: float | None = None) -> FakeHostAnswers:
        return FakeHostAnswers(self.resolve(name, "ADDR", lifetime=lifetime))


class FakeHostAnswers:
    def __init__(self, rdatas: list[FakeRdata]) -> None:
        self._rdatas = rdatas

    def addresses(self) -> list[str]:
        return [rdata.to_text() for rdata in self._rdatas]


# ---------------------------------------------------------------------------
# Storage fakes
# ---------------------------------------------------------------------------


class InMemoryCheckpointStore(CheckpointStore):
    def __init__(self) -> None:
        self._rows: dict[str, ScanCheckpoint] = {}
        self.history: list[ScanCheckpoint] = []
        self._lock = threading.Lock()

    def load(self, site: str) -> ScanCheckpoint | None:
        with self._lock:
            row = self._rows.get(site)
            return copy.deepcopy(row) if row is not None else None

    def save(self, checkpoint: ScanCheckpoint) -> None:
        with self._lock:
            stored = copy.deepcopy(checkpoint)
            self._rows[checkpoint.site] = stored
            self.history.append(copy.deepcopy(stored))

    def delete(self, site: str) -> None:
        with self._lock:
            self._rows.pop(site, None)

    def list_auto_resumable(self) -> list[ScanCheckpoint]:
        with self._lock:
            return [
                copy.deepcopy(row)
                for row in self._rows.values()
                if row.status == ScanStatus.PAUSED and row.auto_resume.enabled
            ]


class InMemoryResultStore(ResultStore):
    def __init__(self) -> None:
        self.rows: dict[tuple[str, str], LivenessFinding] = {}
        self._lock = threading.Lock()

    def upsert(self, finding: LivenessFinding) -> None:
        with self._lock:
            self.rows[(finding.site, finding.domain)] = finding

    def find(
        self,
        *,
        website: str | None = None,
        tld: str | None = None,
        reason: str | None = None,
    ) -> list[LivenessFinding]:
        with self._lock:
            rows = list(self.rows.values())
        if website:
            rows = [row for row in rows if website.lower() in row.site.lower()]
        if tld:
            rows = [row for row in rows if tld.lower() in row.tld.lower()]
        if reason == "has-expiry-date":
            rows = [row for row in rows if row.expiry_date is not None]
        elif reason:
            rows = [row for row in rows if row.expiry_reason == reason]
        return sorted(rows, key=lambda row: row.found_at, reverse=True)

    def distinct_reasons(self) -> list[str]:
        with self._lock:
            return sorted({row.expiry_reason for row in self.rows.values() if row.expiry_reason})

    def summary(self) -> list[tuple[str, int]]:
        counts: dict[str, int] = {}
        with self._lock:
            for site, _domain in self.rows:
                counts[site] = counts.get(site, 0) + 1
        return sorted(counts.items())


# ---------------------------------------------------------------------------
# Engine collaborators
# ---------------------------------------------------------------------------


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def emit(self, event: dict[str, Any]) -> None:
        with self._lock:
            self.events.append(dict(event))

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        with self._lock:
            return [event for event in self.events if event["type"] == event_type]


class FakePageFetcher:
    """
    Serves HTML per URL through the real link extractor.

    Unknown URLs fail with HTTP 404. `on_fetch` runs inside the worker
    before the page is returned; `delay` keeps fetches in flight long enough
    to observe concurrency.
    """

    def __init__(
        self,
        pages: dict[str, str | BaseException],
        *,
        delay: float = 0.0,
        on_fetch: Callable[[str], None] | None = None,
    ) -> None:
        self.pages = pages
        self.delay = delay
        self.on_fetch = on_fetch
        self.fetched: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def fetch_and_extract(self, url: str) -> list[str]:
        with self._lock:
            self.fetched.append(url)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            if self.on_fetch is not None:
                self.on_fetch(url)
            page = self.pages.get(url)
            if page is None:
                raise PageFetchError(url, "HTTP_404", "HTTP status 404")
            if isinstance(page, BaseException):
                raise page
            return extract_links(html=page, base_url=url)
        finally:
            with self._lock:
                self.in_flight -= 1


class StubClassifier:
    def __init__(self, statuses: dict[str, str] | None = None) -> None:
        self.statuses = statuses or {}
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def classify(self, domain: str) -> LivenessResult:
        with self._lock:
            self.calls.append(domain)
        status = self.statuses.get(domain, LivenessStatus.OK)
        error_code = "NXDOMAIN" if status == LivenessStatus.NO_DNS else None
        return LivenessResult(domain=domain, status=status, error_code=error_code)


class StubRobots:
    def __init__(self, blocked: set[str] | None = None) -> None:
        self.blocked = blocked or set()

    def is_allowed(self, *, url: str, user_agent: str) -> bool:
        return url not in self.blocked


def html_page(*hrefs: str) -> str:
    anchors = "".join(f'<a href="{href}">link</a>' for href in hrefs)
    return f"<html><body>{anchors}</body></html>"


# ---------------------------------------------------------------------------
# Scheduling fakes
# ---------------------------------------------------------------------------


class FakeScheduler:
    """
    Records APScheduler ``add_job``/``remove_job`` calls; `fire` runs a job.
    """

    def __init__(self) -> None:
        self.jobs: dict[str, dict[str, Any]] = {}

    def add_job(self, func: Callable[..., Any], trigger: str | None = None, **kwargs: Any) -> None:
        job_id = kwargs["id"]
        if job_id in self.jobs and not kwargs.get("replace_existing"):
            raise ValueError(f"duplicate job {job_id}")
        self.jobs[job_id] = {"func": func, "trigger": trigger, **kwargs}

    def remove_job(self, job_id: str) -> None:
        if job_id not in self.jobs:
            raise JobLookupError(job_id)
        del self.jobs[job_id]

    def fire(self, job_id: str) -> Any:
        job = self.jobs.pop(job_id)
        return job["func"](*job.get("args", []))


class ControlledExecutor:
    """
    Runs submitted tasks inline, or parks them until `run_pending()`.
    """

    def __init__(self, *, immediate: bool = True) -> None:
        self.immediate = immediate
        self.pending: list[tuple[Callable[..., None], tuple[Any, ...], dict[str, Any]]] = []

    def submit(self, task: Callable[..., None], *args: Any, **kwargs: Any) -> None:
        if self.immediate:
            task(*args, **kwargs)
        else:
            self.pending.append((task, args, kwargs))

    def run_pending(self) -> None:
        while self.pending:
            task, args, kwargs = self.pending.pop(0)
            task(*args, **kwargs)


class ManualClock:
    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


