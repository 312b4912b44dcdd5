"""
Crawl engine: runs one bounded batch of a site scan.

A batch loads the site's checkpoint (or starts fresh), crawls at most
`batch_size` pages through a fixed-size worker pool, checks every newly
seen outbound domain once, and writes a terminal checkpoint:

- ``completed`` when the frontier ran dry
- ``paused`` when the page budget ran out with URLs still pending, or when
  the batch was interrupted (which also disables auto-resume)
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

import requests
from requests.adapters import HTTPAdapter

from app.scanner.config.models import ScannerSettings
from app.scanner.dns_oracle import DnsLivenessOracle
from app.scanner.enrichment import ExpiryLookup, WhmcsExpiryLookup
from app.scanner.errors import (
    CheckpointPersistenceError,
    PageFetchError,
    ResultPersistenceError,
)
from app.scanner.events import Event, EventSink
from app.scanner.fetcher import PageFetcher, normalize_link, partition_links, site_identity
from app.scanner.frontier import Frontier
from app.scanner.http_prober import HttpReachabilityProber
from app.scanner.liveness import DomainLivenessClassifier
from app.scanner.logging_utils import log_event
from app.scanner.robots import RobotsGate
from app.scanner.stats import StatsEmitter, StatsSample
from app.scanner.storage.base import CheckpointStore, ResultStore
from app.scanner.types import (
    AutoResumePolicy,
    BatchOutcome,
    LivenessFinding,
    LivenessStatus,
    ScanCheckpoint,
    ScanMode,
    ScanStatus,
)
from app.scanner.worker_pool import WorkerPool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchRequest:
    """
    Parameters for one crawl invocation.

    `auto_resume` replaces the stored policy when given; on ``resume`` with
    ``None`` the checkpoint's policy is kept.
    """

    start_url: str
    batch_size: int = 1000
    concurrency: int = 5
    mode: str = ScanMode.NEW
    aggressive: bool = True
    auto_resume: AutoResumePolicy | None = None


class CrawlEngine:
    def __init__(
        self,
        *,
        request: BatchRequest,
        settings: ScannerSettings,
        checkpoint_store: CheckpointStore,
        result_store: ResultStore,
        classifier: DomainLivenessClassifier,
        robots: RobotsGate,
        fetcher: PageFetcher,
        sink: EventSink,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if request.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if request.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if request.mode not in ScanMode.ALL:
            raise ValueError(f"Unknown scan mode: {request.mode!r}")

        self._request = request
        self._site = site_identity(request.start_url)
        self._settings = settings
        self._checkpoint_store = checkpoint_store
        self._result_store = result_store
        self._classifier = classifier
        self._robots = robots
        self._fetcher = fetcher
        self._sink = sink
        self._sleep = sleep
        self._delay_seconds = settings.politeness_delay(aggressive=request.aggressive)

        self._interrupted = threading.Event()
        self._auto_resume_cancelled = threading.Event()
        self._lock = threading.Lock()
        self._frontier = Frontier()
        self._pool: WorkerPool | None = None
        self._claimed = 0
        self._outstanding_pages = 0
        self._pages_completed = 0
        self._pages_fetched = 0
        self._domains_checked_base = 0
        self._domains_checked = 0

    @property
    def site(self) -> str:
        return self._site.hostname

    @property
    def frontier(self) -> Frontier:
        return self._frontier

    @property
    def interrupted(self) -> bool:
        return self._interrupted.is_set()

    @property
    def auto_resume_cancelled(self) -> bool:
        return self._auto_resume_cancelled.is_set()

    def interrupt(self) -> None:
        """
        Stop claiming pages. Unstarted page tasks are put back in the
        frontier; queued domain checks still run.
        """

        self._interrupted.set()
        log_event(logger, logging.INFO, "scan_interrupt_requested", site=self.site)

    def cancel_auto_resume(self) -> None:
        """
        Keep the batch running but write auto-resume as disabled when it ends.
        """

        self._auto_resume_cancelled.set()

    def run(self) -> BatchOutcome:
        checkpoint = self._open_checkpoint()
        self._frontier = Frontier(pending=checkpoint.pending, visited=checkpoint.visited)
        self._domains_checked_base = checkpoint.domains_checked

        self._emit(
            {
                "type": "start",
                "startUrl": self._request.start_url,
                "batchSize": self._request.batch_size,
                "concurrency": self._request.concurrency,
                "mode": self._request.mode,
                "aggressive": self._request.aggressive,
            }
        )
        log_event(
            logger,
            logging.INFO,
            "scan_batch_started",
            site=self.site,
            mode=self._request.mode,
            batch_size=self._request.batch_size,
            concurrency=self._request.concurrency,
            pending=self._frontier.pending_count,
            visited=self._frontier.visited_count,
        )

        pool = WorkerPool(
            concurrency=self._request.concurrency,
            name=f"scan-{self.site}",
            on_error=self._on_task_error,
        )
        self._pool = pool
        stats = StatsEmitter(
            sample=self._sample,
            sink=self._sink,
            interval_seconds=self._settings.stats_interval_seconds,
        )
        with pool, stats:
            self._pump()
            pool.join()

        return self._close_checkpoint(checkpoint)

    # ------------------------------------------------------------------
    # Checkpoint transitions
    # ------------------------------------------------------------------

    def _open_checkpoint(self) -> ScanCheckpoint:
        request = self._request
        existing = self._persist(lambda: self._checkpoint_store.load(self.site))

        if request.mode == ScanMode.NEW or existing is None:
            if existing is not None:
                self._persist(lambda: self._checkpoint_store.delete(self.site))
            seed = normalize_link(request.start_url, request.start_url) or request.start_url
            checkpoint = ScanCheckpoint(
                site=self.site,
                seed_url=request.start_url,
                status=ScanStatus.RUNNING,
                pending=[seed],
                visited=[],
                concurrency=request.concurrency,
                auto_resume=request.auto_resume
                or AutoResumePolicy(
                    batch_size=request.batch_size,
                    aggressive=request.aggressive,
                ),
            )
        else:
            checkpoint = existing
            checkpoint.status = ScanStatus.RUNNING
            checkpoint.concurrency = request.concurrency
            checkpoint.next_resume_at = None
            checkpoint.last_error = None
            if request.auto_resume is not None:
                checkpoint.auto_resume = request.auto_resume

        self._persist(lambda: self._checkpoint_store.save(checkpoint))
        return checkpoint

    def _close_checkpoint(self, checkpoint: ScanCheckpoint) -> BatchOutcome:
        pending, visited = self._frontier.snapshot()
        interrupted = self._interrupted.is_set()
        with self._lock:
            domains_checked = self._domains_checked_base + self._domains_checked
            pages_fetched = self._pages_fetched

        checkpoint.pending = pending
        checkpoint.visited = visited
        checkpoint.domains_checked = domains_checked
        checkpoint.status = (
            ScanStatus.PAUSED if pending or interrupted else ScanStatus.COMPLETED
        )
        if interrupted or self._auto_resume_cancelled.is_set():
            checkpoint.auto_resume.enabled = False
            checkpoint.next_resume_at = None

        self._persist(lambda: self._checkpoint_store.save(checkpoint))

        self._emit(
            {
                "type": "done" if checkpoint.status == ScanStatus.COMPLETED else "paused",
                "totalPages": len(visited),
                "domains": domains_checked,
                "pending": len(pending),
                "interrupted": interrupted,
            }
        )
        log_event(
            logger,
            logging.INFO,
            "scan_checkpoint_written",
            site=self.site,
            status=checkpoint.status,
            pending=len(pending),
            visited=len(visited),
            domains_checked=domains_checked,
            interrupted=interrupted,
            peak_workers=self._pool.peak_active if self._pool is not None else 0,
        )
        return BatchOutcome(
            site=self.site,
            status=checkpoint.status,
            pages_fetched=pages_fetched,
            total_visited=len(visited),
            pending_count=len(pending),
            domains_checked=domains_checked,
            interrupted=interrupted,
        )

    def _persist(self, operation: Callable[[], object]):
        try:
            return operation()
        except CheckpointPersistenceError as exc:
            self._emit({"type": "error", "error": str(exc)})
            log_event(logger, logging.ERROR, "scan_checkpoint_failed", site=self.site, error=str(exc))
            raise

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _pump(self) -> None:
        """
        Claim pending URLs into the pool while budget and page slots remain.

        At most `concurrency` page tasks are queued or running at once, so
        URLs stay in discovery order in the frontier until a slot frees up.
        """

        pool = self._pool
        if pool is None:
            return
        with self._lock:
            while (
                not self._interrupted.is_set()
                and self._outstanding_pages < self._request.concurrency
                and self._claimed < self._request.batch_size
            ):
                url = self._frontier.claim_next()
                if url is None:
                    break
                self._claimed += 1
                self._outstanding_pages += 1
                pool.submit("page", self._crawl_page, url)

    def _crawl_page(self, url: str) -> None:
        completed = False
        try:
            if self._interrupted.is_set():
                self._frontier.release(url)
                return
            completed = True
            self._process_page(url)
        finally:
            with self._lock:
                self._outstanding_pages -= 1
                if completed:
                    self._pages_completed += 1
            self._pump()

    def _process_page(self, url: str) -> None:
        self._emit(
            {
                "type": "page",
                "stage": "enqueue",
                "url": url,
                "visited": self._frontier.visited_count,
            }
        )
        if not self._robots.is_allowed(url=url, user_agent=self._settings.user_agent):
            self._emit({"type": "page", "stage": "robots-blocked", "url": url})
            log_event(logger, logging.DEBUG, "page_blocked_by_robots", site=self.site, url=url)
            return

        try:
            links = self._fetcher.fetch_and_extract(url)
        except PageFetchError as exc:
            self._emit(
                {
                    "type": "page",
                    "stage": "fetch-error",
                    "url": url,
                    "code": exc.error_code,
                    "error": str(exc),
                }
            )
            log_event(
                logger,
                logging.WARNING,
                "page_fetch_failed",
                site=self.site,
                url=url,
                error_code=exc.error_code,
                error=str(exc),
            )
            return

        with self._lock:
            self._pages_fetched += 1
        if self._delay_seconds > 0:
            self._sleep(self._delay_seconds)

        partitioned = partition_links(links, site=self._site)
        discovered = sum(1 for link in partitioned.internal if self._frontier.add(link))
        pool = self._pool
        for host in partitioned.outbound_hosts:
            if self._frontier.mark_outbound(host) and pool is not None:
                pool.submit("domain", self._check_domain, host)

        self._emit(
            {
                "type": "page",
                "stage": "fetched",
                "url": url,
                "links": len(links),
                "discovered": discovered,
                "outbound": len(partitioned.outbound_hosts),
            }
        )

    def _check_domain(self, domain: str) -> None:
        # Runs even after an interrupt: the page that found `domain` is
        # already visited, so a resume would never queue it again.
        result = self._classifier.classify(domain)
        if result.status == LivenessStatus.NO_DNS:
            finding = LivenessFinding.from_result(site=self.site, result=result)
            try:
                self._result_store.upsert(finding)
            except ResultPersistenceError as exc:
                self._emit({"type": "error", "stage": "domain", "domain": domain, "error": str(exc)})
                log_event(
                    logger,
                    logging.ERROR,
                    "liveness_result_write_failed",
                    site=self.site,
                    domain=domain,
                    error=str(exc),
                )

        with self._lock:
            self._domains_checked += 1
        self._emit(
            {
                "type": "domain",
                "stage": "check-done",
                "domain": result.domain,
                "result": result.to_event_dict(),
            }
        )

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _sample(self) -> StatsSample:
        pool = self._pool
        with self._lock:
            pages_completed = self._pages_completed
            domains_checked = self._domains_checked_base + self._domains_checked
        return StatsSample(
            pages_completed=pages_completed,
            total_visited=self._frontier.visited_count,
            queue_depth=self._frontier.pending_count + (pool.queued_count if pool else 0),
            domains_checked=domains_checked,
            concurrency=self._request.concurrency,
        )

    def _on_task_error(self, kind: str, exc: BaseException) -> None:
        self._emit({"type": "error", "stage": kind, "error": str(exc)})

    def _emit(self, event: Event) -> None:
        try:
            self._sink.emit(event)
        except Exception:
            logger.exception("Event sink failed site=%s type=%s", self.site, event.get("type"))


def build_http_session(*, pool_size: int) -> requests.Session:
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size, max_retries=0)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def build_crawl_engine(
    *,
    request: BatchRequest,
    settings: ScannerSettings,
    checkpoint_store: CheckpointStore,
    result_store: ResultStore,
    sink: EventSink,
    session: requests.Session | None = None,
    expiry_lookup: ExpiryLookup | None = None,
) -> CrawlEngine:
    """
    Wire a crawl engine with network-backed collaborators.
    """

    http = session or build_http_session(pool_size=max(10, request.concurrency * 2))
    if expiry_lookup is None:
        expiry_lookup = WhmcsExpiryLookup(session=http, settings=settings.whmcs)
    classifier = DomainLivenessClassifier(
        dns_oracle=DnsLivenessOracle(timeout_seconds=settings.dns_timeout_seconds),
        http_prober=HttpReachabilityProber(
            session=http,
            timeout_seconds=settings.probe_timeout_seconds,
            user_agent=settings.user_agent,
        ),
        expiry_lookup=expiry_lookup,
    )
    return CrawlEngine(
        request=request,
        settings=settings,
        checkpoint_store=checkpoint_store,
        result_store=result_store,
        classifier=classifier,
        robots=RobotsGate(
            session=http,
            timeout_seconds=settings.robots_timeout_seconds,
            allow_when_unreachable=settings.allow_when_robots_unreachable,
        ),
        fetcher=PageFetcher(
            session=http,
            timeout_seconds=settings.page_timeout_seconds,
            user_agent=settings.user_agent,
        ),
        sink=sink,
    )
