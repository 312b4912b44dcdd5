"""
Scan lifecycle service: start, observe, interrupt and auto-resume scans.

One instance per process. Each site may have at most one batch running in
this process; its events are buffered in a per-run channel that the SSE
endpoint drains. Auto-resume timers are APScheduler ``date`` jobs whose run
time is also persisted on the checkpoint, so they can be re-armed after a
restart.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any, Protocol

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler

from app.scanner.config import ScannerSettings, get_scanner_settings
from app.scanner.engine import BatchRequest, CrawlEngine, build_crawl_engine
from app.scanner.errors import CheckpointPersistenceError, ScanAlreadyRunningError
from app.scanner.events import ChannelEventSink, Event
from app.scanner.fetcher import site_identity
from app.scanner.logging_utils import log_event
from app.scanner.storage.base import CheckpointStore, ResultStore
from app.scanner.types import AutoResumePolicy, BatchOutcome, ScanMode, ScanStatus, utcnow

logger = logging.getLogger(__name__)

AUTO_RESUME_JOB_PREFIX = "auto-resume:"
_MAX_RETAINED_CHANNELS = 50

EngineFactory = Callable[..., CrawlEngine]


class ScanTaskExecutor(Protocol):
    def submit(self, task: Callable[..., None], *args: Any, **kwargs: Any) -> None:
        ...


class ThreadTaskExecutor:
    """
    Runs each submitted task on its own daemon thread.
    """

    def submit(self, task: Callable[..., None], *args: Any, **kwargs: Any) -> None:
        thread = threading.Thread(target=task, args=args, kwargs=kwargs, daemon=True)
        thread.start()


@dataclass(frozen=True)
class AutoResumeRequest:
    enabled: bool = False
    delay_minutes: float = 0.0
    repeat: int | None = 0


@dataclass(frozen=True)
class ScanRequest:
    """
    A caller's scan start request. ``None`` sizes fall back to settings.
    """

    start_url: str
    batch_size: int | None = None
    concurrency: int | None = None
    mode: str = ScanMode.NEW
    aggressive: bool = True
    auto_resume: AutoResumeRequest | None = None


@dataclass
class _ScanRun:
    scan_id: str
    site: str
    sink: ChannelEventSink
    engine: CrawlEngine


def auto_resume_job_id(site: str) -> str:
    return f"{AUTO_RESUME_JOB_PREFIX}{site}"


class ScanService:
    def __init__(
        self,
        *,
        settings: ScannerSettings,
        checkpoint_store: CheckpointStore,
        result_store: ResultStore,
        scheduler: BaseScheduler | None = None,
        engine_factory: EngineFactory = build_crawl_engine,
        executor: ScanTaskExecutor | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._settings = settings
        self._checkpoint_store = checkpoint_store
        self._result_store = result_store
        self._scheduler = scheduler
        self._engine_factory = engine_factory
        self._executor = executor or ThreadTaskExecutor()
        self._clock = clock
        self._lock = threading.Lock()
        # Serializes checkpoint read-modify-write between interrupts, timers
        # and batch completion.
        self._state_lock = threading.RLock()
        self._runs_by_site: dict[str, _ScanRun] = {}
        self._channels: OrderedDict[str, ChannelEventSink] = OrderedDict()

    @property
    def settings(self) -> ScannerSettings:
        return self._settings

    @property
    def scheduler(self) -> BaseScheduler | None:
        return self._scheduler

    @property
    def result_store(self) -> ResultStore:
        return self._result_store

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def start_scan(self, request: ScanRequest) -> str:
        """
        Validate `request` and launch one batch in the background.

        Returns the scan id whose events are readable through `channel()`.
        Raises ValueError (including InvalidSeedUrlError) for bad input and
        ScanAlreadyRunningError when the site is busy.
        """

        batch = self._build_batch_request(request)
        return self._launch(batch)

    def status(self, start_url: str) -> dict[str, Any]:
        site = site_identity(start_url).hostname
        checkpoint = self._checkpoint_store.load(site)
        with self._lock:
            run = self._runs_by_site.get(site)

        payload: dict[str, Any] = {
            "exists": checkpoint is not None,
            "status": ScanStatus.IDLE,
            "running": run is not None,
            "visitedCount": 0,
            "queueCount": 0,
            "domainsChecked": 0,
            "autoResume": None,
            "nextResumeAt": None,
            "lastError": None,
        }
        if checkpoint is not None:
            payload.update(
                status=checkpoint.status,
                visitedCount=len(checkpoint.visited),
                queueCount=len(checkpoint.pending),
                domainsChecked=checkpoint.domains_checked,
                autoResume=checkpoint.auto_resume.to_dict(),
                nextResumeAt=checkpoint.next_resume_at,
                lastError=checkpoint.last_error,
            )
        if run is not None:
            # The checkpoint only catches up at batch end; live counts come from the frontier.
            payload.update(
                status=ScanStatus.RUNNING,
                visitedCount=run.engine.frontier.visited_count,
                queueCount=run.engine.frontier.pending_count,
            )
        return payload

    def interrupt(self, start_url: str) -> bool:
        """
        Stop a running batch and disable auto-resume for the site.

        Returns False when the site has neither a running batch nor a
        checkpoint.
        """

        site = site_identity(start_url).hostname
        with self._state_lock:
            self._disarm(site)
            with self._lock:
                run = self._runs_by_site.get(site)
            if run is not None:
                run.engine.interrupt()
                return True

            if not self._disable_auto_resume(site):
                return False
        log_event(logger, logging.INFO, "scan_interrupted_idle", site=site)
        return True

    def cancel_auto_resume(self, start_url: str) -> bool:
        site = site_identity(start_url).hostname
        with self._state_lock:
            self._disarm(site)
            with self._lock:
                run = self._runs_by_site.get(site)
            if run is not None:
                run.engine.cancel_auto_resume()

            checkpoint = self._checkpoint_store.load(site)
            if checkpoint is None:
                return run is not None
            checkpoint.auto_resume.enabled = False
            checkpoint.next_resume_at = None
            self._checkpoint_store.save(checkpoint)
        log_event(logger, logging.INFO, "auto_resume_cancelled", site=site)
        return True

    def channel(self, scan_id: str) -> ChannelEventSink | None:
        with self._lock:
            return self._channels.get(scan_id)

    def is_running(self, site: str) -> bool:
        with self._lock:
            return site in self._runs_by_site

    def recover_auto_resumes(self) -> int:
        """
        Re-arm timers for paused scans with auto-resume enabled.

        Past-due resume times fire immediately. Returns the number armed.
        """

        armed = 0
        for checkpoint in self._checkpoint_store.list_auto_resumable():
            policy = checkpoint.auto_resume
            if not policy.enabled or not policy.has_remaining():
                continue
            if self.is_running(checkpoint.site):
                continue
            if checkpoint.next_resume_at is None:
                if self._schedule_auto_resume(checkpoint.site):
                    armed += 1
                continue
            if self._arm(checkpoint.site, checkpoint.next_resume_at):
                armed += 1
        if armed:
            log_event(logger, logging.INFO, "auto_resume_recovered", armed=armed)
        return armed

    # ------------------------------------------------------------------
    # Batch execution
    # ------------------------------------------------------------------

    def _build_batch_request(self, request: ScanRequest) -> BatchRequest:
        site_identity(request.start_url)

        batch_size = (
            request.batch_size
            if request.batch_size is not None
            else self._settings.default_batch_size
        )
        concurrency = (
            request.concurrency
            if request.concurrency is not None
            else self._settings.default_concurrency
        )
        if batch_size < 1:
            raise ValueError("batch size must be at least 1")
        if not 1 <= concurrency <= self._settings.max_concurrency:
            raise ValueError(
                f"concurrency must be between 1 and {self._settings.max_concurrency}"
            )
        if request.mode not in ScanMode.ALL:
            raise ValueError(f"mode must be one of {sorted(ScanMode.ALL)}")

        policy: AutoResumePolicy | None = None
        if request.auto_resume is not None:
            if request.auto_resume.delay_minutes < 0:
                raise ValueError("auto-resume delay must not be negative")
            if request.auto_resume.repeat is not None and request.auto_resume.repeat < 0:
                raise ValueError("auto-resume repeat must not be negative")
            policy = AutoResumePolicy(
                enabled=request.auto_resume.enabled,
                delay_minutes=request.auto_resume.delay_minutes,
                remaining=request.auto_resume.repeat,
                batch_size=batch_size,
                aggressive=request.aggressive,
            )

        return BatchRequest(
            start_url=request.start_url,
            batch_size=batch_size,
            concurrency=concurrency,
            mode=request.mode,
            aggressive=request.aggressive,
            auto_resume=policy,
        )

    def _launch(self, batch: BatchRequest, *, announce: Event | None = None) -> str:
        site = site_identity(batch.start_url).hostname
        with self._lock:
            if site in self._runs_by_site:
                raise ScanAlreadyRunningError(f"A scan is already running for {site}")
            scan_id = uuid.uuid4().hex
            sink = ChannelEventSink(scan_id=scan_id, site=site)
            engine = self._engine_factory(
                request=batch,
                settings=self._settings,
                checkpoint_store=self._checkpoint_store,
                result_store=self._result_store,
                sink=sink,
            )
            run = _ScanRun(scan_id=scan_id, site=site, sink=sink, engine=engine)
            self._runs_by_site[site] = run
            self._register_channel(sink)
            if announce is not None:
                sink.emit(announce)

        self._disarm(site)
        log_event(
            logger,
            logging.INFO,
            "scan_launched",
            scan_id=scan_id,
            site=site,
            mode=batch.mode,
            batch_size=batch.batch_size,
            concurrency=batch.concurrency,
        )
        self._executor.submit(self._execute, run)
        return scan_id

    def _execute(self, run: _ScanRun) -> None:
        outcome = None
        try:
            outcome = run.engine.run()
        except CheckpointPersistenceError as exc:
            log_event(logger, logging.ERROR, "scan_failed", site=run.site, error=str(exc))
        except Exception as exc:
            logger.exception("Scan batch crashed site=%s", run.site)
            run.sink.emit({"type": "error", "error": str(exc)})
            self._record_failure(run.site, exc)
        finally:
            try:
                self._finish_run(run, outcome)
            finally:
                run.sink.close()

    def _finish_run(self, run: _ScanRun, outcome: BatchOutcome | None) -> None:
        with self._state_lock:
            with self._lock:
                self._runs_by_site.pop(run.site, None)
            # The flags may have been set after the engine wrote its final
            # checkpoint, so they are applied here as well.
            if run.engine.interrupted or run.engine.auto_resume_cancelled:
                self._disarm(run.site)
                try:
                    self._disable_auto_resume(run.site)
                except CheckpointPersistenceError as exc:
                    log_event(
                        logger,
                        logging.ERROR,
                        "auto_resume_disable_failed",
                        site=run.site,
                        error=str(exc),
                    )
            elif outcome is not None and outcome.status == ScanStatus.PAUSED:
                self._schedule_auto_resume(run.site, sink=run.sink)

    def _disable_auto_resume(self, site: str) -> bool:
        checkpoint = self._checkpoint_store.load(site)
        if checkpoint is None:
            return False
        checkpoint.auto_resume.enabled = False
        checkpoint.next_resume_at = None
        if checkpoint.status == ScanStatus.RUNNING:
            checkpoint.status = ScanStatus.PAUSED
        self._checkpoint_store.save(checkpoint)
        return True

    def _record_failure(self, site: str, exc: Exception) -> None:
        try:
            checkpoint = self._checkpoint_store.load(site)
            if checkpoint is None:
                return
            checkpoint.last_error = str(exc)
            if checkpoint.status == ScanStatus.RUNNING:
                checkpoint.status = ScanStatus.PAUSED
            self._checkpoint_store.save(checkpoint)
        except CheckpointPersistenceError as persist_exc:
            log_event(
                logger,
                logging.ERROR,
                "scan_failure_not_recorded",
                site=site,
                error=str(persist_exc),
            )

    def _register_channel(self, sink: ChannelEventSink) -> None:
        self._channels[sink.scan_id] = sink
        while len(self._channels) > _MAX_RETAINED_CHANNELS:
            oldest_id = next(iter(self._channels))
            if not self._channels[oldest_id].closed:
                break
            del self._channels[oldest_id]

    # ------------------------------------------------------------------
    # Auto-resume
    # ------------------------------------------------------------------

    def _schedule_auto_resume(self, site: str, *, sink: ChannelEventSink | None = None) -> bool:
        with self._state_lock:
            try:
                checkpoint = self._checkpoint_store.load(site)
                if checkpoint is None or checkpoint.status != ScanStatus.PAUSED:
                    return False
                policy = checkpoint.auto_resume
                if not policy.enabled or not policy.has_remaining():
                    return False

                run_at = self._clock() + timedelta(minutes=policy.delay_minutes)
                checkpoint.next_resume_at = run_at
                self._checkpoint_store.save(checkpoint)
            except CheckpointPersistenceError as exc:
                log_event(logger, logging.ERROR, "auto_resume_schedule_failed", site=site, error=str(exc))
                return False

            armed = self._arm(site, run_at)
        if sink is not None:
            sink.emit(
                {
                    "type": "resume-scheduled",
                    "runAt": run_at.isoformat(),
                    "delayMinutes": policy.delay_minutes,
                    "remaining": policy.remaining,
                }
            )
        return armed

    def _arm(self, site: str, run_at: datetime) -> bool:
        if self._scheduler is None:
            log_event(logger, logging.WARNING, "auto_resume_not_armed", site=site, run_at=run_at)
            return False
        self._scheduler.add_job(
            self._fire_auto_resume,
            trigger="date",
            run_date=run_at,
            args=[site],
            id=auto_resume_job_id(site),
            name=f"Auto-resume scan for {site}",
            replace_existing=True,
            misfire_grace_time=None,
        )
        log_event(logger, logging.INFO, "auto_resume_armed", site=site, run_at=run_at)
        return True

    def _disarm(self, site: str) -> None:
        if self._scheduler is None:
            return
        try:
            self._scheduler.remove_job(auto_resume_job_id(site))
        except JobLookupError:
            return
        log_event(logger, logging.INFO, "auto_resume_disarmed", site=site)

    def _fire_auto_resume(self, site: str) -> str | None:
        """
        Timer callback. Re-checks the checkpoint before resuming, since the
        scan may have been interrupted, cancelled or restarted meanwhile.
        """

        with self._state_lock:
            return self._resume_paused(site)

    def _resume_paused(self, site: str) -> str | None:
        try:
            checkpoint = self._checkpoint_store.load(site)
        except CheckpointPersistenceError as exc:
            log_event(logger, logging.ERROR, "auto_resume_load_failed", site=site, error=str(exc))
            return None

        if checkpoint is None or checkpoint.status != ScanStatus.PAUSED:
            log_event(logger, logging.INFO, "auto_resume_skipped", site=site, reason="not_paused")
            return None
        policy = checkpoint.auto_resume
        if not policy.enabled or not policy.has_remaining():
            log_event(logger, logging.INFO, "auto_resume_skipped", site=site, reason="disabled")
            return None
        if self.is_running(site):
            log_event(logger, logging.INFO, "auto_resume_skipped", site=site, reason="running")
            return None

        policy.consume()
        checkpoint.next_resume_at = None
        checkpoint.status = ScanStatus.RUNNING
        try:
            self._checkpoint_store.save(checkpoint)
        except CheckpointPersistenceError as exc:
            log_event(logger, logging.ERROR, "auto_resume_save_failed", site=site, error=str(exc))
            return None

        batch = BatchRequest(
            start_url=checkpoint.seed_url,
            batch_size=policy.batch_size,
            concurrency=checkpoint.concurrency,
            mode=ScanMode.RESUME,
            aggressive=policy.aggressive,
        )
        try:
            scan_id = self._launch(
                batch,
                announce={"type": "resume-fired", "remaining": policy.remaining},
            )
        except ScanAlreadyRunningError:
            log_event(logger, logging.INFO, "auto_resume_skipped", site=site, reason="running")
            return None
        log_event(
            logger,
            logging.INFO,
            "auto_resume_fired",
            site=site,
            scan_id=scan_id,
            remaining=policy.remaining,
        )
        return scan_id


@lru_cache(maxsize=1)
def get_scan_service() -> ScanService:
    """
    Build and cache the process-wide scan service.
    """

    from app.scanner.storage import SQLAlchemyCheckpointStore, SQLAlchemyResultStore
    from app.scheduler.jobs import build_scheduler
    from db.session import SessionLocal

    return ScanService(
        settings=get_scanner_settings(),
        checkpoint_store=SQLAlchemyCheckpointStore(session_factory=SessionLocal),
        result_store=SQLAlchemyResultStore(session_factory=SessionLocal),
        scheduler=build_scheduler(),
    )
