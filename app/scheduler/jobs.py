"""
app/scheduler/jobs.py

APScheduler wiring for scan auto-resume.

Jobs
----
  auto-resume:<site>  : one ``date`` job per paused site, armed by
                        ``ScanService`` with the checkpoint's
                        ``next_resume_at``.
  auto_resume_sweep   : every few minutes, re-arms timers for paused
                        checkpoints that have no live job (for example
                        ones written by the CLI or by another process).

Lifecycle
----------
Call ``build_scheduler()`` once to get a configured ``BackgroundScheduler``,
then ``register_scan_jobs()`` with the scan service. Start it on app boot and
shut it down on app shutdown; the FastAPI ``lifespan`` in main.py does both.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from apscheduler.schedulers.background import BackgroundScheduler

if TYPE_CHECKING:
    from app.services.scan_service import ScanService

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "auto_resume_sweep"


def _sweep_interval_minutes() -> int:
    raw = os.getenv("SCANNER_AUTO_RESUME_SWEEP_MINUTES", "5").strip()
    try:
        return max(1, int(raw))
    except ValueError:
        logger.warning("SCANNER_AUTO_RESUME_SWEEP_MINUTES=%r is not an integer; using 5", raw)
        return 5


def run_auto_resume_sweep(service: "ScanService") -> None:
    """
    Re-arm auto-resume timers from persisted checkpoints.
    """

    try:
        armed = service.recover_auto_resumes()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Scheduler: auto_resume_sweep failed: %s", exc)
        return
    logger.debug("Scheduler: auto_resume_sweep armed=%d", armed)


def build_scheduler() -> BackgroundScheduler:
    """
    Return a configured but *not yet started* ``BackgroundScheduler``.
    """

    return BackgroundScheduler(
        timezone="UTC",
        job_defaults={"coalesce": True, "max_instances": 1},
    )


def register_scan_jobs(scheduler: BackgroundScheduler, service: "ScanService") -> None:
    scheduler.add_job(
        run_auto_resume_sweep,
        trigger="interval",
        minutes=_sweep_interval_minutes(),
        args=[service],
        id=SWEEP_JOB_ID,
        name="Auto-resume recovery sweep",
        replace_existing=True,
        misfire_grace_time=300,
    )
