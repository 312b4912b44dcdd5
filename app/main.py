from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI


def _validate_env() -> None:
    """
    Validate required environment variables at startup.

    Raises RuntimeError listing every problem so the operator can fix them
    in one restart cycle. Registry lookup credentials are optional; when
    they are missing, findings record that reason instead.
    """

    from app.scanner.config import load_scanner_settings
    from db.config import resolve_database_url

    errors: list[str] = []

    try:
        database_url = resolve_database_url()
    except RuntimeError as exc:
        errors.append(str(exc))
    else:
        if not database_url.startswith("postgresql"):
            errors.append("Only PostgreSQL database URLs are supported.")

    settings = load_scanner_settings()
    if settings.default_concurrency > settings.max_concurrency:
        errors.append(
            "SCANNER_DEFAULT_CONCURRENCY must not exceed SCANNER_MAX_CONCURRENCY "
            f"({settings.default_concurrency} > {settings.max_concurrency})."
        )
    if not settings.whmcs.configured:
        logging.getLogger(__name__).warning(
            "WHMCS credentials not configured; no-dns findings will record the missing credentials as their expiry reason"
        )

    if errors:
        raise RuntimeError(
            "Startup validation failed, missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _check_db() -> None:
    """Open a session and run SELECT 1. Raises RuntimeError if the DB is unreachable."""
    from sqlalchemy import text

    from db.session import SessionLocal

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
    except Exception as exc:
        raise RuntimeError("Database unavailable.") from exc


def _check_schema() -> None:
    """
    Every table registered on Base.metadata must exist in the database.

    Does NOT auto-migrate; aborts startup so the operator runs
    ``alembic upgrade head`` first.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401  registers ORM models on Base.metadata
    from db.base import Base
    from db.session import get_engine

    inspector = sa_inspect(get_engine())
    actual: set[str] = set(inspector.get_table_names())
    expected: set[str] = set(Base.metadata.tables.keys())
    missing = expected - actual

    if missing:
        logging.getLogger(__name__).critical(
            "Schema mismatch: %d table(s) absent from the database: %s. "
            "Run 'alembic upgrade head' and restart.",
            len(missing),
            ", ".join(sorted(missing)),
        )
        raise RuntimeError(
            f"Schema mismatch: {len(missing)} table(s) missing from the database "
            f"({', '.join(sorted(missing))}). Run migrations and restart."
        )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Validate the database, start the scheduler and re-arm auto-resume timers."""
    log = logging.getLogger(__name__)
    _check_db()
    log.info("Database connectivity confirmed")
    _check_schema()
    log.info("Database schema validated")

    from app.scheduler.jobs import register_scan_jobs
    from app.services.scan_service import get_scan_service

    service = get_scan_service()
    scheduler = service.scheduler
    register_scan_jobs(scheduler, service)
    scheduler.start()
    armed = service.recover_auto_resumes()
    log.info("Scheduler started with %d jobs (%d auto-resumes re-armed)", len(scheduler.get_jobs()), armed)
    try:
        yield
    finally:
        scheduler.shutdown(wait=False)
        log.info("Scheduler shut down")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _configure_logging()
    _validate_env()

    application = FastAPI(
        title="Outbound Domain Scanner API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import results_router, scans_router

    application.include_router(scans_router)
    application.include_router(results_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()
