"""
SQLAlchemy-backed checkpoint and result storage.
"""

from __future__ import annotations

from collections.abc import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.scanner.errors import CheckpointPersistenceError, ResultPersistenceError
from app.scanner.storage.base import CheckpointStore, ResultStore
from app.scanner.types import AutoResumePolicy, LivenessFinding, ScanCheckpoint
from db.models.liveness_result import LivenessResultRecord
from db.models.scan_checkpoint import ScanCheckpointRecord
from db.repositories.liveness_result_repository import LivenessResultRepository
from db.repositories.scan_checkpoint_repository import ScanCheckpointRepository

SessionFactory = Callable[[], Session]


def checkpoint_from_record(record: ScanCheckpointRecord) -> ScanCheckpoint:
    return ScanCheckpoint(
        site=record.site,
        seed_url=record.seed_url,
        status=record.status,
        pending=list(record.pending or []),
        visited=list(record.visited or []),
        domains_checked=record.domains_checked or 0,
        concurrency=record.concurrency or 1,
        auto_resume=AutoResumePolicy.from_dict(record.auto_resume),
        next_resume_at=record.next_resume_at,
        last_error=record.last_error,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def checkpoint_to_values(checkpoint: ScanCheckpoint) -> dict[str, object]:
    return {
        "site": checkpoint.site,
        "seed_url": checkpoint.seed_url,
        "status": checkpoint.status,
        "pending": list(checkpoint.pending),
        "visited": list(checkpoint.visited),
        "domains_checked": checkpoint.domains_checked,
        "concurrency": checkpoint.concurrency,
        "auto_resume": checkpoint.auto_resume.to_dict(),
        "next_resume_at": checkpoint.next_resume_at,
        "last_error": checkpoint.last_error,
    }


def finding_from_record(record: LivenessResultRecord) -> LivenessFinding:
    return LivenessFinding(
        site=record.site,
        domain=record.domain,
        tld=record.tld,
        status=record.status,
        error_code=record.error_code,
        expiry_date=record.expiry_date,
        expiry_reason=record.expiry_reason,
        found_at=record.found_at,
    )


class SQLAlchemyCheckpointStore(CheckpointStore):
    """
    Opens one short session per operation so worker and scheduler threads
    never share a session.
    """

    def __init__(self, *, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def load(self, site: str) -> ScanCheckpoint | None:
        try:
            with self._session_factory() as session:
                record = ScanCheckpointRepository(session).get(site)
                return None if record is None else checkpoint_from_record(record)
        except SQLAlchemyError as exc:
            raise CheckpointPersistenceError(f"Failed to load checkpoint for {site}: {exc}") from exc

    def save(self, checkpoint: ScanCheckpoint) -> None:
        try:
            with self._session_factory() as session, session.begin():
                ScanCheckpointRepository(session).upsert(checkpoint_to_values(checkpoint))
        except SQLAlchemyError as exc:
            raise CheckpointPersistenceError(
                f"Failed to save checkpoint for {checkpoint.site}: {exc}"
            ) from exc

    def delete(self, site: str) -> None:
        try:
            with self._session_factory() as session, session.begin():
                ScanCheckpointRepository(session).delete(site)
        except SQLAlchemyError as exc:
            raise CheckpointPersistenceError(f"Failed to delete checkpoint for {site}: {exc}") from exc

    def list_auto_resumable(self) -> list[ScanCheckpoint]:
        try:
            with self._session_factory() as session:
                records = ScanCheckpointRepository(session).list_auto_resumable()
                return [checkpoint_from_record(record) for record in records]
        except SQLAlchemyError as exc:
            raise CheckpointPersistenceError(f"Failed to list checkpoints: {exc}") from exc


class SQLAlchemyResultStore(ResultStore):
    def __init__(self, *, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def upsert(self, finding: LivenessFinding) -> None:
        values = {
            "site": finding.site,
            "domain": finding.domain,
            "tld": finding.tld,
            "status": finding.status,
            "error_code": finding.error_code,
            "expiry_date": finding.expiry_date,
            "expiry_reason": finding.expiry_reason,
            "found_at": finding.found_at,
        }
        try:
            with self._session_factory() as session, session.begin():
                LivenessResultRepository(session).upsert(values)
        except SQLAlchemyError as exc:
            raise ResultPersistenceError(
                f"Failed to save result {finding.site}/{finding.domain}: {exc}"
            ) from exc

    def find(
        self,
        *,
        website: str | None = None,
        tld: str | None = None,
        reason: str | None = None,
    ) -> list[LivenessFinding]:
        with self._session_factory() as session:
            records = LivenessResultRepository(session).search(
                website=website,
                tld=tld,
                reason=reason,
            )
            return [finding_from_record(record) for record in records]

    def distinct_reasons(self) -> list[str]:
        with self._session_factory() as session:
            return LivenessResultRepository(session).distinct_reasons()

    def summary(self) -> list[tuple[str, int]]:
        with self._session_factory() as session:
            return LivenessResultRepository(session).count_by_site()
