"""
db/repositories/scan_checkpoint_repository.py

Persistence for per-site scan checkpoints.

The caller controls commit/rollback; this repository never commits.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from db.models.scan_checkpoint import ScanCheckpointRecord

_MUTABLE_COLUMNS = (
    "seed_url",
    "status",
    "pending",
    "visited",
    "domains_checked",
    "concurrency",
    "auto_resume",
    "next_resume_at",
    "last_error",
)


def build_checkpoint_upsert(values: dict[str, Any]):
    """
    Build the ``INSERT ... ON CONFLICT (site) DO UPDATE`` for one checkpoint.

    ``created_at`` is only set on insert; every other column is overwritten.
    """

    now = datetime.now(timezone.utc)
    row = {key: values[key] for key in ("site", *_MUTABLE_COLUMNS) if key in values}
    stmt = insert(ScanCheckpointRecord).values(**row, created_at=now, updated_at=now)
    return stmt.on_conflict_do_update(
        index_elements=[ScanCheckpointRecord.site],
        set_={
            **{key: stmt.excluded[key] for key in _MUTABLE_COLUMNS if key in row},
            "updated_at": now,
        },
    )


class ScanCheckpointRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, site: str) -> ScanCheckpointRecord | None:
        return self._session.get(ScanCheckpointRecord, site)

    def upsert(self, values: dict[str, Any]) -> None:
        self._session.execute(build_checkpoint_upsert(values))

    def delete(self, site: str) -> int:
        result = self._session.execute(
            delete(ScanCheckpointRecord).where(ScanCheckpointRecord.site == site)
        )
        return int(result.rowcount or 0)

    def list_auto_resumable(self) -> list[ScanCheckpointRecord]:
        """
        Paused checkpoints whose auto-resume policy is enabled.
        """

        stmt = (
            select(ScanCheckpointRecord)
            .where(
                ScanCheckpointRecord.status == "paused",
                ScanCheckpointRecord.auto_resume["enabled"].as_boolean().is_(True),
            )
            .order_by(ScanCheckpointRecord.updated_at.asc())
        )
        return list(self._session.scalars(stmt).all())
