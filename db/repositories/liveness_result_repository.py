"""
db/repositories/liveness_result_repository.py

Persistence and lookup for liveness findings.

The caller controls commit/rollback; this repository never commits.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from db.models.liveness_result import UPSERT_CONSTRAINT, LivenessResultRecord

HAS_EXPIRY_DATE_REASON = "has-expiry-date"


def _contains_pattern(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def build_result_upsert(values: dict[str, Any]):
    """
    Build the ``INSERT ... ON CONFLICT ON CONSTRAINT`` for one finding.
    """

    stmt = insert(LivenessResultRecord).values(id=uuid.uuid4(), **values)
    return stmt.on_conflict_do_update(
        constraint=UPSERT_CONSTRAINT,
        set_={
            "tld": stmt.excluded.tld,
            "status": stmt.excluded.status,
            "error_code": stmt.excluded.error_code,
            "expiry_date": stmt.excluded.expiry_date,
            "expiry_reason": stmt.excluded.expiry_reason,
            "found_at": stmt.excluded.found_at,
        },
    )


def build_result_search(
    *,
    website: str | None = None,
    tld: str | None = None,
    reason: str | None = None,
) -> Select[tuple[LivenessResultRecord]]:
    """
    Filter findings: `website` and `tld` match case-insensitive substrings;
    `reason` is either ``has-expiry-date`` or an exact expiry reason.
    """

    stmt: Select[tuple[LivenessResultRecord]] = select(LivenessResultRecord)
    if website:
        stmt = stmt.where(LivenessResultRecord.site.ilike(_contains_pattern(website), escape="\\"))
    if tld:
        stmt = stmt.where(LivenessResultRecord.tld.ilike(_contains_pattern(tld), escape="\\"))
    if reason:
        if reason == HAS_EXPIRY_DATE_REASON:
            stmt = stmt.where(LivenessResultRecord.expiry_date.isnot(None))
        else:
            stmt = stmt.where(LivenessResultRecord.expiry_reason == reason)
    return stmt.order_by(LivenessResultRecord.found_at.desc())


class LivenessResultRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def upsert(self, values: dict[str, Any]) -> None:
        self._session.execute(build_result_upsert(values))

    def search(
        self,
        *,
        website: str | None = None,
        tld: str | None = None,
        reason: str | None = None,
    ) -> list[LivenessResultRecord]:
        stmt = build_result_search(website=website, tld=tld, reason=reason)
        return list(self._session.scalars(stmt).all())

    def distinct_reasons(self) -> list[str]:
        stmt = (
            select(LivenessResultRecord.expiry_reason)
            .where(
                LivenessResultRecord.expiry_reason.isnot(None),
                LivenessResultRecord.expiry_reason != "",
            )
            .distinct()
            .order_by(LivenessResultRecord.expiry_reason)
        )
        return [str(reason) for reason in self._session.scalars(stmt).all()]

    def count_by_site(self) -> list[tuple[str, int]]:
        stmt = (
            select(LivenessResultRecord.site, func.count(LivenessResultRecord.id))
            .group_by(LivenessResultRecord.site)
            .order_by(LivenessResultRecord.site.asc())
        )
        return [(str(site), int(count)) for site, count in self._session.execute(stmt).all()]
