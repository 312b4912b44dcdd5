"""
db/models/liveness_result.py

Outbound domains found without DNS, one row per (site, domain).
"""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, Index, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base

UPSERT_CONSTRAINT = "uq_liveness_results_site_domain"


class LivenessResultRecord(Base):
    """
    Liveness finding for a domain linked from a scanned site.

    Later findings for the same ``(site, domain)`` overwrite earlier ones.
    """

    __tablename__ = "liveness_results"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    site: Mapped[str] = mapped_column(String(255), nullable=False)
    domain: Mapped[str] = mapped_column(String(255), nullable=False)
    tld: Mapped[str] = mapped_column(String(63), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="no-dns, ok, http-error, dns-error",
    )
    error_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiry_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    found_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("site", "domain", name=UPSERT_CONSTRAINT),
        Index("ix_liveness_results_found_at", "found_at"),
        Index("ix_liveness_results_tld", "tld"),
        Index("ix_liveness_results_expiry_reason", "expiry_reason"),
    )
