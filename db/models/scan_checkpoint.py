"""
db/models/scan_checkpoint.py

Persisted crawl frontier, one row per scanned site.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class ScanCheckpointRecord(Base, TimestampMixin):
    """
    Checkpoint for the one scan a site may have at a time.

    ``pending`` and ``visited`` are disjoint URL lists. ``auto_resume``
    holds ``{enabled, delayMinutes, remaining, batchSize, aggressive}``;
    ``remaining`` is null for unbounded repeats. ``next_resume_at`` is the
    durable time of the next scheduled resume so it survives restarts.
    """

    __tablename__ = "scan_checkpoints"

    site: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        comment="Hostname of the scanned site",
    )
    seed_url: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="running, paused, completed",
    )
    pending: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    visited: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    domains_checked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    concurrency: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    auto_resume: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    next_resume_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_scan_checkpoints_status", "status"),
        Index("ix_scan_checkpoints_next_resume_at", "next_resume_at"),
    )
