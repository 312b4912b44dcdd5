"""create scan_checkpoints and liveness_results tables

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "scan_checkpoints",
        sa.Column("site", sa.String(length=255), nullable=False, comment="Hostname of the scanned site"),
        sa.Column("seed_url", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, comment="running, paused, completed"),
        sa.Column("pending", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("visited", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("domains_checked", sa.Integer(), nullable=False),
        sa.Column("concurrency", sa.Integer(), nullable=False),
        sa.Column("auto_resume", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("next_resume_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("site", name="pk_scan_checkpoints"),
    )
    op.create_index("ix_scan_checkpoints_status", "scan_checkpoints", ["status"], unique=False)
    op.create_index(
        "ix_scan_checkpoints_next_resume_at",
        "scan_checkpoints",
        ["next_resume_at"],
        unique=False,
    )

    op.create_table(
        "liveness_results",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("site", sa.String(length=255), nullable=False),
        sa.Column("domain", sa.String(length=255), nullable=False),
        sa.Column("tld", sa.String(length=63), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, comment="no-dns, ok, http-error, dns-error"),
        sa.Column("error_code", sa.String(length=32), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("expiry_reason", sa.Text(), nullable=True),
        sa.Column("found_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_liveness_results"),
        sa.UniqueConstraint("site", "domain", name="uq_liveness_results_site_domain"),
    )
    op.create_index("ix_liveness_results_found_at", "liveness_results", ["found_at"], unique=False)
    op.create_index("ix_liveness_results_tld", "liveness_results", ["tld"], unique=False)
    op.create_index(
        "ix_liveness_results_expiry_reason",
        "liveness_results",
        ["expiry_reason"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_liveness_results_expiry_reason", table_name="liveness_results")
    op.drop_index("ix_liveness_results_tld", table_name="liveness_results")
    op.drop_index("ix_liveness_results_found_at", table_name="liveness_results")
    op.drop_table("liveness_results")
    op.drop_index("ix_scan_checkpoints_next_resume_at", table_name="scan_checkpoints")
    op.drop_index("ix_scan_checkpoints_status", table_name="scan_checkpoints")
    op.drop_table("scan_checkpoints")
