"""Docs build job queue with per-job event trail."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "docs_jobs",
        sa.Column("job_id", sa.String(), nullable=False),
        sa.Column("package_name", sa.String(), nullable=False),
        sa.Column("package_version", sa.String(), nullable=False),
        sa.Column("force", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=False),
        sa.Column("error_code", sa.String(), nullable=True),
        sa.Column("worker_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("job_id"),
    )
    op.create_index("idx_docs_jobs_queue", "docs_jobs", ["status", "created_at"], unique=False)
    op.create_index("ix_docs_jobs_status", "docs_jobs", ["status"], unique=False)
    op.create_index("ix_docs_jobs_worker_id", "docs_jobs", ["worker_id"], unique=False)

    op.create_table(
        "docs_job_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("job_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("status_from", sa.String(), nullable=True),
        sa.Column("status_to", sa.String(), nullable=True),
        sa.Column("details_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["job_id"], ["docs_jobs.job_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_docs_job_events_job_time",
        "docs_job_events",
        ["job_id", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("idx_docs_job_events_job_time", table_name="docs_job_events")
    op.drop_table("docs_job_events")
    op.drop_index("ix_docs_jobs_worker_id", table_name="docs_jobs")
    op.drop_index("ix_docs_jobs_status", table_name="docs_jobs")
    op.drop_index("idx_docs_jobs_queue", table_name="docs_jobs")
    op.drop_table("docs_jobs")
