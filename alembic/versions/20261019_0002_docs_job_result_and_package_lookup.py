"""Store build result on the job and index open jobs by package."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("docs_jobs", sa.Column("result_json", sa.Text(), nullable=True))
    op.create_index(
        "idx_docs_jobs_package_status",
        "docs_jobs",
        ["package_name", "package_version", "status"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("idx_docs_jobs_package_status", table_name="docs_jobs")
    op.drop_column("docs_jobs", "result_json")
