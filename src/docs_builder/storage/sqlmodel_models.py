"""SQLModel ORM tables for the docs job queue."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text
from sqlmodel import Field, SQLModel


class DocsJob(SQLModel, table=True):
    __tablename__ = "docs_jobs"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_docs_jobs_queue", "status", "created_at"),
        Index("idx_docs_jobs_package_status", "package_name", "package_version", "status"),
    )

    job_id: str = Field(primary_key=True)
    package_name: str
    package_version: str
    force: bool = Field(default=False)
    status: str = Field(index=True)
    payload_json: str = Field(sa_column=Column(Text, nullable=False))
    error_code: str | None = None
    result_json: str | None = Field(default=None, sa_column=Column(Text))
    worker_id: str | None = Field(default=None, index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    started_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    finished_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class DocsJobEvent(SQLModel, table=True):
    __tablename__ = "docs_job_events"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_docs_job_events_job_time", "job_id", "created_at"),)

    id: int | None = Field(default=None, primary_key=True)
    job_id: str = Field(
        sa_column=Column(
            ForeignKey("docs_jobs.job_id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    event_type: str
    status_from: str | None = None
    status_to: str | None = None
    details_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
