"""Persistent queue repository for docs build jobs."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any
from uuid import uuid4

from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from docs_builder.errors import FailureEnvelope
from docs_builder.jobs.models import (
    DocsJobCreate,
    DocsJobDetails,
    DocsJobEventView,
    DocsJobView,
    JobPayload,
    JobStatus,
    PackageSpec,
)
from docs_builder.storage.alembic_runner import upgrade_head
from docs_builder.storage.common import (
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from docs_builder.storage.sqlmodel_models import DocsJob, DocsJobEvent

logger = logging.getLogger(__name__)

_OPEN_STATUSES = (JobStatus.QUEUED.value, JobStatus.ACTIVE.value)


class JobRepository:
    """Queue persistence facade backed by SQLModel + SQLite."""

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    def enqueue_job(self, payload: DocsJobCreate) -> DocsJobView:
        """Create a queued job."""

        now = utc_now()
        job_id = payload.job_id or str(uuid4())
        job_payload = JobPayload(package=payload.package, force=payload.force)
        with Session(self.engine) as session:
            row = DocsJob(
                job_id=job_id,
                package_name=payload.package.name,
                package_version=payload.package.version,
                force=payload.force,
                status=JobStatus.QUEUED.value,
                payload_json=_dump_json(job_payload.to_dict()),
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            self._add_event(
                session=session,
                job_id=job_id,
                event_type="enqueued",
                status_from=None,
                status_to=JobStatus.QUEUED,
                details={"package": str(payload.package), "force": payload.force},
            )
            session.commit()
            session.refresh(row)
            logger.info("Enqueued docs job %s for %s", job_id, payload.package)
            return _to_job_view(row)

    def find_open_job(
        self,
        *,
        package: PackageSpec,
        force: bool = False,
    ) -> DocsJobView | None:
        """Return the oldest queued/active job for the same package version.

        With ``force`` only forced jobs match.
        """

        statement = select(DocsJob).where(
            DocsJob.package_name == package.name,
            DocsJob.package_version == package.version,
            col(DocsJob.status).in_(_OPEN_STATUSES),
        )
        if force:
            statement = statement.where(col(DocsJob.force).is_(True))
        with Session(self.engine) as session:
            row = session.exec(
                statement
                .order_by(col(DocsJob.created_at).asc())
                .limit(1),
            ).one_or_none()
        return _to_job_view(row) if row is not None else None

    def claim_next_job(self, *, worker_id: str) -> DocsJobView | None:
        """Atomically claim the oldest queued job."""

        while True:
            now = utc_now()
            with Session(self.engine) as session:
                candidate = session.exec(
                    select(DocsJob)
                    .where(DocsJob.status == JobStatus.QUEUED.value)
                    .order_by(col(DocsJob.created_at).asc())
                    .limit(1),
                ).one_or_none()
                if candidate is None:
                    return None

                result = session.exec(
                    sa_update(DocsJob)
                    .where(
                        col(DocsJob.job_id) == candidate.job_id,
                        col(DocsJob.status) == JobStatus.QUEUED.value,
                    )
                    .values(
                        status=JobStatus.ACTIVE.value,
                        started_at=to_db_datetime(now),
                        worker_id=worker_id,
                        updated_at=to_db_datetime(now),
                    ),
                )
                if result.rowcount != 1:
                    session.rollback()
                    continue

                claimed = session.exec(
                    select(DocsJob).where(DocsJob.job_id == candidate.job_id),
                ).one()
                self._add_event(
                    session=session,
                    job_id=claimed.job_id,
                    event_type="claimed",
                    status_from=JobStatus.QUEUED,
                    status_to=JobStatus.ACTIVE,
                    details={"worker_id": worker_id},
                )
                session.commit()
                return _to_job_view(claimed)

    def complete_job(self, *, job_id: str, result: dict[str, Any]) -> bool:
        """Mark an active job as succeeded."""

        now = utc_now()
        with Session(self.engine) as session:
            update_result = session.exec(
                sa_update(DocsJob)
                .where(
                    col(DocsJob.job_id) == job_id,
                    col(DocsJob.status) == JobStatus.ACTIVE.value,
                )
                .values(
                    status=JobStatus.SUCCESS.value,
                    result_json=_dump_json(result),
                    finished_at=to_db_datetime(now),
                    updated_at=to_db_datetime(now),
                ),
            )
            if update_result.rowcount != 1:
                session.rollback()
                return False
            self._add_event(
                session=session,
                job_id=job_id,
                event_type="succeeded",
                status_from=JobStatus.ACTIVE,
                status_to=JobStatus.SUCCESS,
                details={"result": result},
            )
            session.commit()
            return True

    def fail_job(self, *, job_id: str, envelope: FailureEnvelope) -> bool:
        """Persist failure context into the job payload and mark it failed."""

        now = utc_now()
        with Session(self.engine) as session:
            row = session.exec(select(DocsJob).where(DocsJob.job_id == job_id)).one_or_none()
            if row is None or row.status != JobStatus.ACTIVE.value:
                return False

            payload = JobPayload.from_dict(_load_json(row.payload_json))
            failed_payload = JobPayload(
                package=payload.package,
                force=payload.force,
                original_error=envelope,
            )
            update_result = session.exec(
                sa_update(DocsJob)
                .where(
                    col(DocsJob.job_id) == job_id,
                    col(DocsJob.status) == JobStatus.ACTIVE.value,
                )
                .values(
                    status=JobStatus.FAILED.value,
                    payload_json=_dump_json(failed_payload.to_dict()),
                    error_code=envelope.code,
                    finished_at=to_db_datetime(now),
                    updated_at=to_db_datetime(now),
                ),
            )
            if update_result.rowcount != 1:
                session.rollback()
                return False
            self._add_event(
                session=session,
                job_id=job_id,
                event_type="failed",
                status_from=JobStatus.ACTIVE,
                status_to=JobStatus.FAILED,
                details={"code": envelope.code, "message": envelope.message},
            )
            session.commit()
            return True

    def recover_stale_jobs(self, *, stale_after: timedelta) -> int:
        """Fail active jobs whose worker has not finished them in time."""

        now = utc_now()
        cutoff = to_db_datetime(now - stale_after)
        with Session(self.engine) as session:
            stale_rows = session.exec(
                select(DocsJob).where(
                    DocsJob.status == JobStatus.ACTIVE.value,
                    col(DocsJob.started_at) <= cutoff,
                ),
            ).all()
            stale = [(row.job_id, row.worker_id) for row in stale_rows]

        recovered = 0
        for job_id, worker_id in stale:
            if self.fail_job(job_id=job_id, envelope=FailureEnvelope.abandoned(worker_id=worker_id)):
                logger.warning("Failed abandoned docs job %s (worker=%s)", job_id, worker_id)
                recovered += 1
        return recovered

    def get_job(self, *, job_id: str) -> DocsJobView | None:
        with Session(self.engine) as session:
            row = session.exec(select(DocsJob).where(DocsJob.job_id == job_id)).one_or_none()
        return _to_job_view(row) if row is not None else None

    def list_jobs(
        self,
        *,
        status: JobStatus | None = None,
        limit: int = 50,
    ) -> list[DocsJobView]:
        """List recent jobs, optionally filtered by status."""

        with Session(self.engine) as session:
            statement = select(DocsJob).order_by(col(DocsJob.created_at).desc()).limit(limit)
            if status is not None:
                statement = statement.where(DocsJob.status == status.value)
            rows = session.exec(statement).all()
        return [_to_job_view(row) for row in rows]

    def get_job_details(self, *, job_id: str) -> DocsJobDetails | None:
        """Return job details with event stream."""

        with Session(self.engine) as session:
            job = session.exec(select(DocsJob).where(DocsJob.job_id == job_id)).one_or_none()
            if job is None:
                return None

            event_rows = session.exec(
                select(DocsJobEvent)
                .where(DocsJobEvent.job_id == job_id)
                .order_by(col(DocsJobEvent.created_at).asc(), col(DocsJobEvent.id).asc()),
            ).all()

        events: list[DocsJobEventView] = []
        for row in event_rows:
            details = _load_json(row.details_json) if row.details_json else {}
            events.append(
                DocsJobEventView(
                    event_id=row.id or 0,
                    job_id=row.job_id,
                    event_type=row.event_type,
                    status_from=JobStatus(row.status_from) if row.status_from is not None else None,
                    status_to=JobStatus(row.status_to) if row.status_to is not None else None,
                    created_at=to_utc_aware_datetime(row.created_at),
                    details=details,
                ),
            )

        return DocsJobDetails(job=_to_job_view(job), events=events)

    def _add_event(  # noqa: PLR0913
        self,
        *,
        session: Session,
        job_id: str,
        event_type: str,
        status_from: JobStatus | None,
        status_to: JobStatus | None,
        details: dict[str, object],
    ) -> None:
        session.add(
            DocsJobEvent(
                job_id=job_id,
                event_type=event_type,
                status_from=status_from.value if status_from is not None else None,
                status_to=status_to.value if status_to is not None else None,
                details_json=_dump_json(details) if details else None,
                created_at=utc_now(),
            ),
        )


def _dump_json(value: dict[str, Any]) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True, default=str)


def _load_json(value: str | None) -> dict[str, Any]:
    if not value:
        return {}
    parsed = json.loads(value)
    return parsed if isinstance(parsed, dict) else {}


def _optional_datetime(value: datetime | None) -> datetime | None:
    return to_utc_aware_datetime(value) if value is not None else None


def _to_job_view(row: DocsJob) -> DocsJobView:
    return DocsJobView(
        job_id=row.job_id,
        payload=JobPayload.from_dict(_load_json(row.payload_json)),
        status=JobStatus(row.status),
        error_code=row.error_code,
        result=_load_json(row.result_json) if row.result_json else None,
        worker_id=row.worker_id,
        created_at=to_utc_aware_datetime(row.created_at),
        started_at=_optional_datetime(row.started_at),
        finished_at=_optional_datetime(row.finished_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )
