from __future__ import annotations

import threading
from datetime import timedelta
from pathlib import Path

import allure
from sqlalchemy import inspect, text

from docs_builder.errors import FailureEnvelope, PackageNotFoundError, TypeDocBuildError
from docs_builder.jobs.models import DocsJobCreate, JobStatus, PackageSpec
from docs_builder.jobs.repository import JobRepository

pytestmark = [
    allure.epic("Docs Build Queue"),
    allure.feature("Job Persistence"),
]

LEFT_PAD = PackageSpec(name="left-pad", version="1.3.0")


def test_schema_is_migrated_to_head(repository: JobRepository) -> None:
    with repository.engine.connect() as connection:
        version = connection.execute(text("SELECT version_num FROM alembic_version")).scalar()
    tables = set(inspect(repository.engine).get_table_names())

    assert version == "20261019_0002"
    assert {"docs_jobs", "docs_job_events"} <= tables


def test_init_schema_is_idempotent(tmp_path: Path) -> None:
    repo = JobRepository(tmp_path / "twice.db")
    repo.init_schema()
    repo.init_schema()
    repo.close()


def test_enqueue_persists_payload_in_wire_shape(repository: JobRepository) -> None:
    job = repository.enqueue_job(DocsJobCreate(package=LEFT_PAD, force=True, job_id="J1"))

    assert job.job_id == "J1"
    assert job.status is JobStatus.QUEUED
    assert job.payload.to_dict() == {
        "packageJSON": {"name": "left-pad", "version": "1.3.0"},
        "force": True,
    }
    assert repository.get_job(job_id="J1") == job


def test_claim_next_job_is_fifo_and_exclusive(repository: JobRepository) -> None:
    first = repository.enqueue_job(DocsJobCreate(package=LEFT_PAD))
    second = repository.enqueue_job(
        DocsJobCreate(package=PackageSpec(name="is-odd", version="3.0.1")),
    )

    claimed = repository.claim_next_job(worker_id="w1")
    claimed_next = repository.claim_next_job(worker_id="w2")

    assert claimed is not None and claimed.job_id == first.job_id
    assert claimed.status is JobStatus.ACTIVE
    assert claimed.worker_id == "w1"
    assert claimed.started_at is not None
    assert claimed_next is not None and claimed_next.job_id == second.job_id
    assert repository.claim_next_job(worker_id="w3") is None


def test_concurrent_claims_deliver_each_job_once(repository: JobRepository) -> None:
    for index in range(6):
        repository.enqueue_job(
            DocsJobCreate(package=PackageSpec(name=f"pkg-{index}", version="1.0.0")),
        )

    claimed: list[str] = []
    lock = threading.Lock()

    def _drain(worker_id: str) -> None:
        while True:
            job = repository.claim_next_job(worker_id=worker_id)
            if job is None:
                return
            with lock:
                claimed.append(job.job_id)

    threads = [threading.Thread(target=_drain, args=(f"w{i}",)) for i in range(3)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert len(claimed) == 6
    assert len(set(claimed)) == 6


def test_complete_job_records_result_and_events(repository: JobRepository) -> None:
    job = repository.enqueue_job(DocsJobCreate(package=LEFT_PAD))
    repository.claim_next_job(worker_id="w1")

    assert repository.complete_job(job_id=job.job_id, result={"outputDir": "/tmp/x"})
    assert not repository.complete_job(job_id=job.job_id, result={})

    details = repository.get_job_details(job_id=job.job_id)
    assert details is not None
    assert details.job.status is JobStatus.SUCCESS
    assert details.job.result == {"outputDir": "/tmp/x"}
    assert details.job.finished_at is not None
    assert [event.event_type for event in details.events] == ["enqueued", "claimed", "succeeded"]


def test_fail_job_attaches_original_error_to_payload(repository: JobRepository) -> None:
    job = repository.enqueue_job(DocsJobCreate(package=LEFT_PAD))
    repository.claim_next_job(worker_id="w1")
    envelope = FailureEnvelope.from_error(
        TypeDocBuildError("render failed", stack="Error: boom"),
    )

    assert repository.fail_job(job_id=job.job_id, envelope=envelope)

    failed = repository.get_job(job_id=job.job_id)
    assert failed is not None
    assert failed.status is JobStatus.FAILED
    assert failed.error_code == "TypeDocBuildError"
    assert failed.failure == envelope
    assert failed.payload.to_dict()["originalError"] == {
        "code": "TypeDocBuildError",
        "stacktrace": "Error: boom",
        "message": "render failed",
        "extra": "render failed",
    }


def test_fail_job_ignores_jobs_that_are_not_active(repository: JobRepository) -> None:
    job = repository.enqueue_job(DocsJobCreate(package=LEFT_PAD))
    envelope = FailureEnvelope.from_error(PackageNotFoundError("left-pad"))

    assert not repository.fail_job(job_id=job.job_id, envelope=envelope)
    assert not repository.fail_job(job_id="missing", envelope=envelope)
    assert repository.get_job(job_id=job.job_id).status is JobStatus.QUEUED


def test_find_open_job_matches_queued_and_active_only(repository: JobRepository) -> None:
    assert repository.find_open_job(package=LEFT_PAD) is None

    job = repository.enqueue_job(DocsJobCreate(package=LEFT_PAD))
    assert repository.find_open_job(package=LEFT_PAD).job_id == job.job_id
    assert repository.find_open_job(package=PackageSpec("left-pad", "1.0.0")) is None

    repository.claim_next_job(worker_id="w1")
    assert repository.find_open_job(package=LEFT_PAD).job_id == job.job_id

    repository.complete_job(job_id=job.job_id, result={})
    assert repository.find_open_job(package=LEFT_PAD) is None


def test_find_open_job_with_force_matches_forced_jobs_only(repository: JobRepository) -> None:
    plain = repository.enqueue_job(DocsJobCreate(package=LEFT_PAD))
    assert repository.find_open_job(package=LEFT_PAD, force=True) is None

    forced = repository.enqueue_job(DocsJobCreate(package=LEFT_PAD, force=True))
    assert repository.find_open_job(package=LEFT_PAD, force=True).job_id == forced.job_id
    assert repository.find_open_job(package=LEFT_PAD).job_id == plain.job_id


def test_recover_stale_jobs_fails_them_as_abandoned(repository: JobRepository) -> None:
    job = repository.enqueue_job(DocsJobCreate(package=LEFT_PAD))
    repository.claim_next_job(worker_id="dead-worker")

    assert repository.recover_stale_jobs(stale_after=timedelta(hours=1)) == 0
    assert repository.recover_stale_jobs(stale_after=timedelta(seconds=-1)) == 1

    recovered = repository.get_job(job_id=job.job_id)
    assert recovered.status is JobStatus.FAILED
    assert recovered.error_code == "DocsJobAbandoned"
    assert "dead-worker" in recovered.failure.message
    assert repository.claim_next_job(worker_id="w2") is None


def test_list_jobs_filters_by_status(repository: JobRepository) -> None:
    repository.enqueue_job(DocsJobCreate(package=LEFT_PAD, job_id="a"))
    repository.enqueue_job(DocsJobCreate(package=PackageSpec("is-odd", "3.0.1"), job_id="b"))
    repository.claim_next_job(worker_id="w1")

    assert {job.job_id for job in repository.list_jobs()} == {"a", "b"}
    assert [job.job_id for job in repository.list_jobs(status=JobStatus.ACTIVE)] == ["a"]
    assert [job.job_id for job in repository.list_jobs(status=JobStatus.QUEUED)] == ["b"]
    assert len(repository.list_jobs(limit=1)) == 1
