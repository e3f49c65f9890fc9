"""Controllers for docs job CLI commands."""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from docs_builder.builder import (
    CliDocsRenderer,
    DocsArtifactStore,
    DocsGenerator,
    NpmRegistryResolver,
)
from docs_builder.config import Settings
from docs_builder.http.docs_client import PackageDocsClient
from docs_builder.jobs.api import ApiResponse, DocsApi
from docs_builder.jobs.models import JobStatus
from docs_builder.jobs.repository import JobRepository
from docs_builder.jobs.watchdog import IdleWatchdog
from docs_builder.jobs.worker import DocsWorker


@dataclass(slots=True)
class DocsWorkerCommand:
    """CLI input for worker execution."""

    db_path: Path | None
    once: bool
    max_jobs: int | None
    max_idle_polls: int | None = None
    watchdog: bool = True


@dataclass(slots=True)
class DocsPackageCommand:
    """CLI input for trigger and sync build requests."""

    db_path: Path | None
    name: str
    version: str | None
    force: bool


@dataclass(slots=True)
class DocsJobCommand:
    """CLI input for poll and inspect operations."""

    db_path: Path | None
    job_id: str


@dataclass(slots=True)
class DocsListJobsCommand:
    """CLI input for job listing."""

    db_path: Path | None
    status: str | None
    limit: int


@dataclass(slots=True)
class DocsFetchCommand:
    """CLI input for the remote trigger-and-poll client."""

    name: str
    version: str | None
    force: bool
    sync: bool
    base_url: str | None = None


@dataclass(slots=True)
class DocsFetchResult:
    """Fetch outcome to render in CLI."""

    lines: list[str]
    success: bool


@dataclass(slots=True)
class _DocsServices:
    repository: JobRepository
    resolver: NpmRegistryResolver
    artifacts: DocsArtifactStore
    generator: DocsGenerator


class DocsCliController:
    """Coordinates worker, endpoint, and inspection CLI operations."""

    def run_worker(self, command: DocsWorkerCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate_for_worker()
        watchdog = (
            IdleWatchdog(
                idle_timeout_seconds=settings.worker.idle_timeout_seconds,
                check_interval_seconds=settings.worker.watchdog_interval_seconds,
            )
            if command.watchdog and not command.once
            else None
        )
        with _services(settings) as services:
            worker = DocsWorker(
                repository=services.repository,
                generator=services.generator,
                worker_id=settings.worker.worker_id,
                poll_interval_seconds=settings.worker.poll_interval_seconds,
                stale_job_seconds=settings.worker.stale_job_seconds,
                watchdog=watchdog,
            )
            summary = (
                worker.run_once()
                if command.once
                else worker.run_loop(
                    max_jobs=command.max_jobs,
                    max_idle_polls=command.max_idle_polls,
                )
            )

        return [
            "Worker summary: "
            f"processed={summary.processed} succeeded={summary.succeeded} "
            f"failed={summary.failed} recovered={summary.recovered} "
            f"idle_polls={summary.idle_polls}",
        ]

    def trigger(self, command: DocsPackageCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _services(settings) as services:
            response = _api(settings, services).trigger(
                command.name,
                command.version,
                force=command.force,
            )
        return _render_response(response)

    def build(self, command: DocsPackageCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate_for_worker()
        with _services(settings) as services:
            response = _api(settings, services).build(
                command.name,
                command.version,
                force=command.force,
            )
        return _render_response(response)

    def poll(self, command: DocsJobCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _services(settings) as services:
            response = _api(settings, services).poll(command.job_id)
        return _render_response(response)

    def list_jobs(self, command: DocsListJobsCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        status_filter = JobStatus(command.status.lower()) if command.status else None
        with _repository(settings) as repository:
            jobs = repository.list_jobs(status=status_filter, limit=command.limit)

        lines = [f"Jobs: {len(jobs)}"]
        for job in jobs:
            lines.append(
                f"  {job.job_id} package={job.package} status={job.status.value} "
                f"force={job.force} error={job.error_code or '-'} "
                f"created_at={job.created_at.isoformat()}",
            )
        return lines

    def inspect_job(self, command: DocsJobCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            details = repository.get_job_details(job_id=command.job_id)
        if details is None:
            return [f"Job not found: {command.job_id}"]

        job = details.job
        failure = job.failure
        lines = [
            f"Job: {job.job_id}",
            f"Package: {job.package}",
            f"Status: {job.status.value}",
            f"Force: {job.force}",
            f"Worker: {job.worker_id or '-'}",
            f"Error: {job.error_code or '-'}",
            f"Message: {failure.message if failure is not None and failure.message else '-'}",
            f"Output: {(job.result or {}).get('outputDir') or '-'}",
            f"Events: {len(details.events)}",
        ]
        for event in details.events:
            lines.append(
                f"  {event.created_at.isoformat()} {event.event_type} "
                f"{event.status_from.value if event.status_from else '-'} -> "
                f"{event.status_to.value if event.status_to else '-'}",
            )
        return lines

    def fetch(self, command: DocsFetchCommand) -> DocsFetchResult:
        settings = Settings.from_env()
        if command.base_url:
            settings.client.base_url = command.base_url
        settings.validate_for_client()
        with PackageDocsClient(
            base_url=settings.client.base_url,
            api_prefix=settings.client.api_prefix,
            timeout_seconds=settings.client.request_timeout_seconds,
            poll_timeout_ms=settings.client.poll_timeout_ms,
            count_sleep_in_budget=settings.client.count_sleep_in_budget,
        ) as client:
            if command.sync:
                outcome = client.get_package_docs_sync(
                    command.name,
                    command.version,
                    force=command.force,
                )
            else:
                outcome = client.get_package_docs(
                    command.name,
                    command.version,
                    force=command.force,
                )

        if outcome.ok:
            return DocsFetchResult(lines=["Docs ready."], success=True)
        lines = [f"Docs build failed: {outcome.error_code}"]
        if outcome.error_message:
            lines.append(outcome.error_message)
        return DocsFetchResult(lines=lines, success=False)


def _render_response(response: ApiResponse) -> list[str]:
    return [f"HTTP {response.status_code} {json.dumps(response.body, sort_keys=True)}"]


def _api(settings: Settings, services: _DocsServices) -> DocsApi:
    return DocsApi(
        repository=services.repository,
        resolver=services.resolver,
        generator=services.generator,
        artifacts=services.artifacts,
        poll_interval_ms=settings.api.poll_interval_ms,
    )


@contextmanager
def _services(settings: Settings) -> Iterator[_DocsServices]:
    artifacts = DocsArtifactStore(
        settings.render.docs_root,
        max_age_hours=settings.render.max_age_hours,
    )
    with (
        _repository(settings) as repository,
        NpmRegistryResolver(
            registry_url=settings.registry.url,
            timeout_seconds=settings.registry.timeout_seconds,
            max_retries=settings.registry.max_retries,
        ) as resolver,
    ):
        generator = DocsGenerator(
            resolver=resolver,
            renderer=CliDocsRenderer(settings.render.command_template),
            artifacts=artifacts,
            render_timeout_seconds=settings.render.timeout_seconds,
        )
        yield _DocsServices(
            repository=repository,
            resolver=resolver,
            artifacts=artifacts,
            generator=generator,
        )


@contextmanager
def _repository(settings: Settings) -> Iterator[JobRepository]:
    repository = JobRepository(db_path=settings.db_path)
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()
