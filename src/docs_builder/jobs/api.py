"""Trigger, sync build and poll endpoints, framework-agnostic.

Each method returns an ``ApiResponse`` holding the HTTP status code and JSON
body that a web framework route should send back unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from docs_builder.builder.artifacts import DocsArtifactStore
from docs_builder.builder.base import PackageResolver
from docs_builder.builder.generator import DocsGenerator
from docs_builder.builder.registry import RegistryUnavailableError
from docs_builder.errors import DomainError, ErrorKind, FailureEnvelope, as_domain_error
from docs_builder.jobs.models import DocsJobCreate, JobStatus
from docs_builder.jobs.repository import JobRepository

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_MS = 1_000


@dataclass(frozen=True, slots=True)
class ApiResponse:
    status_code: int
    body: dict[str, Any]


class DocsApi:
    """Request handlers behind ``/trigger``, ``/build`` and ``/poll``."""

    def __init__(
        self,
        *,
        repository: JobRepository,
        resolver: PackageResolver,
        generator: DocsGenerator,
        artifacts: DocsArtifactStore,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    ) -> None:
        self.repository = repository
        self.resolver = resolver
        self.generator = generator
        self.artifacts = artifacts
        self.poll_interval_ms = poll_interval_ms

    def trigger(self, name: str, version: str | None = None, *, force: bool = False) -> ApiResponse:
        """Answer from fresh docs, or hand back a job id to poll."""

        try:
            package = self.resolver.resolve_package(name, version)
        except DomainError as error:
            return _domain_error_response(error)
        except RegistryUnavailableError as error:
            return ApiResponse(502, {"error": str(error)})

        if not force and self.artifacts.is_fresh(package):
            return ApiResponse(200, {"status": "success"})

        job = self.repository.find_open_job(package=package, force=force)
        if job is None:
            job = self.repository.enqueue_job(DocsJobCreate(package=package, force=force))
        else:
            logger.info("Reusing open job %s for %s", job.job_id, package)
        return ApiResponse(
            200,
            {"status": "queued", "jobId": job.job_id, "pollInterval": self.poll_interval_ms},
        )

    def build(self, name: str, version: str | None = None, *, force: bool = False) -> ApiResponse:
        """Build inline within the request, no job indirection."""

        try:
            package = self.resolver.resolve_package(name, version)
            self.generator.generate(package, force=force)
        except RegistryUnavailableError as error:
            return ApiResponse(502, {"error": str(error)})
        except Exception as error:  # noqa: BLE001
            return ApiResponse(200, _failed_body(FailureEnvelope.from_error(as_domain_error(error))))
        return ApiResponse(200, {"status": "success"})

    def poll(self, job_id: str) -> ApiResponse:
        """Report job status; unknown job ids answer 404."""

        job = self.repository.get_job(job_id=job_id)
        if job is None:
            return ApiResponse(404, {"error": f"Job not found: {job_id}"})
        if job.status in {JobStatus.QUEUED, JobStatus.ACTIVE}:
            return ApiResponse(200, {"status": "queued"})
        if job.status is JobStatus.SUCCESS:
            return ApiResponse(200, {"status": "success"})

        envelope = job.failure or FailureEnvelope(
            code=job.error_code or ErrorKind.UNKNOWN.value,
            message="",
        )
        return ApiResponse(200, _failed_body(envelope))


def _failed_body(envelope: FailureEnvelope) -> dict[str, Any]:
    return {
        "status": "failed",
        "errorCode": envelope.code,
        "errorMessage": envelope.extra if envelope.extra is not None else envelope.message,
        "errorStack": envelope.stack or "",
    }


def _domain_error_response(error: DomainError) -> ApiResponse:
    status_code = (
        404
        if error.kind in {ErrorKind.PACKAGE_NOT_FOUND, ErrorKind.PACKAGE_VERSION_MISMATCH}
        else 422
    )
    return ApiResponse(
        status_code,
        {"name": error.code, "extra": error.extra, "errorStack": error.stack or ""},
    )
