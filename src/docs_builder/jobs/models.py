"""Domain models for the docs job queue and the request/response protocol."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from docs_builder.errors import FailureEnvelope


class JobStatus(str, Enum):
    """Durable job lifecycle states."""

    QUEUED = "queued"
    ACTIVE = "active"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {JobStatus.SUCCESS, JobStatus.FAILED}


@dataclass(frozen=True, slots=True)
class PackageSpec:
    """npm package name with a concrete version."""

    name: str
    version: str

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"

    def to_payload(self) -> dict[str, str]:
        return {"name": self.name, "version": self.version}


@dataclass(frozen=True, slots=True)
class JobPayload:
    """Queued job payload, serialized as ``{packageJSON, force, originalError?}``."""

    package: PackageSpec
    force: bool = False
    original_error: FailureEnvelope | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "packageJSON": self.package.to_payload(),
            "force": self.force,
        }
        if self.original_error is not None:
            data["originalError"] = self.original_error.to_payload()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobPayload:
        package = data.get("packageJSON") or {}
        original_error = data.get("originalError")
        return cls(
            package=PackageSpec(
                name=str(package.get("name", "")),
                version=str(package.get("version", "")),
            ),
            force=bool(data.get("force", False)),
            original_error=(
                FailureEnvelope.from_payload(original_error)
                if isinstance(original_error, dict)
                else None
            ),
        )


@dataclass(slots=True)
class DocsJobCreate:
    """Input payload for enqueuing a docs build job."""

    package: PackageSpec
    force: bool = False
    job_id: str | None = None


@dataclass(slots=True)
class DocsJobView:
    """Readable job view for API, CLI and worker logic."""

    job_id: str
    payload: JobPayload
    status: JobStatus
    error_code: str | None
    result: dict[str, Any] | None
    worker_id: str | None
    created_at: datetime
    started_at: datetime | None
    finished_at: datetime | None
    updated_at: datetime

    @property
    def package(self) -> PackageSpec:
        return self.payload.package

    @property
    def force(self) -> bool:
        return self.payload.force

    @property
    def failure(self) -> FailureEnvelope | None:
        return self.payload.original_error


@dataclass(slots=True)
class DocsJobEventView:
    """Job event entry for audit trail."""

    event_id: int
    job_id: str
    event_type: str
    status_from: JobStatus | None
    status_to: JobStatus | None
    created_at: datetime
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class DocsJobDetails:
    """Job details with event stream."""

    job: DocsJobView
    events: list[DocsJobEventView]


@dataclass(frozen=True, slots=True)
class BuiltDocs:
    """Result of one docs build, stored on the completed job."""

    package: PackageSpec
    output_dir: str
    cached: bool
    types_package: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "package": self.package.to_payload(),
            "outputDir": self.output_dir,
            "cached": self.cached,
            "typesPackage": self.types_package,
        }


@dataclass(frozen=True, slots=True)
class PackageDocsResponse:
    """Terminal outcome handed to callers of the poll client."""

    status: str
    error_code: str | None = None
    error_message: str | None = None

    @classmethod
    def success(cls) -> PackageDocsResponse:
        return cls(status="success")

    @classmethod
    def failure(cls, *, error_code: str, error_message: str) -> PackageDocsResponse:
        return cls(status="failure", error_code=error_code, error_message=error_message)

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            return {"status": "success"}
        return {
            "status": "failure",
            "errorCode": self.error_code,
            "errorMessage": self.error_message,
        }
