"""Docs build error taxonomy and caller-facing messages.

Every failure that crosses the worker or HTTP boundary is reduced to a stable
string code plus optional ``extra`` data and a stack trace. ``describe`` turns
that triple into the message shown to callers and never raises.
"""

from __future__ import annotations

import logging
import traceback
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Closed set of error codes understood by producers and clients."""

    PACKAGE_NOT_FOUND = "PackageNotFoundError"
    PACKAGE_VERSION_MISMATCH = "PackageVersionMismatchError"
    TYPE_DEFINITION_RESOLVE = "TypeDefinitionResolveError"
    TYPEDOC_BUILD = "TypeDocBuildError"
    DOCS_JOB_ABANDONED = "DocsJobAbandoned"
    DOCS_BUILD_TIMEOUT = "DocsBuildTimeout"
    UNEXPECTED_TRIGGER_FAILURE = "UNEXPECTED_DOCS_TRIGGER_FAILURE"
    UNEXPECTED_TRIGGER_STATUS = "UNEXPECTED_DOCS_TRIGGER_STATUS"
    UNEXPECTED_POLL_FAILURE = "UNEXPECTED_DOCS_POLL_FAILURE"
    UNEXPECTED_POLL_STATUS = "UNEXPECTED_DOCS_POLL_STATUS"
    UNKNOWN = "UnknownError"

    @classmethod
    def parse(cls, code: object) -> ErrorKind:
        """Map a raw code to a kind, falling back to ``UNKNOWN``."""

        if isinstance(code, str):
            try:
                return cls(code)
            except ValueError:
                return cls.UNKNOWN
        return cls.UNKNOWN


DOCS_BUILD_TIMEOUT_MESSAGE = (
    "Building docs took longer than expected. Check back in sometime to see if the load "
    "on the server has reduced? If this persists, file an issue."
)
JOB_REMOVED_FROM_QUEUE_MESSAGE = (
    "Building docs for this package failed, because the job to build the docs was "
    "removed from queue."
)
PACKAGE_NOT_FOUND_MESSAGE = (
    "This package could not be found on the npm registry. Did you get the name right?"
)
PACKAGE_VERSION_MISMATCH_LEAD = (
    "The given version for this package was not found on the npm registry.\n Found versions: \n"
)
TYPE_DEFINITION_RESOLVE_MESSAGE = (
    "Failed to resolve types for this package. "
    "This package likely does not ship with types, and it does not have a corresponding "
    "package `@types` package from which reference documentation for its APIs can be built."
)
DOCS_JOB_ABANDONED_MESSAGE = (
    "The worker building docs for this package stopped before it finished. "
    "Try again in a little while."
)


def describe(code: object, extra: Any = None, stack: str | None = None) -> str:
    """Return the caller-facing message for an error code.

    Unknown codes log a warning and produce an empty string.
    """

    kind = ErrorKind.parse(code)
    if kind is ErrorKind.PACKAGE_NOT_FOUND:
        return PACKAGE_NOT_FOUND_MESSAGE
    if kind is ErrorKind.PACKAGE_VERSION_MISMATCH:
        return PACKAGE_VERSION_MISMATCH_LEAD + ", ".join(_as_versions(extra))
    if kind is ErrorKind.TYPE_DEFINITION_RESOLVE:
        return TYPE_DEFINITION_RESOLVE_MESSAGE
    if kind is ErrorKind.TYPEDOC_BUILD:
        return _typedoc_build_message(extra=extra, stack=stack)
    if kind is ErrorKind.DOCS_JOB_ABANDONED:
        return DOCS_JOB_ABANDONED_MESSAGE

    logger.warning(
        "Could not get error message for error: code=%r extra=%s stack=%r",
        code,
        _safe_text(extra),
        stack,
    )
    return ""


def _as_versions(extra: Any) -> list[str]:
    if extra is None:
        return []
    if isinstance(extra, str):
        return [extra]
    if isinstance(extra, Iterable) and not isinstance(extra, (bytes, dict)):
        try:
            return [_safe_text(item) for item in extra]
        except Exception:  # noqa: BLE001
            logger.warning("Could not iterate error extra of type %s", type(extra).__name__)
            return []
    return [_safe_text(extra)]


def _safe_text(value: Any) -> str:
    try:
        return str(value)
    except Exception:  # noqa: BLE001
        pass
    try:
        return repr(value)
    except Exception:  # noqa: BLE001
        logger.warning("Could not render error extra of type %s", type(value).__name__)
        return ""


def _typedoc_build_message(*, extra: Any, stack: str | None) -> str:
    primary = "" if extra is None else _safe_text(extra)
    trace = f"\n{stack}" if isinstance(stack, str) and stack.strip() else ""
    return (
        "Failed to generate documentation for this package. <br /> \n"
        "            <details>\n"
        "              <summary>See stack trace</summary>\n"
        "              <pre>\n"
        f"                <code><b>{primary}</b>{trace}</code>\n"
        "              </pre>\n"
        "            </details>"
    )


class DomainError(RuntimeError):
    """Build-time failure with a stable error kind."""

    kind: ClassVar[ErrorKind] = ErrorKind.UNKNOWN

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause

    @property
    def code(self) -> str:
        return self.kind.value

    @property
    def extra(self) -> Any:
        """Structured data the client interpolates into the message."""

        return str(self)

    @property
    def stack(self) -> str | None:
        if self.cause is None:
            return None
        return "".join(traceback.format_exception(self.cause)).rstrip()


class PackageNotFoundError(DomainError):
    kind = ErrorKind.PACKAGE_NOT_FOUND

    def __init__(self, name: str, *, cause: BaseException | None = None) -> None:
        super().__init__(f"Package not found on registry: {name}", cause=cause)
        self.name = name


class PackageVersionMismatchError(DomainError):
    kind = ErrorKind.PACKAGE_VERSION_MISMATCH

    def __init__(self, name: str, version: str, available_versions: list[str]) -> None:
        super().__init__(f"Version {version!r} not found for package {name}")
        self.name = name
        self.version = version
        self.available_versions = list(available_versions)

    @property
    def extra(self) -> list[str]:
        return list(self.available_versions)


class TypeDefinitionResolveError(DomainError):
    kind = ErrorKind.TYPE_DEFINITION_RESOLVE

    def __init__(self, name: str, version: str) -> None:
        super().__init__(f"No type definitions found for {name}@{version}")
        self.name = name
        self.version = version


class TypeDocBuildError(DomainError):
    kind = ErrorKind.TYPEDOC_BUILD

    def __init__(
        self,
        message: str,
        *,
        stack: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self._stack = stack

    @property
    def stack(self) -> str | None:
        if self._stack:
            return self._stack
        return super().stack


@dataclass(frozen=True, slots=True)
class FailureEnvelope:
    """Failure context built once and persisted with the failed job."""

    code: str
    message: str
    stack: str | None = None
    extra: Any = None

    @classmethod
    def from_error(cls, error: DomainError) -> FailureEnvelope:
        return cls(
            code=error.code,
            message=str(error),
            stack=error.stack,
            extra=error.extra,
        )

    @classmethod
    def abandoned(cls, *, worker_id: str | None) -> FailureEnvelope:
        return cls(
            code=ErrorKind.DOCS_JOB_ABANDONED.value,
            message=f"Job was left active by worker {worker_id or 'unknown'}",
        )

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> FailureEnvelope:
        code = payload.get("code")
        return cls(
            code=code if isinstance(code, str) and code else ErrorKind.UNKNOWN.value,
            message=str(payload.get("message") or ""),
            stack=payload.get("stacktrace") or None,
            extra=payload.get("extra"),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "stacktrace": self.stack,
            "message": self.message,
            "extra": self.extra,
        }

    def describe(self) -> str:
        return describe(self.code, self.extra, self.stack)


def as_domain_error(error: BaseException) -> DomainError:
    """Normalize any build-step exception into the taxonomy."""

    if isinstance(error, DomainError):
        return error
    return TypeDocBuildError(
        str(error) or type(error).__name__,
        stack="".join(traceback.format_exception(error)).rstrip(),
        cause=error,
    )
