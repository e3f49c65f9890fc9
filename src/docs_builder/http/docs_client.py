"""Client for the trigger, build and poll endpoints.

``get_package_docs`` triggers a build and, when the server queues a job, polls
until the job is terminal or the client-side budget runs out. Every outcome is
a ``PackageDocsResponse``; transport errors never escape to the caller.
"""

from __future__ import annotations

import json
import logging
import math
import time
from collections.abc import Callable
from typing import Any

import httpx

from docs_builder.errors import (
    DOCS_BUILD_TIMEOUT_MESSAGE,
    JOB_REMOVED_FROM_QUEUE_MESSAGE,
    ErrorKind,
    describe,
)
from docs_builder.jobs.models import PackageDocsResponse

logger = logging.getLogger(__name__)

DEFAULT_API_PREFIX = "/api/docs"
DEFAULT_POLL_TIMEOUT_MS = 200_000
DEFAULT_TIMEOUT_SECONDS = 30.0
UNKNOWN_STATUS_MESSAGE = "Failed because the polling API returned an unknown status: "
MALFORMED_QUEUED_MESSAGE = "Failed because the trigger API queued a job without a usable jobId or pollInterval: "


class PackageDocsClient:
    """Trigger docs builds and wait for their outcome within a time budget.

    The budget is charged with the duration of every poll request. With
    ``count_sleep_in_budget`` the wait between polls is charged as well, so the
    total wall time stays close to ``poll_timeout_ms``.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        base_url: str,
        api_prefix: str = DEFAULT_API_PREFIX,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        poll_timeout_ms: int = DEFAULT_POLL_TIMEOUT_MS,
        count_sleep_in_budget: bool = True,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.api_prefix = "/" + api_prefix.strip("/") if api_prefix.strip("/") else ""
        self.poll_timeout_ms = poll_timeout_ms
        self.count_sleep_in_budget = count_sleep_in_budget
        self._sleep = sleep
        self._clock = clock
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers={"Accept": "application/json"},
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> PackageDocsClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def get_package_docs(
        self,
        name: str,
        version: str | None = None,
        *,
        force: bool = False,
    ) -> PackageDocsResponse:
        """Trigger a build and wait for a queued job to finish."""

        try:
            body = self._post(self._package_path("trigger", name, version), force=force)
        except httpx.HTTPError as error:
            return _trigger_failure(error)

        status = body.get("status")
        if status == "success":
            return PackageDocsResponse.success()
        if status == "queued":
            queued = _queued_job(body)
            if queued is None:
                return PackageDocsResponse.failure(
                    error_code=ErrorKind.UNEXPECTED_TRIGGER_STATUS.value,
                    error_message=f"{MALFORMED_QUEUED_MESSAGE}{json.dumps(body, default=repr)}",
                )
            return self.poll_queue(*queued)
        return PackageDocsResponse.failure(
            error_code=ErrorKind.UNEXPECTED_TRIGGER_STATUS.value,
            error_message=f"{UNKNOWN_STATUS_MESSAGE}{status}",
        )

    def get_package_docs_sync(
        self,
        name: str,
        version: str | None = None,
        *,
        force: bool = False,
    ) -> PackageDocsResponse:
        """Build within a single request, without a job to poll."""

        try:
            body = self._post(self._package_path("build", name, version), force=force)
        except httpx.HTTPError as error:
            return _trigger_failure(error)

        if body.get("status") == "success":
            return PackageDocsResponse.success()
        return _failed_response(body)

    def poll_queue(self, job_id: str, poll_interval_ms: float) -> PackageDocsResponse:
        """Poll a queued job until it is terminal or the budget is spent."""

        time_elapsed_ms = 0.0
        while True:
            if time_elapsed_ms >= self.poll_timeout_ms:
                logger.info("Gave up polling job %s after %.0fms", job_id, time_elapsed_ms)
                return PackageDocsResponse.failure(
                    error_code=ErrorKind.DOCS_BUILD_TIMEOUT.value,
                    error_message=DOCS_BUILD_TIMEOUT_MESSAGE,
                )

            started = self._clock()
            try:
                response = self._client.get(f"{self.api_prefix}/poll/{job_id}")
                response.raise_for_status()
                body = _json_body(response)
            except httpx.HTTPError as error:
                return _poll_failure(error)
            request_ms = (self._clock() - started) * 1000

            status = body.get("status")
            if status == "success":
                return PackageDocsResponse.success()
            if status == "failed":
                return _failed_response(body)
            if status != "queued":
                return PackageDocsResponse.failure(
                    error_code=ErrorKind.UNEXPECTED_POLL_STATUS.value,
                    error_message=f"{UNKNOWN_STATUS_MESSAGE}{status}",
                )

            self._sleep(poll_interval_ms / 1000)
            if self.count_sleep_in_budget:
                time_elapsed_ms += (self._clock() - started) * 1000
            else:
                time_elapsed_ms += request_ms

    def _post(self, path: str, *, force: bool) -> dict[str, Any]:
        params = {"force": "true"} if force else None
        response = self._client.post(path, params=params)
        response.raise_for_status()
        return _json_body(response)

    def _package_path(self, action: str, name: str, version: str | None) -> str:
        target = f"{name}/{version}" if version else name
        return f"{self.api_prefix}/{action}/{target}"


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError as error:
        raise httpx.DecodingError(
            f"Invalid JSON from {response.request.url}",
            request=response.request,
        ) from error
    if not isinstance(body, dict):
        raise httpx.DecodingError(
            f"Unexpected JSON payload from {response.request.url}",
            request=response.request,
        )
    return body


def _queued_job(body: dict[str, Any]) -> tuple[str, float] | None:
    job_id = body.get("jobId")
    interval = body.get("pollInterval", 0)
    if isinstance(job_id, int) and not isinstance(job_id, bool):
        job_id = str(job_id)
    if not isinstance(job_id, str) or not job_id.strip():
        logger.warning("Trigger queued a job without a jobId: %r", job_id)
        return None
    if interval is None:
        interval = 0
    if (
        isinstance(interval, bool)
        or not isinstance(interval, (int, float))
        or not math.isfinite(interval)
        or interval < 0
    ):
        logger.warning("Trigger returned an unusable pollInterval for job %s: %r", job_id, interval)
        return None
    return job_id, interval


def _error_body(error: httpx.HTTPError) -> Any:
    if not isinstance(error, httpx.HTTPStatusError):
        return None
    try:
        return error.response.json()
    except ValueError:
        return error.response.text or None


def _failed_response(body: dict[str, Any]) -> PackageDocsResponse:
    code = body.get("errorCode")
    return PackageDocsResponse.failure(
        error_code=str(code) if code else ErrorKind.UNKNOWN.value,
        error_message=describe(code, body.get("errorMessage"), body.get("errorStack")),
    )


def _trigger_failure(error: httpx.HTTPError) -> PackageDocsResponse:
    logger.warning("Docs trigger request failed: %s", error)
    body = _error_body(error)
    if isinstance(body, dict) and body.get("name"):
        return PackageDocsResponse.failure(
            error_code=str(body["name"]),
            error_message=describe(body["name"], body.get("extra"), body.get("errorStack")),
        )
    return PackageDocsResponse.failure(
        error_code=ErrorKind.UNEXPECTED_TRIGGER_FAILURE.value,
        error_message=_status_message(error, body),
    )


def _poll_failure(error: httpx.HTTPError) -> PackageDocsResponse:
    logger.warning("Docs poll request failed: %s", error)
    if isinstance(error, httpx.HTTPStatusError) and error.response.status_code == 404:
        message = JOB_REMOVED_FROM_QUEUE_MESSAGE
    else:
        message = _status_message(error, _error_body(error))
    return PackageDocsResponse.failure(
        error_code=ErrorKind.UNEXPECTED_POLL_FAILURE.value,
        error_message=message,
    )


def _status_message(error: httpx.HTTPError, body: Any) -> str:
    if not isinstance(error, httpx.HTTPStatusError):
        return ""
    serialized = json.dumps(body, separators=(",", ":")) if body else ""
    return f"{error.response.status_code} {serialized}"
