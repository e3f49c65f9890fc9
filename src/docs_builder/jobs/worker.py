"""Queue worker that builds docs for one claimed job at a time."""

from __future__ import annotations

import logging
import signal
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from docs_builder.builder.generator import DocsGenerator
from docs_builder.errors import FailureEnvelope, as_domain_error
from docs_builder.jobs.models import DocsJobView
from docs_builder.jobs.repository import JobRepository
from docs_builder.jobs.watchdog import IdleWatchdog

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WorkerRunSummary:
    """Aggregate worker counters for CLI reporting."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    idle_polls: int = 0
    recovered: int = 0


class JobFailedError(RuntimeError):
    """Raised by the job handler with the failure context to persist."""

    def __init__(self, envelope: FailureEnvelope) -> None:
        super().__init__(envelope.code)
        self.envelope = envelope


class DocsJobHandler:
    """Run the docs build for one job payload."""

    def __init__(
        self,
        *,
        generator: DocsGenerator,
        on_activity: Callable[[], None] | None = None,
        shutdown_requested: Callable[[], bool] | None = None,
    ) -> None:
        self.generator = generator
        self.on_activity = on_activity
        self.shutdown_requested = shutdown_requested

    def __call__(self, job: DocsJobView) -> dict[str, Any]:
        if self.on_activity is not None:
            self.on_activity()
        try:
            built = self.generator.generate(
                job.package,
                force=job.force,
                shutdown_requested=self.shutdown_requested,
            )
        except Exception as error:  # noqa: BLE001
            raise JobFailedError(FailureEnvelope.from_error(as_domain_error(error))) from error
        return built.to_dict()


class DocsWorker:
    """Consumes queued docs jobs and records their outcome."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        repository: JobRepository,
        generator: DocsGenerator,
        worker_id: str,
        poll_interval_seconds: float = 1.0,
        stale_job_seconds: int = 1_800,
        watchdog: IdleWatchdog | None = None,
    ) -> None:
        self.repository = repository
        self.worker_id = worker_id
        self.poll_interval_seconds = poll_interval_seconds
        self.stale_job_seconds = stale_job_seconds
        self.watchdog = watchdog
        self.handler = DocsJobHandler(
            generator=generator,
            on_activity=self._mark_active,
            shutdown_requested=lambda: self._stop_requested,
        )
        self._stop_requested = False
        self._stop_signal_name: str | None = None

    def run_once(self) -> WorkerRunSummary:
        """Process at most one job from the queue."""

        summary = WorkerRunSummary()
        if self._stop_requested:
            summary.idle_polls = 1
            return summary

        summary.recovered = self._recover_stale_jobs()
        job = self.repository.claim_next_job(worker_id=self.worker_id)
        if job is None:
            summary.idle_polls = 1
            return summary

        summary.processed = 1
        logger.info("Worker %s claimed job %s (%s)", self.worker_id, job.job_id, job.package)
        try:
            result = self.handler(job)
        except JobFailedError as error:
            if not self.repository.fail_job(job_id=job.job_id, envelope=error.envelope):
                logger.warning("Job %s was no longer active when failing it", job.job_id)
            logger.info("Job %s failed with %s", job.job_id, error.envelope.code)
            summary.failed = 1
            return summary

        if not self.repository.complete_job(job_id=job.job_id, result=result):
            logger.warning("Job %s was no longer active when completing it", job.job_id)
        logger.info("Job %s succeeded (%s)", job.job_id, result.get("outputDir"))
        summary.succeeded = 1
        return summary

    def run_loop(
        self,
        *,
        max_jobs: int | None = None,
        max_idle_polls: int | None = None,
    ) -> WorkerRunSummary:
        """Run until stopped, ``max_jobs`` processed, or ``max_idle_polls`` empty polls.

        With both limits unset the loop runs until a signal arrives or the idle
        watchdog terminates the process.
        """

        aggregate = WorkerRunSummary()
        consecutive_idle = 0
        watchdog_scope = self.watchdog if self.watchdog is not None else nullcontext()
        with self._signal_handlers(), watchdog_scope:
            while True:
                if self._stop_requested:
                    return aggregate
                if max_jobs is not None and aggregate.processed >= max_jobs:
                    return aggregate

                summary = self.run_once()
                aggregate.processed += summary.processed
                aggregate.succeeded += summary.succeeded
                aggregate.failed += summary.failed
                aggregate.idle_polls += summary.idle_polls
                aggregate.recovered += summary.recovered

                if summary.processed == 0:
                    consecutive_idle += 1
                    if max_idle_polls is not None and consecutive_idle >= max_idle_polls:
                        return aggregate
                    self._sleep_with_stop(self.poll_interval_seconds)
                    continue
                consecutive_idle = 0

    def request_stop(self, *, signal_name: str = "manual") -> None:
        self._stop_requested = True
        self._stop_signal_name = signal_name
        logger.info("Worker %s stop requested (%s)", self.worker_id, signal_name)

    def _mark_active(self) -> None:
        if self.watchdog is not None:
            self.watchdog.touch()

    def _recover_stale_jobs(self) -> int:
        if self.stale_job_seconds <= 0:
            return 0
        return self.repository.recover_stale_jobs(
            stale_after=timedelta(seconds=self.stale_job_seconds),
        )

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = time.monotonic() + seconds
        while not self._stop_requested and time.monotonic() < deadline:
            time.sleep(min(0.1, max(0.0, deadline - time.monotonic())))

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            self.request_stop(signal_name=name)

        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            yield
            return

        try:
            yield
        finally:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)
