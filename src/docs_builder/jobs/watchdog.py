"""Idle watchdog that terminates a worker process left without work."""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)

DEFAULT_IDLE_TIMEOUT_SECONDS = 300.0
DEFAULT_CHECK_INTERVAL_SECONDS = 5.0


def exit_process(idle_seconds: float) -> None:
    """Terminate immediately; the queue fails any job left active by this worker."""

    logger.warning("Worker remained idle for too long (%.0fs), dying.", idle_seconds)
    os._exit(1)


class IdleWatchdog:
    """Background check of the time since the worker last started a job.

    The timestamp lock is held only for reads and writes of the timestamp, so a
    long-running job never delays a check.
    """

    def __init__(
        self,
        *,
        idle_timeout_seconds: float = DEFAULT_IDLE_TIMEOUT_SECONDS,
        check_interval_seconds: float = DEFAULT_CHECK_INTERVAL_SECONDS,
        on_idle: Callable[[float], None] = exit_process,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.idle_timeout_seconds = idle_timeout_seconds
        self.check_interval_seconds = check_interval_seconds
        self._on_idle = on_idle
        self._clock = clock
        self._lock = threading.Lock()
        self._last_active_at = clock()
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def last_active_at(self) -> float:
        with self._lock:
            return self._last_active_at

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def touch(self) -> None:
        """Record job activity."""

        now = self._clock()
        with self._lock:
            self._last_active_at = now

    def idle_seconds(self) -> float:
        return self._clock() - self.last_active_at

    def check(self) -> bool:
        """Fire ``on_idle`` when the idle threshold is exceeded."""

        idle = self.idle_seconds()
        if idle <= self.idle_timeout_seconds:
            return False
        self._on_idle(idle)
        return True

    def start(self) -> None:
        if self.running:
            return
        self._stopped.clear()
        self.touch()
        self._thread = threading.Thread(
            target=self._run,
            name="docs-worker-watchdog",
            daemon=True,
        )
        self._thread.start()

    def stop(self, *, timeout: float | None = None) -> None:
        self._stopped.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout if timeout is not None else self.check_interval_seconds)

    def __enter__(self) -> IdleWatchdog:
        self.start()
        return self

    def __exit__(self, *_: object) -> None:
        self.stop()

    def _run(self) -> None:
        while not self._stopped.wait(self.check_interval_seconds):
            if self.check():
                return
