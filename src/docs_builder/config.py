"""Runtime configuration for the docs job queue, worker and client."""

from __future__ import annotations

import os
import socket
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

DEFAULT_REGISTRY_URL = "https://registry.npmjs.org"


@dataclass(slots=True)
class WorkerSettings:
    """Worker loop and idle watchdog settings."""

    worker_id: str = "docs-worker"
    poll_interval_seconds: float = 1.0
    idle_timeout_seconds: float = 300.0
    watchdog_interval_seconds: float = 5.0
    stale_job_seconds: int = 1_800


@dataclass(slots=True)
class ApiSettings:
    """Trigger/poll endpoint settings."""

    poll_interval_ms: int = 1_000


@dataclass(slots=True)
class ClientSettings:
    """Poll client settings."""

    base_url: str = "http://localhost:3000"
    api_prefix: str = "/api/docs"
    poll_timeout_ms: int = 200_000
    request_timeout_seconds: float = 30.0
    count_sleep_in_budget: bool = True


@dataclass(slots=True)
class RegistrySettings:
    """npm registry lookup settings."""

    url: str = DEFAULT_REGISTRY_URL
    timeout_seconds: float = 15.0
    max_retries: int = 2


@dataclass(slots=True)
class RenderSettings:
    """Docs renderer command and artifact settings."""

    command_template: str = ""
    timeout_seconds: int = 600
    docs_root: Path = Path(".docs_builder/docs")
    max_age_hours: int = 24


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".docs_builder.db")
    worker: WorkerSettings = field(default_factory=WorkerSettings)
    api: ApiSettings = field(default_factory=ApiSettings)
    client: ClientSettings = field(default_factory=ClientSettings)
    registry: RegistrySettings = field(default_factory=RegistrySettings)
    render: RenderSettings = field(default_factory=RenderSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("DOCS_BUILDER_DB_PATH", ".docs_builder.db")),
            worker=WorkerSettings(
                worker_id=os.getenv(
                    "DOCS_BUILDER_WORKER_ID",
                    f"docs-worker-{socket.gethostname()}-{os.getpid()}",
                ),
                poll_interval_seconds=float(
                    os.getenv("DOCS_BUILDER_WORKER_POLL_INTERVAL_SECONDS", "1.0"),
                ),
                idle_timeout_seconds=float(
                    os.getenv("DOCS_BUILDER_WORKER_IDLE_TIMEOUT_SECONDS", "300"),
                ),
                watchdog_interval_seconds=float(
                    os.getenv("DOCS_BUILDER_WORKER_WATCHDOG_INTERVAL_SECONDS", "5"),
                ),
                stale_job_seconds=int(os.getenv("DOCS_BUILDER_WORKER_STALE_JOB_SECONDS", "1800")),
            ),
            api=ApiSettings(
                poll_interval_ms=int(os.getenv("DOCS_BUILDER_POLL_INTERVAL_MS", "1000")),
            ),
            client=ClientSettings(
                base_url=os.getenv("DOCS_BUILDER_API_BASE_URL", "http://localhost:3000"),
                api_prefix=os.getenv("DOCS_BUILDER_API_PREFIX", "/api/docs"),
                poll_timeout_ms=int(os.getenv("DOCS_BUILDER_CLIENT_POLL_TIMEOUT_MS", "200000")),
                request_timeout_seconds=float(
                    os.getenv("DOCS_BUILDER_CLIENT_REQUEST_TIMEOUT_SECONDS", "30"),
                ),
                count_sleep_in_budget=_env_bool(
                    "DOCS_BUILDER_CLIENT_COUNT_SLEEP_IN_BUDGET",
                    default=True,
                ),
            ),
            registry=RegistrySettings(
                url=os.getenv("DOCS_BUILDER_REGISTRY_URL", DEFAULT_REGISTRY_URL),
                timeout_seconds=float(os.getenv("DOCS_BUILDER_REGISTRY_TIMEOUT_SECONDS", "15")),
                max_retries=int(os.getenv("DOCS_BUILDER_REGISTRY_MAX_RETRIES", "2")),
            ),
            render=RenderSettings(
                command_template=os.getenv("DOCS_BUILDER_RENDER_COMMAND", "").strip(),
                timeout_seconds=int(os.getenv("DOCS_BUILDER_RENDER_TIMEOUT_SECONDS", "600")),
                docs_root=Path(os.getenv("DOCS_BUILDER_DOCS_ROOT", ".docs_builder/docs")),
                max_age_hours=int(os.getenv("DOCS_BUILDER_DOCS_MAX_AGE_HOURS", "24")),
            ),
        )

    def validate_for_worker(self) -> None:
        """Raise configuration error if the worker cannot build docs."""

        if self.worker.idle_timeout_seconds <= 0:
            raise ValueError("DOCS_BUILDER_WORKER_IDLE_TIMEOUT_SECONDS must be > 0.")
        if self.worker.watchdog_interval_seconds <= 0:
            raise ValueError("DOCS_BUILDER_WORKER_WATCHDOG_INTERVAL_SECONDS must be > 0.")
        if self.worker.poll_interval_seconds < 0:
            raise ValueError("DOCS_BUILDER_WORKER_POLL_INTERVAL_SECONDS must be >= 0.")
        if self.render.timeout_seconds <= 0:
            raise ValueError("DOCS_BUILDER_RENDER_TIMEOUT_SECONDS must be > 0.")
        if self.render.max_age_hours < 0:
            raise ValueError("DOCS_BUILDER_DOCS_MAX_AGE_HOURS must be >= 0.")
        if not self.render.command_template:
            raise ValueError(
                "A docs render command is required. Set DOCS_BUILDER_RENDER_COMMAND, "
                "for example 'typedoc --out {out_dir} {package}'.",
            )
        _validate_http_url(self.registry.url, name="DOCS_BUILDER_REGISTRY_URL")

    def validate_for_client(self) -> None:
        """Raise configuration error if the poll client settings are unusable."""

        _validate_http_url(self.client.base_url, name="DOCS_BUILDER_API_BASE_URL")
        if self.client.poll_timeout_ms <= 0:
            raise ValueError("DOCS_BUILDER_CLIENT_POLL_TIMEOUT_MS must be > 0.")
        if self.client.request_timeout_seconds <= 0:
            raise ValueError("DOCS_BUILDER_CLIENT_REQUEST_TIMEOUT_SECONDS must be > 0.")


def _validate_http_url(value: str, *, name: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            f"Invalid {name}: {value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
