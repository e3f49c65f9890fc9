"""Subprocess-based docs renderer driven by a command template."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import time
from collections.abc import Callable
from pathlib import Path

from docs_builder.builder.base import RenderRequest
from docs_builder.errors import TypeDocBuildError

logger = logging.getLogger(__name__)

STDOUT_LOG = "render.stdout.log"
STDERR_LOG = "render.stderr.log"
STACK_TAIL_CHARS = 4_000
TIMEOUT_EXIT_CODE = 124
_PLACEHOLDERS = ("package", "name", "version", "types_package", "out_dir")


class CliDocsRenderer:
    """Run the configured render command once per package version."""

    def __init__(
        self,
        command_template: str,
        *,
        shutdown_requested: Callable[[], bool] | None = None,
    ) -> None:
        self.command_template = command_template
        self.shutdown_requested = shutdown_requested

    def render(self, request: RenderRequest) -> None:
        request.out_dir.mkdir(parents=True, exist_ok=True)
        run_args = build_run_args(command_template=self.command_template, request=request)
        stdout_path = request.out_dir / STDOUT_LOG
        stderr_path = request.out_dir / STDERR_LOG

        env = os.environ.copy()
        env["DOCS_BUILDER_PACKAGE"] = str(request.package)
        env["DOCS_BUILDER_OUT_DIR"] = str(request.out_dir)

        try:
            with (
                stdout_path.open("w", encoding="utf-8") as stdout_handle,
                stderr_path.open("w", encoding="utf-8") as stderr_handle,
            ):
                exit_code, timed_out = _run_subprocess(
                    run_args=run_args,
                    env=env,
                    timeout_seconds=request.timeout_seconds,
                    stdout_handle=stdout_handle,
                    stderr_handle=stderr_handle,
                    shutdown_requested=request.shutdown_requested or self.shutdown_requested,
                )
        except FileNotFoundError as error:
            raise TypeDocBuildError(
                f"Docs render command not found: {run_args[0]}",
                cause=error,
            ) from error
        except OSError as error:
            raise TypeDocBuildError(
                f"Docs render command failed to start: {error}",
                cause=error,
            ) from error

        if timed_out:
            raise TypeDocBuildError(
                f"Rendering docs for {request.package} timed out after "
                f"{request.timeout_seconds}s",
                stack=_read_tail(stderr_path),
            )
        if exit_code != 0:
            logger.warning("Render command for %s exited with %s", request.package, exit_code)
            raise TypeDocBuildError(
                f"Rendering docs for {request.package} failed with exit code {exit_code}",
                stack=_read_tail(stderr_path),
            )


def build_run_args(*, command_template: str, request: RenderRequest) -> list[str]:
    stripped = command_template.strip()
    if not stripped:
        raise TypeDocBuildError("Docs render command template is empty.")
    try:
        rendered = stripped.format(
            package=shlex.quote(str(request.package)),
            name=shlex.quote(request.package.name),
            version=shlex.quote(request.package.version),
            types_package=shlex.quote(request.types.types_package or ""),
            out_dir=shlex.quote(str(request.out_dir)),
        )
    except (KeyError, IndexError) as error:
        raise TypeDocBuildError(
            f"Unsupported render command placeholder: {error}. "
            f"Supported: {', '.join(_PLACEHOLDERS)}",
        ) from error

    argv = shlex.split(rendered)
    if not argv:
        raise TypeDocBuildError("Docs render command template rendered empty command.")
    return argv


def _run_subprocess(  # noqa: PLR0913
    *,
    run_args: list[str],
    env: dict[str, str],
    timeout_seconds: int,
    stdout_handle,
    stderr_handle,
    shutdown_requested: Callable[[], bool] | None,
) -> tuple[int, bool]:
    process = subprocess.Popen(  # noqa: S603
        run_args,
        env=env,
        stdout=stdout_handle,
        stderr=stderr_handle,
        text=True,
    )
    start_monotonic = time.monotonic()

    while True:
        returncode = process.poll()
        if returncode is not None:
            return returncode, False

        if time.monotonic() - start_monotonic >= timeout_seconds:
            _terminate_process(process)
            return TIMEOUT_EXIT_CODE, True

        if shutdown_requested is not None and shutdown_requested():
            _terminate_process(process)
            return TIMEOUT_EXIT_CODE, True

        time.sleep(0.1)


def _terminate_process(process: subprocess.Popen[str]) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=2)


def _read_tail(path: Path, *, limit: int = STACK_TAIL_CHARS) -> str | None:
    try:
        text = path.read_text("utf-8", errors="replace")
    except OSError:
        return None
    text = text.strip()
    if not text:
        return None
    return text[-limit:]
