"""CLI entrypoint for docs-builder."""

from pathlib import Path

import rich_click as click

from docs_builder import __version__
from docs_builder.jobs.controllers import (
    DocsCliController,
    DocsFetchCommand,
    DocsJobCommand,
    DocsListJobsCommand,
    DocsPackageCommand,
    DocsWorkerCommand,
)

click.rich_click.USE_MARKDOWN = True
CONTROLLER = DocsCliController()


@click.group()
@click.version_option(version=__version__, prog_name="docs-builder")
def docs_builder() -> None:
    """Docs build queue CLI."""


@docs_builder.command("worker")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--once/--loop",
    default=False,
    show_default=True,
    help="Run one claim-build cycle or loop until stopped.",
)
@click.option(
    "--max-jobs",
    type=click.IntRange(min=1),
    default=None,
    help="Optional cap for processed jobs in loop mode.",
)
@click.option(
    "--max-idle-polls",
    type=click.IntRange(min=1),
    default=None,
    help="Stop the loop after this many consecutive empty polls.",
)
@click.option(
    "--watchdog/--no-watchdog",
    default=True,
    show_default=True,
    help="Exit the process after DOCS_BUILDER_WORKER_IDLE_TIMEOUT_SECONDS without jobs.",
)
def worker(
    db_path: Path | None,
    once: bool,
    max_jobs: int | None,
    max_idle_polls: int | None,
    watchdog: bool,
) -> None:
    """Run the docs build worker."""

    _emit_lines(
        _invoke(
            CONTROLLER.run_worker,
            DocsWorkerCommand(
                db_path=db_path,
                once=once,
                max_jobs=max_jobs,
                max_idle_polls=max_idle_polls,
                watchdog=watchdog,
            ),
        ),
    )


@docs_builder.command("trigger")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--force", is_flag=True, default=False, help="Rebuild even if docs are fresh.")
@click.argument("name")
@click.argument("version", required=False)
def trigger(db_path: Path | None, force: bool, name: str, version: str | None) -> None:
    """Queue a docs build for NAME [VERSION] unless fresh docs exist."""

    _emit_lines(
        CONTROLLER.trigger(
            DocsPackageCommand(db_path=db_path, name=name, version=version, force=force),
        ),
    )


@docs_builder.command("build")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--force", is_flag=True, default=False, help="Rebuild even if docs are fresh.")
@click.argument("name")
@click.argument("version", required=False)
def build(db_path: Path | None, force: bool, name: str, version: str | None) -> None:
    """Build docs for NAME [VERSION] inline, without the queue."""

    _emit_lines(
        _invoke(
            CONTROLLER.build,
            DocsPackageCommand(db_path=db_path, name=name, version=version, force=force),
        ),
    )


@docs_builder.command("poll")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("job_id")
def poll(db_path: Path | None, job_id: str) -> None:
    """Show the poll response for one job."""

    _emit_lines(CONTROLLER.poll(DocsJobCommand(db_path=db_path, job_id=job_id)))


@docs_builder.group()
def jobs() -> None:
    """Queue inspection commands."""


@jobs.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--status",
    type=click.Choice(["queued", "active", "success", "failed"], case_sensitive=False),
    default=None,
    help="Optional status filter.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=50,
    show_default=True,
    help="Max jobs to print.",
)
def jobs_list(db_path: Path | None, status: str | None, limit: int) -> None:
    """List docs jobs."""

    _emit_lines(
        CONTROLLER.list_jobs(
            DocsListJobsCommand(db_path=db_path, status=status, limit=limit),
        ),
    )


@jobs.command("inspect")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--job-id", required=True, help="Job id.")
def jobs_inspect(db_path: Path | None, job_id: str) -> None:
    """Inspect one job with event history."""

    _emit_lines(CONTROLLER.inspect_job(DocsJobCommand(db_path=db_path, job_id=job_id)))


@docs_builder.command("fetch")
@click.option(
    "--base-url",
    default=None,
    help="Docs server URL. If omitted, DOCS_BUILDER_API_BASE_URL is used.",
)
@click.option("--force", is_flag=True, default=False, help="Rebuild even if docs are fresh.")
@click.option(
    "--sync",
    is_flag=True,
    default=False,
    help="Use the synchronous build endpoint instead of trigger and poll.",
)
@click.argument("name")
@click.argument("version", required=False)
def fetch(
    base_url: str | None,
    force: bool,
    sync: bool,
    name: str,
    version: str | None,
) -> None:
    """Request docs for NAME [VERSION] from a remote docs server."""

    result = _invoke(
        CONTROLLER.fetch,
        DocsFetchCommand(
            name=name,
            version=version,
            force=force,
            sync=sync,
            base_url=base_url,
        ),
    )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Docs fetch failed.")


def _invoke(action, command):
    try:
        return action(command)
    except ValueError as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    docs_builder()
