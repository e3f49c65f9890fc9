"""The docs build step consumed by the worker and the sync build endpoint."""

from __future__ import annotations

import logging
from collections.abc import Callable

from docs_builder.builder.artifacts import DocsArtifactStore
from docs_builder.builder.base import DocsRenderer, PackageResolver, RenderRequest
from docs_builder.jobs.models import BuiltDocs, PackageSpec

logger = logging.getLogger(__name__)


class DocsGenerator:
    """Resolve types, render docs and record the freshness marker."""

    def __init__(
        self,
        *,
        resolver: PackageResolver,
        renderer: DocsRenderer,
        artifacts: DocsArtifactStore,
        render_timeout_seconds: int = 600,
    ) -> None:
        self.resolver = resolver
        self.renderer = renderer
        self.artifacts = artifacts
        self.render_timeout_seconds = render_timeout_seconds

    def generate(
        self,
        package: PackageSpec,
        *,
        force: bool = False,
        shutdown_requested: Callable[[], bool] | None = None,
    ) -> BuiltDocs:
        if not force and self.artifacts.is_fresh(package):
            logger.info("Docs for %s are fresh, skipping build", package)
            return BuiltDocs(
                package=package,
                output_dir=str(self.artifacts.path_for(package)),
                cached=True,
            )

        types = self.resolver.resolve_types(package)
        out_dir = self.artifacts.path_for(package)
        self.renderer.render(
            RenderRequest(
                package=package,
                types=types,
                out_dir=out_dir,
                timeout_seconds=self.render_timeout_seconds,
                shutdown_requested=shutdown_requested,
            ),
        )
        self.artifacts.mark_built(package, types_package=types.types_package)
        logger.info("Built docs for %s into %s", package, out_dir)
        return BuiltDocs(
            package=package,
            output_dir=str(out_dir),
            cached=False,
            types_package=types.types_package,
        )
