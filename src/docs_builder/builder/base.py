"""Interfaces for the docs build collaborators."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from docs_builder.jobs.models import PackageSpec


@dataclass(frozen=True, slots=True)
class TypesResolution:
    """Where the type declarations for a package come from."""

    package: PackageSpec
    types_package: str | None = None

    @property
    def bundled(self) -> bool:
        return self.types_package is None


@dataclass(slots=True)
class RenderRequest:
    """Inputs required to render docs for one package version."""

    package: PackageSpec
    types: TypesResolution
    out_dir: Path
    timeout_seconds: int
    shutdown_requested: Callable[[], bool] | None = None


class PackageResolver(Protocol):
    """Resolves package names and type declarations against a registry."""

    def resolve_package(self, name: str, version: str | None = None) -> PackageSpec:
        """Return a concrete package version or raise a domain error."""

    def resolve_types(self, package: PackageSpec) -> TypesResolution:
        """Find type declarations or raise ``TypeDefinitionResolveError``."""


class DocsRenderer(Protocol):
    """Renders docs into ``request.out_dir``."""

    def render(self, request: RenderRequest) -> None:
        """Render docs or raise ``TypeDocBuildError``."""
