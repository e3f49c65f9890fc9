"""Docs build collaborators: registry lookup, rendering and artifacts."""

from docs_builder.builder.artifacts import DocsArtifactStore
from docs_builder.builder.base import DocsRenderer, PackageResolver, RenderRequest, TypesResolution
from docs_builder.builder.cli_renderer import CliDocsRenderer
from docs_builder.builder.generator import DocsGenerator
from docs_builder.builder.registry import NpmRegistryResolver

__all__ = [
    "CliDocsRenderer",
    "DocsArtifactStore",
    "DocsGenerator",
    "DocsRenderer",
    "NpmRegistryResolver",
    "PackageResolver",
    "RenderRequest",
    "TypesResolution",
]
