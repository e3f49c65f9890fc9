"""npm registry lookups for package versions and type declarations."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from docs_builder.builder.base import TypesResolution
from docs_builder.config import DEFAULT_REGISTRY_URL
from docs_builder.errors import (
    PackageNotFoundError,
    PackageVersionMismatchError,
    TypeDefinitionResolveError,
)
from docs_builder.jobs.models import PackageSpec

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_MAX_RETRIES = 2
TYPES_SCOPE = "@types/"


class RegistryUnavailableError(RuntimeError):
    """Registry could not be reached or answered with an unexpected status."""


class NpmRegistryResolver:
    """Resolve package versions and type declarations from an npm registry."""

    def __init__(
        self,
        *,
        registry_url: str = DEFAULT_REGISTRY_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=registry_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers={"Accept": "application/json"},
            transport=transport or httpx.HTTPTransport(retries=max_retries),
            follow_redirects=True,
        )

    def resolve_package(self, name: str, version: str | None = None) -> PackageSpec:
        """Return a concrete version; a missing version or dist-tag resolves via dist-tags."""

        document = self._fetch_document(name)
        if document is None:
            raise PackageNotFoundError(name)

        versions = document.get("versions") or {}
        dist_tags = document.get("dist-tags") or {}
        requested = (version or "").strip() or "latest"
        if requested in versions:
            return PackageSpec(name=name, version=requested)
        tagged = dist_tags.get(requested)
        if isinstance(tagged, str) and tagged in versions:
            return PackageSpec(name=name, version=tagged)
        raise PackageVersionMismatchError(name, requested, list(versions))

    def resolve_types(self, package: PackageSpec) -> TypesResolution:
        """Prefer bundled declarations, then the matching DefinitelyTyped package."""

        document = self._fetch_document(package.name)
        if document is None:
            raise PackageNotFoundError(package.name)
        manifest = (document.get("versions") or {}).get(package.version)
        if not isinstance(manifest, dict):
            raise PackageVersionMismatchError(
                package.name,
                package.version,
                list(document.get("versions") or {}),
            )
        if _declares_types(manifest) or package.name.startswith(TYPES_SCOPE):
            return TypesResolution(package=package)

        types_name = definitely_typed_name(package.name)
        types_document = self._fetch_document(types_name)
        if types_document is None:
            raise TypeDefinitionResolveError(package.name, package.version)
        latest = (types_document.get("dist-tags") or {}).get("latest")
        logger.info("Resolved types for %s from %s@%s", package, types_name, latest)
        return TypesResolution(
            package=package,
            types_package=f"{types_name}@{latest}" if latest else types_name,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> NpmRegistryResolver:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def _fetch_document(self, name: str) -> dict[str, Any] | None:
        try:
            response = self._client.get(f"/{quote(name, safe='@')}")
        except httpx.HTTPError as exc:
            logger.warning("Registry request failed for %s: %s", name, exc)
            raise RegistryUnavailableError(f"Registry request failed for {name}: {exc}") from exc
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        if not response.is_success:
            raise RegistryUnavailableError(
                f"Registry returned HTTP {response.status_code} for {name}",
            )
        try:
            document = response.json()
        except ValueError as exc:
            raise RegistryUnavailableError(f"Registry returned invalid JSON for {name}") from exc
        return document if isinstance(document, dict) else None


def definitely_typed_name(name: str) -> str:
    """Map ``@scope/pkg`` to ``@types/scope__pkg`` and ``pkg`` to ``@types/pkg``."""

    if name.startswith("@") and "/" in name:
        scope, _, bare = name[1:].partition("/")
        return f"{TYPES_SCOPE}{scope}__{bare}"
    return f"{TYPES_SCOPE}{name}"


def _declares_types(manifest: dict[str, Any]) -> bool:
    for key in ("types", "typings"):
        value = manifest.get(key)
        if isinstance(value, str) and value.strip():
            return True
    return False
