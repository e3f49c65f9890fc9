from __future__ import annotations

from collections.abc import Iterator

import allure
import httpx
import pytest

from docs_builder.builder.registry import (
    NpmRegistryResolver,
    RegistryUnavailableError,
    definitely_typed_name,
)
from docs_builder.errors import (
    PackageNotFoundError,
    PackageVersionMismatchError,
    TypeDefinitionResolveError,
)
from docs_builder.jobs.models import PackageSpec

pytestmark = [
    allure.epic("Docs Build Queue"),
    allure.feature("Registry Resolution"),
]

_DOCUMENTS = {
    "/left-pad": {
        "name": "left-pad",
        "dist-tags": {"latest": "1.3.0", "legacy": "1.0.0"},
        "versions": {
            "1.0.0": {"name": "left-pad", "version": "1.0.0"},
            "1.3.0": {"name": "left-pad", "version": "1.3.0", "types": "index.d.ts"},
        },
    },
    "/is-odd": {
        "name": "is-odd",
        "dist-tags": {"latest": "3.0.1"},
        "versions": {"3.0.1": {"name": "is-odd", "version": "3.0.1"}},
    },
    "/@types/is-odd": {
        "name": "@types/is-odd",
        "dist-tags": {"latest": "3.0.4"},
        "versions": {"3.0.4": {"name": "@types/is-odd", "types": "index.d.ts"}},
    },
    "/is-even": {
        "name": "is-even",
        "dist-tags": {"latest": "1.0.0"},
        "versions": {"1.0.0": {"name": "is-even", "version": "1.0.0"}},
    },
}


def _handler(request: httpx.Request) -> httpx.Response:
    path = request.url.raw_path.decode().replace("%2F", "/").replace("%2f", "/")
    if path == "/broken":
        return httpx.Response(503, json={"error": "unavailable"})
    document = _DOCUMENTS.get(path)
    if document is None:
        return httpx.Response(404, json={"error": "Not found"})
    return httpx.Response(200, json=document)


@pytest.fixture()
def resolver() -> Iterator[NpmRegistryResolver]:
    with NpmRegistryResolver(
        registry_url="https://registry.example.test",
        transport=httpx.MockTransport(_handler),
    ) as registry:
        yield registry


def test_resolve_package_defaults_to_latest(resolver: NpmRegistryResolver) -> None:
    assert resolver.resolve_package("left-pad") == PackageSpec("left-pad", "1.3.0")


def test_resolve_package_accepts_exact_version_and_dist_tag(resolver: NpmRegistryResolver) -> None:
    assert resolver.resolve_package("left-pad", "1.0.0").version == "1.0.0"
    assert resolver.resolve_package("left-pad", "legacy").version == "1.0.0"


def test_resolve_package_unknown_name(resolver: NpmRegistryResolver) -> None:
    with pytest.raises(PackageNotFoundError):
        resolver.resolve_package("no-such-package")


def test_resolve_package_unknown_version_lists_versions(resolver: NpmRegistryResolver) -> None:
    with pytest.raises(PackageVersionMismatchError) as excinfo:
        resolver.resolve_package("left-pad", "9.9.9")

    assert excinfo.value.extra == ["1.0.0", "1.3.0"]


def test_resolve_package_registry_error(resolver: NpmRegistryResolver) -> None:
    with pytest.raises(RegistryUnavailableError, match="HTTP 503"):
        resolver.resolve_package("broken")


def test_resolve_types_prefers_bundled_declarations(resolver: NpmRegistryResolver) -> None:
    resolution = resolver.resolve_types(PackageSpec("left-pad", "1.3.0"))

    assert resolution.bundled
    assert resolution.types_package is None


def test_resolve_types_falls_back_to_definitely_typed(resolver: NpmRegistryResolver) -> None:
    resolution = resolver.resolve_types(PackageSpec("is-odd", "3.0.1"))

    assert not resolution.bundled
    assert resolution.types_package == "@types/is-odd@3.0.4"


def test_resolve_types_without_any_declarations(resolver: NpmRegistryResolver) -> None:
    with pytest.raises(TypeDefinitionResolveError):
        resolver.resolve_types(PackageSpec("is-even", "1.0.0"))


def test_definitely_typed_name_maps_scoped_packages() -> None:
    assert definitely_typed_name("lodash") == "@types/lodash"
    assert definitely_typed_name("@babel/core") == "@types/babel__core"
