"""Shared test fixtures."""

from __future__ import annotations

import sys
from collections.abc import Iterator
from dataclasses import replace
from pathlib import Path

import pytest
from _docs_fakes import FakeRenderer, FakeResolver

from docs_builder.builder import DocsArtifactStore, DocsGenerator
from docs_builder.config import Settings
from docs_builder.jobs.repository import JobRepository

_ECHO_RENDER_COMMAND_TEMPLATE = (
    f"{sys.executable} -m docs_builder.builder.echo_renderer "
    "--package {package} --types-package {types_package} --out {out_dir}"
)


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[JobRepository]:
    repo = JobRepository(tmp_path / "docs.db")
    repo.init_schema()
    try:
        yield repo
    finally:
        repo.close()


@pytest.fixture()
def artifacts(tmp_path: Path) -> DocsArtifactStore:
    return DocsArtifactStore(tmp_path / "docs")


@pytest.fixture()
def resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture()
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture()
def generator(
    resolver: FakeResolver,
    renderer: FakeRenderer,
    artifacts: DocsArtifactStore,
) -> DocsGenerator:
    return DocsGenerator(resolver=resolver, renderer=renderer, artifacts=artifacts)


@pytest.fixture()
def echo_renderer(monkeypatch, tmp_path: Path):
    """Monkeypatch Settings.from_env to render with the echo renderer."""
    original_from_env = Settings.from_env

    def _patched_from_env(db_path=None):
        settings = original_from_env(db_path=db_path)
        new_render = replace(
            settings.render,
            command_template=_ECHO_RENDER_COMMAND_TEMPLATE,
            docs_root=tmp_path / "rendered",
        )
        return replace(settings, render=new_render)

    monkeypatch.setattr(Settings, "from_env", staticmethod(_patched_from_env))
