from __future__ import annotations

import json
from pathlib import Path

import allure

from docs_builder.builder import DocsArtifactStore
from docs_builder.builder.artifacts import MARKER_FILE
from docs_builder.jobs.models import PackageSpec

pytestmark = [
    allure.epic("Docs Build Queue"),
    allure.feature("Docs Artifacts"),
]


def test_path_for_nests_scoped_packages(tmp_path: Path) -> None:
    store = DocsArtifactStore(tmp_path)

    scoped = store.path_for(PackageSpec("@babel/core", "7.0.0"))

    assert scoped == tmp_path / "@babel" / "core" / "7.0.0"
    assert store.path_for(PackageSpec("..", "1.0.0")) == tmp_path / "_" / "1.0.0"


def test_mark_built_makes_docs_fresh(tmp_path: Path) -> None:
    store = DocsArtifactStore(tmp_path)
    package = PackageSpec("left-pad", "1.3.0")

    assert not store.is_fresh(package)
    out_dir = store.mark_built(package, types_package="@types/left-pad@1.0.2")

    assert store.is_fresh(package)
    marker = json.loads((out_dir / MARKER_FILE).read_text("utf-8"))
    assert marker["types_package"] == "@types/left-pad@1.0.2"


def test_old_builds_expire(tmp_path: Path) -> None:
    package = PackageSpec("left-pad", "1.3.0")
    out_dir = DocsArtifactStore(tmp_path).mark_built(package, types_package=None)
    (out_dir / MARKER_FILE).write_text(
        json.dumps({"built_at": "2000-01-01T00:00:00+00:00"}),
        "utf-8",
    )

    assert not DocsArtifactStore(tmp_path, max_age_hours=24).is_fresh(package)
    assert DocsArtifactStore(tmp_path, max_age_hours=0).is_fresh(package)


def test_corrupt_marker_is_not_fresh(tmp_path: Path) -> None:
    package = PackageSpec("left-pad", "1.3.0")
    out_dir = DocsArtifactStore(tmp_path).mark_built(package, types_package=None)
    (out_dir / MARKER_FILE).write_text("{not json", "utf-8")

    assert not DocsArtifactStore(tmp_path).is_fresh(package)
