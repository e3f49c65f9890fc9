"""Filesystem layout and freshness markers for rendered docs."""

from __future__ import annotations

import json
import re
from datetime import timedelta
from pathlib import Path

from docs_builder.jobs.models import PackageSpec
from docs_builder.storage.common import from_iso, utc_now

MARKER_FILE = "build.json"
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._@+-]")


class DocsArtifactStore:
    """Tracks where docs for each package version live and when they were built."""

    def __init__(self, root: Path, *, max_age_hours: int = 24) -> None:
        self.root = root
        self.max_age_hours = max_age_hours

    def path_for(self, package: PackageSpec) -> Path:
        parts = [_safe_segment(part) for part in package.name.split("/")]
        return self.root.joinpath(*parts, _safe_segment(package.version))

    def is_fresh(self, package: PackageSpec) -> bool:
        """True when a build marker exists and has not expired."""

        marker = self.path_for(package) / MARKER_FILE
        if not marker.is_file():
            return False
        try:
            data = json.loads(marker.read_text("utf-8"))
            built_at = from_iso(str(data["built_at"]))
        except (OSError, ValueError, KeyError, TypeError):
            return False
        if self.max_age_hours <= 0:
            return True
        return utc_now() - built_at < timedelta(hours=self.max_age_hours)

    def mark_built(self, package: PackageSpec, *, types_package: str | None) -> Path:
        out_dir = self.path_for(package)
        out_dir.mkdir(parents=True, exist_ok=True)
        marker = out_dir / MARKER_FILE
        marker.write_text(
            json.dumps(
                {
                    "package": package.to_payload(),
                    "types_package": types_package,
                    "built_at": utc_now().isoformat(),
                },
                indent=2,
                sort_keys=True,
            ),
            "utf-8",
        )
        return out_dir


def _safe_segment(value: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("_", value.strip())
    if cleaned in {"", ".", ".."}:
        return "_"
    return cleaned
