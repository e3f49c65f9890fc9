"""Local stand-in renderer for CLI renderer integration tests."""

from __future__ import annotations

import argparse
import html
import os
import sys
from pathlib import Path


def main(argv: list[str] | None = None) -> int:
    """Write a deterministic index page, or fail on request."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--package", required=True)
    parser.add_argument("--out", required=True)
    parser.add_argument("--types-package", default="")
    parser.add_argument("--fail", action="store_true")
    args = parser.parse_args(argv)

    if args.fail:
        print(f"Error: cannot extract declarations for {args.package}", file=sys.stderr)
        print("    at renderDocs (echo_renderer.py)", file=sys.stderr)
        return 2

    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)
    types_source = args.types_package or "bundled"
    (out_dir / "index.html").write_text(
        "<html><body>"
        f"<h1>{html.escape(args.package)}</h1>"
        f"<p>types: {html.escape(types_source)}</p>"
        f"<p>env: {html.escape(os.getenv('DOCS_BUILDER_PACKAGE', ''))}</p>"
        "</body></html>",
        "utf-8",
    )
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
