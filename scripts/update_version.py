#!/usr/bin/env python
"""Keep the pydenylist version in sync across pyproject.toml and the package.

Usage:
    python scripts/update_version.py 0.2.0
    python scripts/update_version.py 0.2.0 --dry-run
    uv run python scripts/update_version.py --check

The CLI reports ``pydenylist.__version__`` through ``--version``, so the two
locations must agree; ``--check`` exits non-zero when they do not.
"""

from __future__ import annotations

import argparse
import re
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
PYPROJECT = PROJECT_ROOT / "pyproject.toml"
SRC_INIT = PROJECT_ROOT / "src" / "pydenylist" / "__init__.py"

VERSION_RE = re.compile(r"^\d+\.\d+(\.\d+)?([a-zA-Z0-9.-]*)?$")  # e.g. 0.2.0, 0.2.1a1

# (file, pattern whose group 1 is the prefix kept on rewrite and group 2 the version)
TARGETS = (
    (PYPROJECT, re.compile(r'^(version\s*=\s*)["\']([^"\']*)["\']', re.MULTILINE)),
    (SRC_INIT, re.compile(r'(__version__\s*(?::\s*str\s*)?=\s*)["\']([^"\']*)["\']')),
)


def read_versions() -> dict[Path, str | None]:
    found: dict[Path, str | None] = {}
    for path, pattern in TARGETS:
        match = pattern.search(path.read_text(encoding="utf-8")) if path.exists() else None
        found[path] = match.group(2) if match else None
    return found


def write_version(path: Path, pattern: re.Pattern[str], new_version: str) -> bool:
    """Rewrite the version in one file. Returns True if the file changed."""
    if not path.exists():
        return False
    text = path.read_text(encoding="utf-8")
    new_text = pattern.sub(lambda m: f'{m.group(1)}"{new_version}"', text, count=1)
    if new_text == text:
        return False
    path.write_text(new_text, encoding="utf-8")
    return True


def main() -> int:
    parser = argparse.ArgumentParser(description="Update or check the pydenylist version.")
    parser.add_argument("version", metavar="VERSION", nargs="?", help="New version (e.g. 0.2.1 or 0.3.0a1)")
    parser.add_argument("--dry-run", action="store_true", help="Only print what would be done.")
    parser.add_argument("--check", action="store_true", help="Fail if the recorded versions disagree.")
    args = parser.parse_args()

    versions = read_versions()
    if args.check:
        distinct = set(versions.values())
        for path, value in versions.items():
            print(f"{path.relative_to(PROJECT_ROOT)}: {value}")
        if None in distinct or len(distinct) != 1:
            print("Error: versions are missing or out of sync.", file=sys.stderr)
            return 1
        return 0

    if not args.version:
        parser.error("VERSION is required unless --check is given")
    version = args.version.strip()
    if not VERSION_RE.match(version):
        print(f"Error: invalid version format: {version!r}", file=sys.stderr)
        return 1

    current = versions[PYPROJECT]
    if current is None:
        print("Error: pyproject.toml not found or has no version.", file=sys.stderr)
        return 1
    if all(v == version for v in versions.values()):
        print(f"Version already set to {version}. Nothing to do.")
        return 0

    if args.dry_run:
        print(f"Would update version from {current} to {version} in:")
        for path, _ in TARGETS:
            print(f"  - {path.relative_to(PROJECT_ROOT)}")
        return 0

    for path, pattern in TARGETS:
        if write_version(path, pattern, version):
            print(f"  - {path.relative_to(PROJECT_ROOT)}")
        elif versions[path] != version:
            print(f"Error: could not update version in {path}.", file=sys.stderr)
            return 1
    print(f"Updated version: {current} -> {version}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
