"""Workspace package discovery via ``pnpm list``."""

from __future__ import annotations

import json
import os
from pathlib import Path

from pydantic import ValidationError

from .errors import InventoryError
from .models import Package
from .shell import capture, step


def discover_packages(workspace: Path) -> list[Package]:
    """List every package in the pnpm workspace.

    Runs ``pnpm list -r --json`` in the workspace root, which reports each
    member with its name, version, absolute path and dependency maps.

    Returns:
        Packages in the order pnpm reports them.

    Raises:
        InventoryError: If pnpm fails, prints something other than a JSON
            list of packages, or reports the same name twice.
    """
    step("Discovering workspace packages")

    try:
        result = capture("pnpm", "list", "-r", "--json", cwd=workspace)
    except OSError as exc:
        raise InventoryError(f"Could not run pnpm: {exc}") from exc
    if result.returncode != 0:
        raise InventoryError(f"pnpm list failed: {result.stderr.strip()}")

    try:
        raw = json.loads(result.stdout)
    except json.JSONDecodeError as exc:
        raise InventoryError(f"pnpm list printed invalid JSON: {exc}") from exc
    if not isinstance(raw, list):
        raise InventoryError("pnpm list did not return a list of packages")

    try:
        packages = [Package.model_validate(entry) for entry in raw]
    except ValidationError as exc:
        raise InventoryError(f"Unexpected package entry: {exc}") from exc

    seen: set[str] = set()
    for pkg in packages:
        if pkg.name in seen:
            raise InventoryError(f"Duplicate package name in workspace: {pkg.name}")
        seen.add(pkg.name)

    # Print discovered packages for user feedback
    for pkg in packages:
        deps = pkg.internal_dependency_names()
        links = f" → [{', '.join(deps)}]" if deps else ""
        location = relative_package_path(pkg, workspace) or "."
        print(f"  {pkg.name} {pkg.version} ({location}){links}")

    return packages


def relative_package_path(pkg: Package, workspace: Path) -> str | None:
    """Path of a package relative to the workspace root, using ``/``.

    Returns None for the workspace root itself and for anything outside it,
    since neither can be matched against repository-relative file paths.

    Examples:
        "/repo/packages/core" in "/repo" → "packages/core"
        "/repo" in "/repo" → None
    """
    rel = Path(os.path.relpath(pkg.path, workspace)).as_posix()
    if rel == "." or rel == ".." or rel.startswith("../"):
        return None
    return rel
