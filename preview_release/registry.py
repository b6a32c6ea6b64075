"""npm registry operations through the ``pnpm`` CLI.

CLI commands used:

- ``pnpm view <name> --json``: does the package exist in the registry?
- ``pnpm version prerelease --preid=<id> --no-git-tag-version``: bump the
  version in package.json without committing or tagging.
- ``pnpm publish --tag=<tag> --no-git-checks``: publish the package
  directory. Git checks are skipped because bumping leaves the tree dirty.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path

from .errors import PublishError, VersionBumpError
from .models import LookupResult, Package
from .shell import capture, run
from .versions import parse_bump_output


class NpmRegistry:
    """Registry queries and mutations for workspace packages.

    Args:
        workspace: Workspace root, where lookups run.
        registry_url: Registry to query and publish to.
    """

    def __init__(self, workspace: Path, registry_url: str) -> None:
        self.workspace = workspace
        self.registry_url = registry_url

    def lookup(self, name: str) -> LookupResult:
        """Ask the registry whether any version of ``name`` is published.

        Never raises: anything short of a successful answer carrying package
        metadata is reported as NOT_FOUND (the registry said 404) or
        LOOKUP_FAILED (any other failure).
        """
        try:
            result = capture(
                "pnpm",
                "view",
                name,
                "--json",
                "--registry",
                self.registry_url,
                cwd=self.workspace,
            )
        except OSError:
            return LookupResult.LOOKUP_FAILED

        if result.returncode != 0:
            if "E404" in result.stdout or "E404" in result.stderr:
                return LookupResult.NOT_FOUND
            return LookupResult.LOOKUP_FAILED

        try:
            metadata = json.loads(result.stdout)
        except json.JSONDecodeError:
            return LookupResult.LOOKUP_FAILED

        if isinstance(metadata, dict) and metadata.get("name"):
            return LookupResult.FOUND
        # Metadata without a name means nothing is actually published
        return LookupResult.NOT_FOUND

    def bump_prerelease(self, pkg: Package, preid: str) -> str:
        """Bump ``pkg`` to the next prerelease with label ``preid``.

        Returns:
            The version written to package.json, without a ``v`` prefix.

        Raises:
            VersionBumpError: If pnpm can't be started, fails, or prints
                something unparsable.
        """
        try:
            result = capture(
                "pnpm",
                "version",
                "prerelease",
                f"--preid={preid}",
                "--no-git-tag-version",
                cwd=Path(pkg.path),
            )
        except OSError as exc:
            raise VersionBumpError(pkg.name, f"could not run pnpm: {exc}") from exc
        if result.returncode != 0:
            detail = result.stderr.strip() or f"exit code {result.returncode}"
            raise VersionBumpError(pkg.name, detail)

        try:
            return parse_bump_output(result.stdout)
        except ValueError as exc:
            raise VersionBumpError(
                pkg.name, f"unexpected output {result.stdout.strip()!r}: {exc}"
            ) from exc

    def publish(
        self,
        pkg: Package,
        tag: str,
        *,
        env: Mapping[str, str] | None = None,
        provenance: bool = False,
    ) -> None:
        """Publish the (already bumped) package under dist-tag ``tag``.

        Args:
            pkg: Package to publish.
            tag: Dist-tag to publish under.
            env: Extra environment for pnpm; carries registry tokens so they
                 never touch the disk.
            provenance: Attach a provenance attestation.

        Raises:
            PublishError: If pnpm can't be started or exits non-zero.
        """
        cmd = [
            "pnpm",
            "publish",
            f"--tag={tag}",
            "--no-git-checks",
            "--registry",
            self.registry_url,
        ]
        if provenance:
            cmd.append("--provenance")

        try:
            result = run(*cmd, cwd=Path(pkg.path), env=env, check=False)
        except OSError as exc:
            raise PublishError(pkg.name, f"could not run pnpm: {exc}") from exc
        if result.returncode != 0:
            raise PublishError(pkg.name, f"pnpm publish exited {result.returncode}")
