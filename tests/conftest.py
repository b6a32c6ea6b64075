"""Shared test fixtures."""

from __future__ import annotations

import subprocess
from collections.abc import Callable
from pathlib import Path

import pytest

from preview_release.config import ENV_KEYS, RunConfig
from preview_release.errors import PublishError, VersionBumpError
from preview_release.models import LookupResult, Package


class FakeRegistry:
    """In-memory stand-in for NpmRegistry that records every call."""

    def __init__(
        self,
        published: set[str] | None = None,
        lookup_failures: set[str] | None = None,
        failing_bumps: set[str] | None = None,
        failing_publishes: set[str] | None = None,
    ) -> None:
        self.published = published or set()
        self.lookup_failures = lookup_failures or set()
        self.failing_bumps = failing_bumps or set()
        self.failing_publishes = failing_publishes or set()
        self.lookups: list[str] = []
        self.bumped: list[tuple[str, str]] = []
        self.publishes: list[tuple[str, str, dict[str, str], bool]] = []

    def lookup(self, name: str) -> LookupResult:
        self.lookups.append(name)
        if name in self.lookup_failures:
            return LookupResult.LOOKUP_FAILED
        if name in self.published:
            return LookupResult.FOUND
        return LookupResult.NOT_FOUND

    def bump_prerelease(self, pkg: Package, preid: str) -> str:
        if pkg.name in self.failing_bumps:
            raise VersionBumpError(pkg.name, "exit code 1")
        self.bumped.append((pkg.name, preid))
        return f"{pkg.version}-{preid}.0"

    def publish(
        self,
        pkg: Package,
        tag: str,
        *,
        env: dict[str, str] | None = None,
        provenance: bool = False,
    ) -> None:
        if pkg.name in self.failing_publishes:
            raise PublishError(pkg.name, "pnpm publish exited 1")
        self.publishes.append((pkg.name, tag, dict(env or {}), provenance))


def completed(
    returncode: int = 0, stdout: str = "", stderr: str = ""
) -> subprocess.CompletedProcess[str]:
    """A finished process result, as returned by shell.capture()."""
    return subprocess.CompletedProcess(
        args=[], returncode=returncode, stdout=stdout, stderr=stderr
    )


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """An empty workspace root."""
    return tmp_path


@pytest.fixture
def make_package(workspace: Path) -> Callable[..., Package]:
    """Factory for packages under ``<workspace>/packages/<name>``.

    Positional arguments after the name are workspace links.
    """

    def _make(
        name: str,
        *links: str,
        version: str = "1.0.0",
        path: str | None = None,
        private: bool = False,
        external: dict[str, str] | None = None,
    ) -> Package:
        deps = {dep: f"link:../{dep}" for dep in links}
        deps.update(external or {})
        return Package(
            name=name,
            version=version,
            path=str(workspace / (path or f"packages/{name}")),
            private=private,
            dependencies=deps,
        )

    return _make


@pytest.fixture
def config(workspace: Path) -> RunConfig:
    """Config for PR 42 at a fixed commit, with no credentials."""
    return RunConfig(workspace=workspace, pr_number=42, sha="3f2a9c1d0e5b7a8")


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove every variable RunConfig reads, so the host CI can't leak in."""
    for var in [*ENV_KEYS, "GITHUB_EVENT_PATH", "GITHUB_WORKSPACE"]:
        monkeypatch.delenv(var, raising=False)
    for var in ("RAILWAY_API", "RAILWAY_TOKEN", "SERVICE_ID"):
        monkeypatch.delenv(var, raising=False)
