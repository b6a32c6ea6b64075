"""Tests for preview_release.registry."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from conftest import completed

from preview_release.errors import PublishError, VersionBumpError
from preview_release.models import LookupResult, Package
from preview_release.registry import NpmRegistry

REGISTRY_URL = "https://registry.npmjs.org"


@pytest.fixture
def npm(workspace: Path) -> NpmRegistry:
    return NpmRegistry(workspace, REGISTRY_URL)


class TestLookup:
    """Tests for NpmRegistry.lookup()."""

    @patch("preview_release.registry.capture")
    def test_found(self, mock_capture: MagicMock, npm: NpmRegistry) -> None:
        mock_capture.return_value = completed(
            stdout='{"name": "@acme/core", "version": "1.0.0"}'
        )

        assert npm.lookup("@acme/core") is LookupResult.FOUND
        mock_capture.assert_called_once_with(
            "pnpm",
            "view",
            "@acme/core",
            "--json",
            "--registry",
            REGISTRY_URL,
            cwd=npm.workspace,
        )

    @patch("preview_release.registry.capture")
    def test_not_found(self, mock_capture: MagicMock, npm: NpmRegistry) -> None:
        mock_capture.return_value = completed(
            returncode=1,
            stdout='{"error": {"code": "E404", "summary": "Not Found"}}',
        )

        assert npm.lookup("@acme/new") is LookupResult.NOT_FOUND

    @patch("preview_release.registry.capture")
    def test_not_found_on_stderr(
        self, mock_capture: MagicMock, npm: NpmRegistry
    ) -> None:
        mock_capture.return_value = completed(
            returncode=1, stderr="ERR_PNPM_FETCH_404 E404 Not Found"
        )

        assert npm.lookup("@acme/new") is LookupResult.NOT_FOUND

    @patch("preview_release.registry.capture")
    def test_network_error(self, mock_capture: MagicMock, npm: NpmRegistry) -> None:
        mock_capture.return_value = completed(
            returncode=1, stderr="request to registry failed, reason: ETIMEDOUT"
        )

        assert npm.lookup("@acme/core") is LookupResult.LOOKUP_FAILED

    @patch("preview_release.registry.capture")
    def test_invalid_json(self, mock_capture: MagicMock, npm: NpmRegistry) -> None:
        mock_capture.return_value = completed(stdout="<html>proxy error</html>")

        assert npm.lookup("@acme/core") is LookupResult.LOOKUP_FAILED

    @patch("preview_release.registry.capture")
    def test_pnpm_missing(self, mock_capture: MagicMock, npm: NpmRegistry) -> None:
        mock_capture.side_effect = FileNotFoundError("pnpm")

        assert npm.lookup("@acme/core") is LookupResult.LOOKUP_FAILED

    @patch("preview_release.registry.capture")
    def test_metadata_without_name(
        self, mock_capture: MagicMock, npm: NpmRegistry
    ) -> None:
        mock_capture.return_value = completed(stdout="{}")

        assert npm.lookup("@acme/core") is LookupResult.NOT_FOUND


class TestBumpPrerelease:
    """Tests for NpmRegistry.bump_prerelease()."""

    @patch("preview_release.registry.capture")
    def test_returns_new_version(
        self,
        mock_capture: MagicMock,
        npm: NpmRegistry,
        make_package: Callable[..., Package],
    ) -> None:
        core = make_package("core", version="1.0.0")
        mock_capture.return_value = completed(stdout="v1.0.1-git-3f2a9c1.0\n")

        assert npm.bump_prerelease(core, "git-3f2a9c1") == "1.0.1-git-3f2a9c1.0"
        mock_capture.assert_called_once_with(
            "pnpm",
            "version",
            "prerelease",
            "--preid=git-3f2a9c1",
            "--no-git-tag-version",
            cwd=Path(core.path),
        )

    @patch("preview_release.registry.capture")
    def test_failure(
        self,
        mock_capture: MagicMock,
        npm: NpmRegistry,
        make_package: Callable[..., Package],
    ) -> None:
        mock_capture.return_value = completed(
            returncode=1, stderr="npm ERR! Invalid version"
        )

        with pytest.raises(VersionBumpError, match="core: npm ERR! Invalid version"):
            npm.bump_prerelease(make_package("core"), "git-3f2a9c1")

    @patch("preview_release.registry.capture")
    def test_failure_without_stderr(
        self,
        mock_capture: MagicMock,
        npm: NpmRegistry,
        make_package: Callable[..., Package],
    ) -> None:
        mock_capture.return_value = completed(returncode=2)

        with pytest.raises(VersionBumpError, match="exit code 2"):
            npm.bump_prerelease(make_package("core"), "git-3f2a9c1")

    @patch("preview_release.registry.capture")
    def test_unparsable_output(
        self,
        mock_capture: MagicMock,
        npm: NpmRegistry,
        make_package: Callable[..., Package],
    ) -> None:
        mock_capture.return_value = completed(stdout="done\n")

        with pytest.raises(VersionBumpError, match="unexpected output"):
            npm.bump_prerelease(make_package("core"), "git-3f2a9c1")

    @patch("preview_release.registry.capture")
    def test_pnpm_not_startable(
        self,
        mock_capture: MagicMock,
        npm: NpmRegistry,
        make_package: Callable[..., Package],
    ) -> None:
        """A missing pnpm binary surfaces as a bump failure for the package."""
        mock_capture.side_effect = FileNotFoundError(2, "No such file", "pnpm")

        with pytest.raises(VersionBumpError, match="core: could not run pnpm") as exc:
            npm.bump_prerelease(make_package("core"), "git-3f2a9c1")

        assert exc.value.package == "core"
        assert isinstance(exc.value.__cause__, FileNotFoundError)


class TestPublish:
    """Tests for NpmRegistry.publish()."""

    @patch("preview_release.registry.run")
    def test_command(
        self,
        mock_run: MagicMock,
        npm: NpmRegistry,
        make_package: Callable[..., Package],
    ) -> None:
        core = make_package("core")
        mock_run.return_value = completed()

        npm.publish(core, "pr-42", env={"AUTH_TOKEN": "secret"})

        mock_run.assert_called_once_with(
            "pnpm",
            "publish",
            "--tag=pr-42",
            "--no-git-checks",
            "--registry",
            REGISTRY_URL,
            cwd=Path(core.path),
            env={"AUTH_TOKEN": "secret"},
            check=False,
        )

    @patch("preview_release.registry.run")
    def test_provenance_flag(
        self,
        mock_run: MagicMock,
        npm: NpmRegistry,
        make_package: Callable[..., Package],
    ) -> None:
        mock_run.return_value = completed()

        npm.publish(make_package("core"), "pr-42", provenance=True)

        assert mock_run.call_args.args[-1] == "--provenance"

    @patch("preview_release.registry.run")
    def test_failure(
        self,
        mock_run: MagicMock,
        npm: NpmRegistry,
        make_package: Callable[..., Package],
    ) -> None:
        mock_run.return_value = completed(returncode=1)

        with pytest.raises(PublishError) as exc_info:
            npm.publish(make_package("core"), "pr-42")

        assert exc_info.value.package == "core"
        assert str(exc_info.value) == (
            "Failed to publish packages: core: pnpm publish exited 1"
        )

    @patch("preview_release.registry.run")
    def test_pnpm_not_startable(
        self,
        mock_run: MagicMock,
        npm: NpmRegistry,
        make_package: Callable[..., Package],
    ) -> None:
        mock_run.side_effect = PermissionError(13, "Permission denied", "pnpm")

        with pytest.raises(PublishError, match="core: could not run pnpm") as exc:
            npm.publish(make_package("core"), "pr-42")

        assert exc.value.package == "core"
