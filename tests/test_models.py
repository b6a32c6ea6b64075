"""Tests for preview_release.models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from preview_release.models import (
    Package,
    PreviewRun,
    PublishResult,
    RunState,
)


class TestPackage:
    def test_from_pnpm_list_entry(self) -> None:
        """Nested pnpm dependency objects flatten to their specifier."""
        entry = {
            "name": "@acme/ui",
            "version": "2.1.0",
            "path": "/repo/packages/ui",
            "private": False,
            "dependencies": {
                "@acme/core": {
                    "from": "@acme/core",
                    "version": "link:../core",
                    "path": "/repo/packages/core",
                },
                "react": {"from": "react", "version": "18.3.1"},
            },
            "devDependencies": {
                "@acme/tsconfig": {
                    "from": "@acme/tsconfig",
                    "version": "link:../tsconfig",
                }
            },
        }

        pkg = Package.model_validate(entry)

        assert pkg.dependencies == {"@acme/core": "link:../core", "react": "18.3.1"}
        assert pkg.dev_dependencies == {"@acme/tsconfig": "link:../tsconfig"}
        assert pkg.internal_dependency_names() == ["@acme/core", "@acme/tsconfig"]

    def test_defaults(self) -> None:
        pkg = Package.model_validate({"name": "bare", "path": "/repo/bare"})

        assert pkg.version == "0.0.0"
        assert pkg.private is False
        assert pkg.dependencies == {}
        assert pkg.internal_dependency_names() == []

    def test_null_dependency_maps(self) -> None:
        pkg = Package.model_validate(
            {"name": "a", "path": "/a", "dependencies": None, "devDependencies": None}
        )
        assert pkg.dependency_specs == {}

    def test_dev_entry_wins_over_runtime(self) -> None:
        pkg = Package(
            name="a",
            path="/a",
            dependencies={"b": "^1.0.0"},
            dev_dependencies={"b": "link:../b"},
        )
        assert pkg.internal_dependency_names() == ["b"]

    def test_unknown_fields_ignored(self) -> None:
        pkg = Package.model_validate(
            {"name": "a", "path": "/a", "unsavedDependencies": {"x": "1"}}
        )
        assert pkg.name == "a"

    def test_is_frozen(self) -> None:
        pkg = Package(name="a", path="/a")
        with pytest.raises(ValidationError):
            pkg.version = "2.0.0"  # type: ignore[misc]


class TestPublishResult:
    def test_dumps_camel_case(self) -> None:
        result = PublishResult(package_name="core", next_version="1.0.1-git-abc.0")

        assert result.model_dump(by_alias=True) == {
            "packageName": "core",
            "nextVersion": "1.0.1-git-abc.0",
        }

    def test_accepts_aliases(self) -> None:
        result = PublishResult.model_validate(
            {"packageName": "core", "nextVersion": "1.0.1"}
        )
        assert result.package_name == "core"


class TestPreviewRun:
    def test_happy_path(self) -> None:
        run = PreviewRun()
        for state in (
            RunState.RESOLVING,
            RunState.BUMPING,
            RunState.PUBLISHING,
            RunState.DONE,
        ):
            run.advance(state)
        assert run.state is RunState.DONE

    def test_nothing_to_publish(self) -> None:
        run = PreviewRun()
        run.advance(RunState.RESOLVING)
        run.advance(RunState.NOTHING_TO_PUBLISH)
        assert run.state is RunState.NOTHING_TO_PUBLISH

    @pytest.mark.parametrize(
        "state", [RunState.RESOLVING, RunState.BUMPING, RunState.PUBLISHING]
    )
    def test_any_active_state_can_fail(self, state: RunState) -> None:
        run = PreviewRun(state=state)
        run.advance(RunState.FAILED)
        assert run.state is RunState.FAILED

    def test_cannot_skip_bumping(self) -> None:
        run = PreviewRun(state=RunState.RESOLVING)
        with pytest.raises(RuntimeError, match="resolving -> publishing"):
            run.advance(RunState.PUBLISHING)

    @pytest.mark.parametrize(
        "terminal",
        [RunState.DONE, RunState.FAILED, RunState.NOTHING_TO_PUBLISH],
    )
    def test_terminal_states(self, terminal: RunState) -> None:
        run = PreviewRun(state=terminal)
        with pytest.raises(RuntimeError):
            run.advance(RunState.RESOLVING)

    def test_idle_cannot_fail(self) -> None:
        with pytest.raises(RuntimeError):
            PreviewRun().advance(RunState.FAILED)
