"""Data models for preview-release.

These Pydantic models represent the core data structures used throughout
the preview pipeline.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# pnpm reports workspace-resident dependencies with this specifier prefix.
LINK_PREFIX = "link:"


class Package(BaseModel):
    """Metadata for a single package in the monorepo workspace.

    Built from one entry of ``pnpm list -r --json``. Records are a read-only
    snapshot: version bumps happen on disk and never flow back here.

    Attributes:
        name: Package name, unique within one workspace snapshot.
        version: Version from package.json before any bump.
        path: Absolute path to the package directory.
        private: Whether package.json sets ``"private": true``.
        dependencies: Runtime dependency name → version specifier.
        dev_dependencies: Dev dependency name → version specifier.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str
    version: str = "0.0.0"
    path: str
    private: bool = False
    dependencies: dict[str, str] = Field(default_factory=dict)
    dev_dependencies: dict[str, str] = Field(
        default_factory=dict, alias="devDependencies"
    )

    @field_validator("dependencies", "dev_dependencies", mode="before")
    @classmethod
    def _flatten_specs(cls, value: Any) -> Any:
        # pnpm nests each dep as {"from", "version", "resolved", "path"}
        if value is None:
            return {}
        if isinstance(value, dict):
            return {
                name: spec.get("version", "") if isinstance(spec, dict) else spec
                for name, spec in value.items()
            }
        return value

    @property
    def dependency_specs(self) -> dict[str, str]:
        """All declared specifiers; dev entries win over same-named runtime ones."""
        return {**self.dependencies, **self.dev_dependencies}

    def internal_dependency_names(self) -> list[str]:
        """Names of dependencies linked from inside the workspace."""
        return [
            name
            for name, spec in self.dependency_specs.items()
            if spec.startswith(LINK_PREFIX)
        ]


class PublishResult(BaseModel):
    """A package and the prerelease version it was published as."""

    model_config = ConfigDict(populate_by_name=True)

    package_name: str = Field(alias="packageName")
    next_version: str = Field(alias="nextVersion")


class LookupResult(str, Enum):
    """Outcome of asking the registry whether a package exists."""

    FOUND = "found"
    NOT_FOUND = "not-found"
    LOOKUP_FAILED = "lookup-failed"


class RunState(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    NOTHING_TO_PUBLISH = "nothing-to-publish"
    BUMPING = "bumping"
    PUBLISHING = "publishing"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: dict[RunState, frozenset[RunState]] = {
    RunState.IDLE: frozenset({RunState.RESOLVING}),
    RunState.RESOLVING: frozenset(
        {RunState.NOTHING_TO_PUBLISH, RunState.BUMPING, RunState.FAILED}
    ),
    RunState.BUMPING: frozenset({RunState.PUBLISHING, RunState.FAILED}),
    RunState.PUBLISHING: frozenset({RunState.DONE, RunState.FAILED}),
}


class PreviewRun(BaseModel):
    """State of one preview run.

    Attributes:
        state: Current position in the run state machine.
        publish_set: Names selected for publishing, in publish order.
        results: Bumped versions, filled in once bumping succeeds.
    """

    state: RunState = RunState.IDLE
    publish_set: list[str] = Field(default_factory=list)
    results: list[PublishResult] = Field(default_factory=list)

    def advance(self, state: RunState) -> None:
        """Move to ``state``.

        Raises:
            RuntimeError: If the transition isn't allowed. ``nothing-to-publish``,
                ``done`` and ``failed`` are terminal.
        """
        if state not in _TRANSITIONS.get(self.state, frozenset()):
            raise RuntimeError(
                f"Invalid run transition: {self.state.value} -> {state.value}"
            )
        self.state = state
