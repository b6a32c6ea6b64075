"""Run configuration.

Everything a run needs from its surroundings (workspace directory, PR number,
tokens) is resolved once into a :class:`RunConfig` and handed to each stage,
instead of stages reading the environment themselves.

Resolution order, highest first:

1. Explicit overrides (CLI options)
2. Environment variables (mostly the ones GitHub Actions provides)
3. ``[preview-release]`` table in ``preview-release.toml`` at the workspace root
4. Defaults
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import tomlkit
from pydantic import BaseModel, ConfigDict, SecretStr, ValidationError
from tomlkit.exceptions import ParseError

from .errors import ConfigError

CONFIG_FILE = "preview-release.toml"
CONFIG_TABLE = "preview-release"

# TOML key → RunConfig field. Secrets are deliberately not settable from the file.
FILE_KEYS = {
    "remote": "remote",
    "trunk-branch": "trunk_branch",
    "release-marker": "release_marker",
    "registry-url": "registry_url",
    "github-api-url": "github_api_url",
    "provenance": "provenance",
}

# Environment variable → RunConfig field.
ENV_KEYS = {
    "PR_NUMBER": "pr_number",
    "PR_HEAD_SHA": "sha",
    "GITHUB_REPOSITORY": "repository",
    "GITHUB_TOKEN": "github_token",
    "GITHUB_API_URL": "github_api_url",
    "NPM_REGISTRY_URL": "registry_url",
    "AUTH_TOKEN": "auth_token",
    "ACTIONS_ID_TOKEN_REQUEST_URL": "id_token_request_url",
    "ACTIONS_ID_TOKEN_REQUEST_TOKEN": "id_token_request_token",
}


class RunConfig(BaseModel):
    """Resolved inputs for one preview run.

    Attributes:
        workspace: Workspace root; all git and pnpm commands run here.
        pr_number: Pull request being previewed.
        sha: Head commit of the pull request. Resolved from git when unset.
        repository: ``owner/repo`` used to scope the checkpoint search.
        github_token: Token for the GitHub REST API.
        remote: Git remote holding the trunk branch.
        trunk_branch: Branch whose tip is the fallback diff baseline.
        release_marker: Token in commit messages that marks a release.
        registry_url: npm registry to look up and publish to.
        auth_token: Long-lived registry token, never written to disk.
        id_token_request_url: GitHub Actions OIDC endpoint, for trusted publishing.
        id_token_request_token: Bearer token for the OIDC endpoint.
        provenance: Publish with provenance. Defaults to on when OIDC is available.
    """

    model_config = ConfigDict(extra="forbid")

    workspace: Path
    pr_number: int | None = None
    sha: str | None = None
    repository: str | None = None
    github_token: SecretStr | None = None
    github_api_url: str = "https://api.github.com"
    remote: str = "origin"
    trunk_branch: str = "main"
    release_marker: str = "RELEASING:"
    registry_url: str = "https://registry.npmjs.org"
    auth_token: SecretStr | None = None
    id_token_request_url: str | None = None
    id_token_request_token: SecretStr | None = None
    provenance: bool | None = None

    @property
    def trunk_ref(self) -> str:
        """Remote reference of the trunk branch, e.g. ``origin/main``."""
        return f"{self.remote}/{self.trunk_branch}"

    @property
    def registry_host(self) -> str:
        return urlsplit(self.registry_url).netloc

    @property
    def npmrc_path(self) -> Path:
        return self.workspace / ".npmrc"

    @property
    def use_provenance(self) -> bool:
        if self.provenance is not None:
            return self.provenance
        return self.id_token_request_url is not None

    def require_pr_number(self) -> int:
        if self.pr_number is None:
            raise ConfigError(
                "PR number can not be determined. Set PR_NUMBER or pass --pr-number."
            )
        return self.pr_number

    @classmethod
    def load(
        cls,
        workspace: Path | None = None,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> RunConfig:
        """Build a config from overrides, environment and the config file.

        Args:
            workspace: Workspace root. Falls back to ``GITHUB_WORKSPACE``, then
                       the current directory.
            environ: Environment to read. Defaults to ``os.environ``.
            **overrides: Field values that win over everything else. ``None``
                         values are ignored so unset CLI options fall through.

        Raises:
            ConfigError: If the config file has unknown keys or a value
                         doesn't validate.
        """
        env = os.environ if environ is None else environ
        root = workspace or Path(env.get("GITHUB_WORKSPACE") or Path.cwd())

        values: dict[str, Any] = {"workspace": root}
        values.update(load_settings(root))
        values.update(_event_values(env))
        values.update(
            {field: env[var] for var, field in ENV_KEYS.items() if env.get(var)}
        )
        values.update({k: v for k, v in overrides.items() if v is not None})

        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration: {exc}") from exc


def load_settings(workspace: Path) -> dict[str, Any]:
    """Read ``[preview-release]`` from the workspace config file, if present.

    Example file::

        [preview-release]
        trunk-branch = "develop"
        release-marker = "chore(release):"
    """
    path = workspace / CONFIG_FILE
    if not path.exists():
        return {}

    try:
        doc = tomlkit.parse(path.read_text()).unwrap()
    except ParseError as exc:
        raise ConfigError(f"Invalid {CONFIG_FILE}: {exc}") from exc

    table = doc.get(CONFIG_TABLE, {})
    unknown = sorted(set(table) - set(FILE_KEYS))
    if unknown:
        raise ConfigError(f"Unknown keys in [{CONFIG_TABLE}]: {', '.join(unknown)}")
    return {FILE_KEYS[key]: value for key, value in table.items()}


def _event_values(env: Mapping[str, str]) -> dict[str, Any]:
    """PR number and head SHA from the Actions event payload, if there is one."""
    event_path = env.get("GITHUB_EVENT_PATH")
    if not event_path or not Path(event_path).exists():
        return {}

    try:
        event = json.loads(Path(event_path).read_text())
    except json.JSONDecodeError:
        return {}

    pull_request = event.get("pull_request") or {}
    values: dict[str, Any] = {}
    if pull_request.get("number"):
        values["pr_number"] = pull_request["number"]
    sha = (pull_request.get("head") or {}).get("sha")
    if sha:
        values["sha"] = sha
    return values
