"""CLI entry point for preview-release."""

from __future__ import annotations

import json
from pathlib import Path

import click
import httpx

from preview_release.comment import render_comment, upsert_comment
from preview_release.config import RunConfig
from preview_release.errors import PreviewReleaseError
from preview_release.github import GitHubClient
from preview_release.pipeline import (
    plan_publish_set,
    resolve_head_sha,
    run_preview_release,
)
from preview_release.redeploy import RedeployConfig, redeploy_service
from preview_release.registry import NpmRegistry

workspace_option = click.option(
    "--workspace",
    type=click.Path(file_okay=False, exists=True, path_type=Path),
    default=None,
    help="Workspace root. Defaults to $GITHUB_WORKSPACE, then the current directory.",
)


def _write_output(output_path: str, name: str, value: str) -> None:
    with open(output_path, "a") as fh:
        fh.write(f"{name}={value}\n")


def _load_config(workspace: Path | None, **overrides: object) -> RunConfig:
    try:
        return RunConfig.load(workspace, **overrides)
    except PreviewReleaseError as exc:
        raise click.ClickException(str(exc)) from exc


def _github_client(config: RunConfig) -> GitHubClient | None:
    try:
        return GitHubClient.from_config(config)
    except ValueError as exc:
        raise click.ClickException(f"Invalid GITHUB_REPOSITORY: {exc}") from exc


@click.group()
@click.version_option(package_name="monorepo-preview-release")
def cli() -> None:
    """Publish preview builds of changed monorepo packages."""


@cli.command()
@workspace_option
@click.option("--pr-number", type=int, default=None, help="Pull request number.")
@click.option("--sha", default=None, help="Head commit SHA of the pull request.")
@click.option(
    "--comment/--no-comment",
    default=None,
    help="Post the summary on the pull request. On by default with a GITHUB_TOKEN.",
)
@click.option(
    "--github-output",
    type=click.Path(dir_okay=False),
    default=None,
    help="Append the published packages as JSON to this step-output file.",
)
def publish(
    workspace: Path | None,
    pr_number: int | None,
    sha: str | None,
    comment: bool | None,
    github_output: str | None,
) -> None:
    """Version and publish changed packages under the PR's dist-tag."""
    config = _load_config(workspace, pr_number=pr_number, sha=sha)
    if comment is None:
        comment = config.github_token is not None

    github = _github_client(config)
    try:
        run = run_preview_release(config, github=github)

        if github_output:
            published = [r.model_dump(by_alias=True) for r in run.results]
            _write_output(github_output, "published", json.dumps(published))

        if comment:
            if github is None:
                raise click.ClickException(
                    "Commenting needs GITHUB_REPOSITORY to be set."
                )
            pr = config.require_pr_number()
            body = render_comment(run.results, pr, resolve_head_sha(config))
            upsert_comment(github, pr, body)
    except PreviewReleaseError as exc:
        raise click.ClickException(str(exc)) from exc
    except httpx.HTTPError as exc:
        raise click.ClickException(f"GitHub API request failed: {exc}") from exc
    finally:
        if github is not None:
            github.close()


@cli.command()
@workspace_option
def plan(workspace: Path | None) -> None:
    """Show which packages would be published, without changing anything."""
    config = _load_config(workspace)
    registry = NpmRegistry(config.workspace, config.registry_url)

    github = _github_client(config)
    try:
        publish_set = plan_publish_set(config, registry, github)
    except PreviewReleaseError as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        if github is not None:
            github.close()

    if not publish_set:
        click.echo("\nNo packages have changed")
        return

    click.echo(f"\nWould publish {len(publish_set)} packages:")
    for pkg in publish_set:
        click.echo(f"  {pkg.name} {pkg.version}")


@cli.command()
@click.option("--service-id", default=None, help="Railway service ID ($SERVICE_ID).")
@click.option("--api-url", default=None, help="Railway GraphQL URL ($RAILWAY_API).")
def redeploy(service_id: str | None, api_url: str | None) -> None:
    """Redeploy the latest healthy deployment of a Railway service."""
    try:
        config = RedeployConfig.load(service_id=service_id, api_url=api_url)
        redeploy_service(config)
    except PreviewReleaseError as exc:
        raise click.ClickException(
            f"Failed to redeploy railway service: {exc}"
        ) from exc
