"""Preview pipeline: discover → diff → resolve → bump → publish.

This module orchestrates a preview release for one pull request:
1. Discover all packages in the workspace
2. Find the last release checkpoint to diff against
3. Detect which packages changed since that checkpoint
4. Add every internal dependency of a changed package that isn't in the
   registry yet (otherwise the preview would depend on a missing version)
5. Bump each selected package to a commit-derived prerelease
6. Publish them under the pull request's dist-tag

The key property is minimality: dependencies that are already published are
left alone, and dependents of a changed package are not pulled in.
"""

from __future__ import annotations

import subprocess
from collections.abc import Iterator
from contextlib import contextmanager

import httpx

from .auth import Credentials, resolve_credentials
from .config import RunConfig
from .errors import (
    ChangeDetectionError,
    CheckpointLookupError,
    ConfigError,
    PreviewReleaseError,
)
from .github import GitHubClient
from .graph import (
    DependencyCycleError,
    dependency_closure,
    index_by_name,
    topo_sort,
)
from .inventory import discover_packages, relative_package_path
from .models import LookupResult, Package, PreviewRun, PublishResult, RunState
from .registry import NpmRegistry
from .shell import debug, git, step, warn
from .versions import prerelease_id, publish_tag


def find_last_checkpoint(config: RunConfig, github: GitHubClient | None) -> str:
    """Find the commit to diff against.

    Searches the repository for the most recent commit whose message carries
    the release marker. Not finding one is normal (e.g. before the first
    release), so any failure falls back to the trunk branch reference.

    Returns:
        A commit SHA, or the trunk reference such as ``origin/main``.
    """
    step("Finding last release checkpoint")

    try:
        sha = _search_release_commit(config, github)
    except CheckpointLookupError as exc:
        debug(f"Checkpoint search failed: {exc}")
        sha = None

    checkpoint = sha or config.trunk_ref
    print(f"  {checkpoint}" if sha else f"  <none, diffing against {checkpoint}>")
    return checkpoint


def _search_release_commit(
    config: RunConfig, github: GitHubClient | None
) -> str | None:
    if github is None:
        raise CheckpointLookupError("no GitHub repository configured")

    query = f'repo:{github.full_name} "{config.release_marker}"'
    try:
        shas = github.search_commits(
            query, sort="committer-date", order="desc", limit=1
        )
    except (httpx.HTTPError, ValueError, KeyError) as exc:
        raise CheckpointLookupError(str(exc)) from exc

    debug(f"Last release commit: {shas[0] if shas else 'not found'}")
    return shas[0] if shas else None


def detect_changes(
    checkpoint: str, packages: list[Package], config: RunConfig
) -> list[Package]:
    """Determine which packages have files changed since ``checkpoint``.

    A package is changed when a changed file lies inside its directory. The
    match is anchored on a ``/`` boundary, so ``packages/foo`` does not
    claim ``packages/foo-bar/index.ts``. The workspace root package never
    matches, and private packages are skipped since they can't be published.

    Args:
        checkpoint: Commit reference to diff the working tree against.
        packages: All workspace packages.
        config: Run configuration (workspace, remote, trunk branch).

    Returns:
        Changed packages, in inventory order.

    Raises:
        ChangeDetectionError: If fetching or diffing fails.
    """
    step("Detecting changes")

    try:
        git("fetch", config.remote, config.trunk_branch, cwd=config.workspace)
        diff = git("diff", "--name-only", checkpoint, cwd=config.workspace)
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        raise ChangeDetectionError(f"{' '.join(exc.cmd)} failed: {stderr}") from exc
    except OSError as exc:
        raise ChangeDetectionError(f"Could not run git: {exc}") from exc

    changed_files = [line for line in diff.splitlines() if line]
    debug(f"Last checkpoint: {checkpoint}")
    debug("Changed paths:\n" + "\n".join(changed_files))

    changed: list[Package] = []
    for pkg in packages:
        rel = relative_package_path(pkg, config.workspace)
        if rel is None:
            continue

        prefix = rel + "/"
        if not any(f == rel or f.startswith(prefix) for f in changed_files):
            continue
        if pkg.private:
            debug(f"{pkg.name}: changed but private, not publishable")
            continue

        changed.append(pkg)
        print(f"  {pkg.name}: changed since {checkpoint}")

    if not changed:
        print("  No package changes")
    return changed


def must_publish(pkg: Package, registry: NpmRegistry) -> bool:
    """Whether a dependency has to be published alongside its dependent.

    Only a definite "found" lets a dependency be skipped. A 404 and a failed
    lookup both mean "publish it": skipping a dependency that is really
    missing would leave the preview with a dangling dependency. Private
    packages are never published and are not looked up.
    """
    if pkg.private:
        debug(f"{pkg.name}: private, not publishable")
        return False
    result = registry.lookup(pkg.name)
    debug(f"{pkg.name}: registry lookup {result.value}")
    return result is not LookupResult.FOUND


def resolve_publish_set(
    changed: list[Package], packages: list[Package], registry: NpmRegistry
) -> list[Package]:
    """Compute the packages to version and publish.

    Every changed package is selected. For each one, its dependency closure
    is walked and any dependency the registry doesn't have yet is selected
    too. Registry lookups are cached for the run, so a dependency shared by
    several changed packages is checked and added once.

    Args:
        changed: Packages with changes since the checkpoint.
        packages: All workspace packages, for resolving links by name.
        registry: Registry to check dependencies against.

    Returns:
        Selected packages in discovery order, each exactly once. Empty when
        nothing changed.
    """
    step("Resolving packages to publish")

    by_name = index_by_name(packages)
    selected: dict[str, Package] = {}
    decisions: dict[str, bool] = {}

    for pkg in changed:
        selected.setdefault(pkg.name, pkg)

        for dep in dependency_closure(pkg, by_name):
            if dep.name in selected:
                continue
            if dep.name not in decisions:
                decisions[dep.name] = must_publish(dep, registry)
            if decisions[dep.name]:
                selected[dep.name] = dep
                print(f"  {dep.name}: unpublished dependency of {pkg.name}")

    publish_set = list(selected.values())
    debug("Packages to publish:\n" + "\n".join(selected))
    return publish_set


def publish_order(publish_set: list[Package]) -> list[Package]:
    """Order the publish set so dependencies go out before their dependents.

    A cycle among selected packages can't be ordered; the discovery order is
    kept in that case.
    """
    try:
        return topo_sort(publish_set)
    except DependencyCycleError as exc:
        warn(f"{exc}; publishing in discovery order")
        return list(publish_set)


def plan_publish_set(
    config: RunConfig, registry: NpmRegistry, github: GitHubClient | None
) -> list[Package]:
    """Run discovery through resolution and return the ordered publish set.

    Read-only: nothing is bumped or published.
    """
    packages = discover_packages(config.workspace)
    checkpoint = find_last_checkpoint(config, github)
    changed = detect_changes(checkpoint, packages, config)
    return publish_order(resolve_publish_set(changed, packages, registry))


def resolve_head_sha(config: RunConfig) -> str:
    """Commit the preview is built from: configured SHA, else git HEAD."""
    if config.sha:
        return config.sha
    try:
        return git("rev-parse", "HEAD", cwd=config.workspace)
    except (subprocess.CalledProcessError, OSError) as exc:
        raise ConfigError("Latest commit SHA can not be determined") from exc


def bump_packages(
    packages: list[Package], preid: str, registry: NpmRegistry
) -> list[PublishResult]:
    """Bump each package to the next prerelease labelled ``preid``.

    Stops at the first failure. Manifests bumped before it stay bumped; the
    checkout is throwaway CI state.

    Raises:
        VersionBumpError: If any bump fails.
    """
    step(f"Bumping {len(packages)} packages (preid {preid})")

    results: list[PublishResult] = []
    for pkg in packages:
        version = registry.bump_prerelease(pkg, preid)
        results.append(PublishResult(package_name=pkg.name, next_version=version))
        print(f"  {pkg.name}: {pkg.version} → {version}")
    return results


def publish_packages(
    packages: list[Package],
    tag: str,
    registry: NpmRegistry,
    credentials: Credentials,
    *,
    provenance: bool = False,
) -> None:
    """Publish each bumped package under ``tag``, stopping at the first failure.

    Raises:
        PublishError: If any publish (or its token exchange) fails.
    """
    step(f"Publishing {len(packages)} packages under {tag}")

    credentials.prepare()
    for pkg in packages:
        env = credentials.publish_env(pkg.name)
        registry.publish(pkg, tag, env=env, provenance=provenance)
        print(f"  {pkg.name}")


@contextmanager
def _phase(run: PreviewRun, state: RunState) -> Iterator[None]:
    """Enter ``state``; move the run to FAILED if the block raises."""
    run.advance(state)
    try:
        yield
    except PreviewReleaseError:
        run.advance(RunState.FAILED)
        raise


def run_preview_release(
    config: RunConfig,
    *,
    registry: NpmRegistry | None = None,
    github: GitHubClient | None = None,
) -> PreviewRun:
    """Execute the full preview pipeline.

    Args:
        config: Run configuration. Must carry a PR number.
        registry: Registry adapter; built from config when omitted.
        github: GitHub client used for the checkpoint search. Without one,
                changes are diffed against the trunk branch.

    Returns:
        The finished run. ``run.results`` lists what was published and is
        empty when nothing changed.

    Raises:
        PreviewReleaseError: On any fatal failure. The run is marked failed
            even if some packages were already published.
    """
    tag = publish_tag(config.require_pr_number())
    registry = registry or NpmRegistry(config.workspace, config.registry_url)
    run = PreviewRun()

    with _phase(run, RunState.RESOLVING):
        publish_set = plan_publish_set(config, registry, github)
        run.publish_set = [pkg.name for pkg in publish_set]
        if publish_set:
            credentials = resolve_credentials(config)
            preid = prerelease_id(resolve_head_sha(config))

    if not publish_set:
        print("\nNo packages have changed")
        run.advance(RunState.NOTHING_TO_PUBLISH)
        return run

    with _phase(run, RunState.BUMPING):
        run.results = bump_packages(publish_set, preid, registry)

    with _phase(run, RunState.PUBLISHING):
        publish_packages(
            publish_set,
            tag,
            registry,
            credentials,
            provenance=config.use_provenance,
        )

    run.advance(RunState.DONE)
    banner = "=" * 60
    print(f"\n{banner}\nPublished {len(run.results)} packages under {tag}\n{banner}")
    return run
