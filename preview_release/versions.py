"""Version identifiers and parsing.

Preview builds use a prerelease label derived from the commit and a dist-tag
derived from the pull request, so re-running on the same commit or PR lands
on the same label and tag.
"""

from __future__ import annotations

import semver

SHORT_SHA_LENGTH = 7


def prerelease_id(sha: str) -> str:
    """Prerelease label for a commit.

    Examples:
        "3f2a9c1d0e..." → "git-3f2a9c1"
    """
    return f"git-{sha[:SHORT_SHA_LENGTH]}"


def publish_tag(pr_number: int) -> str:
    """Dist-tag shared by every preview build of one pull request.

    Examples:
        42 → "pr-42"
    """
    return f"pr-{pr_number}"


def parse_version(version_str: str) -> semver.Version:
    """Parse a version string into a semver.Version object.

    Accepts the ``v`` prefix that ``npm version`` prints.

    Raises:
        ValueError: If the string is not a valid semantic version.
    """
    return semver.Version.parse(version_str.strip().removeprefix("v"))


def parse_bump_output(output: str) -> str:
    """Extract the new version from ``pnpm version`` output.

    Lifecycle scripts may print before the version, so only the last
    non-empty line is considered.

    Examples:
        "v1.2.4-git-3f2a9c1.0\\n" → "1.2.4-git-3f2a9c1.0"

    Raises:
        ValueError: If there is no output or the last line isn't a version.
    """
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    if not lines:
        raise ValueError("no version printed")
    return str(parse_version(lines[-1]))
