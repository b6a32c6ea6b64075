"""Shell and git utilities.

Provides simple wrappers around subprocess calls for running git and pnpm,
plus output formatting helpers. Output helpers speak the GitHub Actions
workflow-command dialect (``::debug::``, ``::warning::``) since this tool
almost always runs inside a workflow step.
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Mapping
from pathlib import Path


def git(*args: str, cwd: Path | None = None) -> str:
    """Run a git command and return stdout.

    Args:
        *args: Arguments to pass to git (e.g., "diff", "--name-only").
        cwd: Directory to run in. Defaults to the current directory.

    Returns:
        Stripped stdout from the git command.

    Raises:
        subprocess.CalledProcessError: If git exits non-zero.
    """
    result = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=True
    )
    return result.stdout.strip()


def capture(
    *args: str,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run a command and capture its output without raising.

    Callers inspect ``returncode``, ``stdout`` and ``stderr`` themselves,
    since a non-zero exit is often an answer (e.g. ``pnpm view`` on an
    unknown package) rather than a crash.
    """
    return subprocess.run(
        args, cwd=cwd, env=_merged_env(env), capture_output=True, text=True
    )


def run(
    *args: str,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    check: bool = True,
) -> subprocess.CompletedProcess[bytes]:
    """Run an arbitrary command, streaming its output.

    Unlike git(), this doesn't capture output - it streams directly to
    the terminal so the publish log shows up in CI.

    Args:
        *args: Command and arguments (e.g., "pnpm", "publish").
        cwd: Directory to run in.
        env: Extra environment variables, layered over the current ones.
        check: If True (default), raise on non-zero exit.
    """
    return subprocess.run(args, cwd=cwd, env=_merged_env(env), check=check)


def _merged_env(extra: Mapping[str, str] | None) -> dict[str, str] | None:
    if not extra:
        return None
    return {**os.environ, **extra}


def step(msg: str) -> None:
    """Print a visually distinct step header.

    Used to separate major phases of the run in terminal output.
    """
    print(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")


def debug(msg: str) -> None:
    """Emit a debug line, shown in Actions logs only with step debugging on."""
    for line in msg.splitlines() or [""]:
        print(f"::debug::{line}")


def warn(msg: str) -> None:
    """Emit a warning annotation."""
    print(f"::warning::{msg}")

