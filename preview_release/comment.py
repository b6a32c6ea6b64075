"""Pull request summary comment.

One comment per pull request, found again on later runs by a hidden marker
and edited in place, so repeated pushes don't pile up comments.
"""

from __future__ import annotations

from .github import GitHubClient
from .models import PublishResult
from .shell import step
from .versions import publish_tag

COMMENT_TAG = "<!-- preview-release-action -->"


def render_comment(results: list[PublishResult], pr_number: int, sha: str) -> str:
    """Markdown body for the summary comment."""
    lines = [COMMENT_TAG, "### Preview release", "", f"Latest commit: {sha}", ""]

    if not results:
        lines.append("No packages have been released.")
        return "\n".join(lines)

    lines.append("Some packages have been released:")
    lines.append("")
    lines.extend(
        _markdown_table(
            ["Package", "Version", "Install"],
            [
                [r.package_name, r.next_version, f"`{r.package_name}@{r.next_version}`"]
                for r in results
            ],
        )
    )
    lines += [
        "",
        "> [!NOTE]",
        "> Use the PR number as tag to install any package. For instance:",
        "> ```",
        f"> pnpm add {results[0].package_name}@{publish_tag(pr_number)}",
        "> ```",
    ]
    return "\n".join(lines)


def _markdown_table(header: list[str], rows: list[list[str]]) -> list[str]:
    widths = [
        max(len(cell) for cell in column) for column in zip(header, *rows, strict=True)
    ]

    def fmt(cells: list[str]) -> str:
        padded = (cell.ljust(width) for cell, width in zip(cells, widths, strict=True))
        return "| " + " | ".join(padded) + " |"

    separator = "| " + " | ".join("-" * width for width in widths) + " |"
    return [fmt(header), separator, *(fmt(row) for row in rows)]


def upsert_comment(github: GitHubClient, pr_number: int, body: str) -> None:
    """Create the summary comment, or update it if a previous run left one.

    Raises:
        httpx.HTTPError: If the GitHub API calls fail.
    """
    step("Updating pull request comment")

    existing = next(
        (
            c
            for c in github.list_issue_comments(pr_number)
            if COMMENT_TAG in (c.get("body") or "")
        ),
        None,
    )
    if existing is None:
        comment = github.create_issue_comment(pr_number, body)
        print(f"  Created {comment.get('html_url', '')}")
    else:
        comment = github.update_issue_comment(existing["id"], body)
        print(f"  Updated {comment.get('html_url', '')}")
