"""GitHub REST API client.

Covers the few endpoints preview-release needs: commit search (to find the
last release checkpoint) and issue comments (to post the preview summary on
the pull request).
"""

from __future__ import annotations

from typing import Any

import httpx

from .config import RunConfig
from .net import http_client, request_with_retry


class GitHubClient:
    """Thin synchronous client for one repository.

    Args:
        repository: ``owner/repo``.
        token: API token. Search works anonymously, comments do not.
        api_url: REST API root (differs on GitHub Enterprise).
        transport: Optional httpx transport, for tests.
    """

    def __init__(
        self,
        repository: str,
        token: str | None = None,
        *,
        api_url: str = "https://api.github.com",
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        owner, _, repo = repository.partition("/")
        if not owner or not repo:
            raise ValueError(f"Expected owner/repo, got {repository!r}")
        self.owner = owner
        self.repo = repo

        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = http_client(
            base_url=api_url, headers=headers, transport=transport
        )

    @classmethod
    def from_config(
        cls, config: RunConfig, transport: httpx.BaseTransport | None = None
    ) -> GitHubClient | None:
        """Client for the configured repository, or None if there isn't one."""
        if not config.repository:
            return None
        token = config.github_token.get_secret_value() if config.github_token else None
        return cls(
            config.repository,
            token,
            api_url=config.github_api_url,
            transport=transport,
        )

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> GitHubClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        response = request_with_retry(self._client, method, url, **kwargs)
        response.raise_for_status()
        return response

    def search_commits(
        self,
        query: str,
        *,
        sort: str = "committer-date",
        order: str = "desc",
        limit: int = 1,
    ) -> list[str]:
        """Search commits and return the SHAs of the hits, best first.

        Raises:
            httpx.HTTPError: On transport failures or error responses.
            ValueError: If the response body is not a search result.
        """
        response = self._request(
            "GET",
            "/search/commits",
            params={"q": query, "sort": sort, "order": order, "per_page": limit},
        )
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError(f"Unexpected commit search response: {payload!r:.200}")
        items = payload.get("items") or []
        if not isinstance(items, list) or not all(
            isinstance(item, dict) for item in items
        ):
            raise ValueError(f"Unexpected commit search items: {items!r:.200}")
        return [item["sha"] for item in items[:limit] if item.get("sha")]

    def list_issue_comments(self, number: int) -> list[dict[str, Any]]:
        """Every comment on an issue or pull request, following pagination."""
        comments: list[dict[str, Any]] = []
        url: str | None = f"/repos/{self.full_name}/issues/{number}/comments"
        params: dict[str, Any] | None = {"per_page": 100}

        while url:
            response = self._request("GET", url, params=params)
            comments.extend(response.json())
            # The next link already carries the query string
            url = response.links.get("next", {}).get("url")
            params = None

        return comments

    def create_issue_comment(self, number: int, body: str) -> dict[str, Any]:
        # Single attempt so a timed-out request never posts twice
        response = self._request(
            "POST",
            f"/repos/{self.full_name}/issues/{number}/comments",
            json={"body": body},
            max_retries=0,
        )
        return response.json()

    def update_issue_comment(self, comment_id: int, body: str) -> dict[str, Any]:
        response = self._request(
            "PATCH",
            f"/repos/{self.full_name}/issues/comments/{comment_id}",
            json={"body": body},
        )
        return response.json()
