"""HTTP utilities.

Provides a configured :class:`httpx.Client` factory and a retry helper for
transient failures (rate limits, 5xx, dropped connections). Used by the
GitHub, trusted-publishing and Railway clients.
"""

from __future__ import annotations

import time
from typing import Any

import httpx

from .shell import warn

DEFAULT_TIMEOUT = 30.0

MAX_RETRIES = 3
RETRY_BACKOFF_BASE = 1.0

# HTTP status codes that trigger a retry.
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


def http_client(
    *,
    base_url: str = "",
    headers: dict[str, str] | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """Create an HTTP client with the project's defaults.

    Args:
        base_url: Optional base URL for all requests.
        headers: Default headers.
        timeout: Request timeout in seconds.
        transport: Override the transport (tests pass ``httpx.MockTransport``).
    """
    return httpx.Client(
        base_url=base_url,
        headers=headers or {},
        timeout=httpx.Timeout(timeout),
        follow_redirects=True,
        transport=transport,
    )


def request_with_retry(
    client: httpx.Client,
    method: str,
    url: str,
    *,
    max_retries: int = MAX_RETRIES,
    backoff_base: float = RETRY_BACKOFF_BASE,
    **kwargs: Any,
) -> httpx.Response:
    """Make an HTTP request, retrying transient errors with exponential backoff.

    Non-retryable responses (including 4xx) are returned as-is for the caller
    to interpret.

    Raises:
        httpx.HTTPStatusError: If retries run out on a retryable status.
        httpx.TransportError: If retries run out on connection failures.
    """
    for attempt in range(max_retries):
        delay = backoff_base * (2**attempt)
        try:
            response = client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            warn(f"{method} {url} failed ({exc}), retrying in {delay:.1f}s")
        else:
            if response.status_code not in RETRYABLE_STATUS_CODES:
                return response
            warn(f"{method} {url} returned {response.status_code}, retrying")
        time.sleep(delay)

    # Last attempt: let errors through
    response = client.request(method, url, **kwargs)
    if response.status_code in RETRYABLE_STATUS_CODES:
        response.raise_for_status()
    return response
