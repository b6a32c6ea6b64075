"""Redeploy a Railway service from its latest healthy deployment.

Independent of the preview pipeline: one GraphQL query to find the most
recent deployment that is running or sleeping, then one mutation to redeploy
it.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError

from .errors import ConfigError, RedeployError
from .net import MAX_RETRIES, http_client, request_with_retry
from .shell import step

DEFAULT_API_URL = "https://backboard.railway.com/graphql/v2"

LAST_DEPLOYMENT_QUERY = """
query getLastDeployment($serviceId: String!) {
  deployments(first: 1, input: {
    serviceId: $serviceId
    status: { in: [SUCCESS, SLEEPING] }
  }) {
    edges {
      node {
        id
        projectId
        canRedeploy
      }
    }
  }
}
"""

REDEPLOY_MUTATION = """
mutation redeploy($deploymentId: String!) {
  deploymentRedeploy(id: $deploymentId) {
    id
  }
}
"""


class RedeployConfig(BaseModel):
    """Inputs for a redeploy, read from ``RAILWAY_API``, ``RAILWAY_TOKEN``
    and ``SERVICE_ID``."""

    api_url: str = DEFAULT_API_URL
    token: SecretStr
    service_id: str

    @classmethod
    def load(
        cls, environ: Mapping[str, str] | None = None, **overrides: Any
    ) -> RedeployConfig:
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for var, field in (
            ("RAILWAY_API", "api_url"),
            ("RAILWAY_TOKEN", "token"),
            ("SERVICE_ID", "service_id"),
        ):
            if env.get(var):
                values[field] = env[var]
        values.update({k: v for k, v in overrides.items() if v is not None})

        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigError(f"Invalid redeploy configuration: {exc}") from exc


class Deployment(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    project_id: str = Field(alias="projectId")
    can_redeploy: bool | None = Field(default=None, alias="canRedeploy")


class RailwayClient:
    """Minimal Railway GraphQL client."""

    def __init__(
        self,
        api_url: str,
        token: str,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_url = api_url
        self._client = http_client(
            headers={"Authorization": f"Bearer {token}"}, transport=transport
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> RailwayClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def execute(
        self,
        document: str,
        variables: dict[str, Any],
        *,
        max_retries: int = MAX_RETRIES,
    ) -> dict[str, Any]:
        """Run a GraphQL document and return its ``data``.

        Pass ``max_retries=0`` for mutations that must not run twice.

        Raises:
            RedeployError: On HTTP failures or GraphQL errors.
        """
        try:
            response = request_with_retry(
                self._client,
                "POST",
                self.api_url,
                json={"query": document, "variables": variables},
                max_retries=max_retries,
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise RedeployError(f"Railway API request failed: {exc}") from exc

        if not isinstance(payload, dict):
            raise RedeployError(f"Railway API returned {payload!r:.200}")
        if payload.get("errors"):
            messages = "; ".join(e.get("message", "?") for e in payload["errors"])
            raise RedeployError(f"Railway API error: {messages}")
        return payload.get("data") or {}

    def last_deployment(self, service_id: str) -> Deployment | None:
        """Most recent SUCCESS or SLEEPING deployment of the service."""
        data = self.execute(LAST_DEPLOYMENT_QUERY, {"serviceId": service_id})
        edges = (data.get("deployments") or {}).get("edges") or []
        if not edges:
            return None
        return Deployment.model_validate(edges[0]["node"])

    def redeploy(self, deployment_id: str) -> None:
        self.execute(
            REDEPLOY_MUTATION, {"deploymentId": deployment_id}, max_retries=0
        )


def deployment_url(deployment: Deployment, service_id: str) -> str:
    return (
        f"https://railway.com/project/{deployment.project_id}"
        f"/service/{service_id}?id={deployment.id}"
    )


def redeploy_service(
    config: RedeployConfig, *, transport: httpx.BaseTransport | None = None
) -> Deployment:
    """Redeploy the latest running or sleeping deployment of the service.

    Returns:
        The deployment that was redeployed.

    Raises:
        RedeployError: If there is no such deployment, it can't be redeployed,
            or the API call fails.
    """
    step(f"Redeploying Railway service {config.service_id}")

    with RailwayClient(
        config.api_url, config.token.get_secret_value(), transport=transport
    ) as client:
        deployment = client.last_deployment(config.service_id)
        if deployment is None:
            raise RedeployError("No active or sleeping deployments found")
        if deployment.can_redeploy is False:
            raise RedeployError(
                f"Deployment (ID: {deployment.id}) cannot be redeployed"
            )
        client.redeploy(deployment.id)

    url = deployment_url(deployment, config.service_id)
    print(f"  Deployment (ID: {deployment.id}) redeploy started: {url}")
    return deployment
