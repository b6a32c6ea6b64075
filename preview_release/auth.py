"""Registry authentication for publishing.

Three strategies, picked in this order:

1. ``npmrc``: a ``.npmrc`` already exists in the workspace. Used as-is.
2. ``token``: a long-lived ``AUTH_TOKEN``. ``.npmrc`` gets a line with the
   literal ``${AUTH_TOKEN}`` placeholder, which npm expands from the
   environment at publish time, so the secret never lands on disk.
3. ``trusted-publishing``: for every package, a GitHub Actions OIDC token is
   exchanged for a short-lived, package-scoped npm token. Tokens can't be
   reused across packages, so the exchange runs once per publish.
"""

from __future__ import annotations

from enum import Enum
from urllib.parse import quote

import httpx

from .config import RunConfig
from .errors import MissingCredentialError, TokenExchangeError
from .net import http_client, request_with_retry
from .shell import debug

TOKEN_ENV = "AUTH_TOKEN"
EXCHANGED_TOKEN_ENV = "NODE_AUTH_TOKEN"


class AuthMode(str, Enum):
    NPMRC = "npmrc"
    TOKEN = "token"
    TRUSTED_PUBLISHING = "trusted-publishing"


def npmrc_auth_line(registry_host: str, env_var: str) -> str:
    """``.npmrc`` auth line that defers to an environment variable.

    Examples:
        ("registry.npmjs.org", "AUTH_TOKEN")
            → "//registry.npmjs.org/:_authToken=${AUTH_TOKEN}"
    """
    return f"//{registry_host}/:_authToken=${{{env_var}}}"


class Credentials:
    """Resolved auth strategy for one run.

    Create with :func:`resolve_credentials`. Call :meth:`prepare` once before
    the first publish, then pass :meth:`publish_env` to each publish.
    """

    def __init__(
        self,
        mode: AuthMode,
        config: RunConfig,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.mode = mode
        self._config = config
        self._transport = transport
        self._prepared = False

    def prepare(self) -> None:
        """Write the placeholder ``.npmrc`` if the strategy needs one.

        Runs at most once per run, and never overwrites an existing file.
        """
        if self._prepared or self.mode is AuthMode.NPMRC:
            return
        self._prepared = True

        env_var = TOKEN_ENV if self.mode is AuthMode.TOKEN else EXCHANGED_TOKEN_ENV
        path = self._config.npmrc_path
        if path.exists():
            return
        path.write_text(npmrc_auth_line(self._config.registry_host, env_var) + "\n")
        debug(f"Wrote {path} with ${{{env_var}}} placeholder")

    def publish_env(self, package_name: str) -> dict[str, str]:
        """Environment the publish command needs for ``package_name``.

        Raises:
            TokenExchangeError: If trusted-publishing exchange fails.
        """
        if self.mode is AuthMode.NPMRC:
            return {}
        if self.mode is AuthMode.TOKEN and self._config.auth_token is not None:
            return {TOKEN_ENV: self._config.auth_token.get_secret_value()}

        with http_client(transport=self._transport) as client:
            try:
                id_token = request_identity_token(
                    self._config, f"npm:{self._config.registry_host}", client
                )
                token = exchange_registry_token(
                    self._config, package_name, id_token, client
                )
            except (httpx.HTTPError, KeyError, ValueError) as exc:
                raise TokenExchangeError(package_name, str(exc)) from exc
        return {EXCHANGED_TOKEN_ENV: token}


def resolve_credentials(
    config: RunConfig, *, transport: httpx.BaseTransport | None = None
) -> Credentials:
    """Pick the auth strategy available in this environment.

    Raises:
        MissingCredentialError: If none of the strategies is available.
    """
    if config.npmrc_path.exists():
        mode = AuthMode.NPMRC
    elif config.auth_token is not None:
        mode = AuthMode.TOKEN
    elif config.id_token_request_url and config.id_token_request_token:
        mode = AuthMode.TRUSTED_PUBLISHING
    else:
        raise MissingCredentialError(
            "No registry credentials: provide a .npmrc, set AUTH_TOKEN, "
            "or grant the workflow id-token: write for trusted publishing."
        )
    debug(f"Registry auth: {mode.value}")
    return Credentials(mode, config, transport=transport)


def request_identity_token(
    config: RunConfig, audience: str, client: httpx.Client
) -> str:
    """Request a GitHub Actions OIDC token for ``audience``.

    Raises:
        httpx.HTTPError: On transport failures or error responses.
        KeyError: If the response has no token.
    """
    if not config.id_token_request_url or config.id_token_request_token is None:
        raise ValueError("ACTIONS_ID_TOKEN_REQUEST_URL and _TOKEN are not set")
    bearer = config.id_token_request_token.get_secret_value()
    response = request_with_retry(
        client,
        "GET",
        config.id_token_request_url,
        params={"audience": audience},
        headers={"Authorization": f"Bearer {bearer}"},
    )
    response.raise_for_status()
    return response.json()["value"]


def exchange_registry_token(
    config: RunConfig, package_name: str, id_token: str, client: httpx.Client
) -> str:
    """Trade an OIDC token for a publish token scoped to ``package_name``.

    Raises:
        httpx.HTTPError: On transport failures or error responses.
        KeyError: If the response has no token.
    """
    # Scoped names keep the @ but encode the slash: @scope%2Fname
    escaped = quote(package_name, safe="@")
    url = (
        f"{config.registry_url.rstrip('/')}"
        f"/-/npm/v1/oidc/token/exchange/package/{escaped}"
    )
    response = request_with_retry(
        client, "POST", url, headers={"Authorization": f"Bearer {id_token}"}
    )
    response.raise_for_status()
    return response.json()["token"]
