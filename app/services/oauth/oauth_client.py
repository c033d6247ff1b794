"""
Provider-agnostic OAuth 2.0 client.
Handles authorization URL generation, code exchange, refresh and revocation
with retry/backoff for transient token-endpoint failures.
"""

import asyncio
import base64
from urllib.parse import urlencode

import httpx

from app.errors import CredentialError, CredentialErrorKind
from app.infrastructure.observability.logging import get_logger
from app.models.domain.credential_domain import TokenResponse
from app.services.oauth.provider_configs import OAuthProviderConfig

logger = get_logger(__name__)

REQUEST_TIMEOUT = 10  # seconds
MAX_RETRIES = 3
BACKOFF_FACTOR = 2  # 2, 4, 8 seconds
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class TokenEndpointUnreachable(Exception):
    """Token endpoint could not be reached or kept failing with 5xx."""


class TokenEndpointRejected(Exception):
    """Token endpoint answered but refused the grant."""

    def __init__(self, message: str, error_code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code


class OAuthClient:
    """
    OAuth 2.0 operations against any configured provider.

    Accepts an externally owned ``httpx.AsyncClient``; without one a client
    is opened per request.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        backoff_factor: float = BACKOFF_FACTOR,
        max_retries: int = MAX_RETRIES,
    ):
        self._http = http_client
        self._backoff_factor = backoff_factor
        self._max_retries = max_retries

    def build_authorize_url(self, config: OAuthProviderConfig, state: str) -> str:
        """Authorization URL for the provider's consent screen."""
        if not config.configured:
            raise CredentialError(
                f"{config.provider.value} OAuth client is not configured",
                kind=CredentialErrorKind.NOT_CONFIGURED,
                provider=config.provider.value,
            )

        params = {
            "client_id": config.client_id,
            "redirect_uri": config.redirect_uri,
            "response_type": "code",
            "state": state,
            **config.extra_authorize_params,
        }
        if config.scopes:
            params[config.scope_param] = config.scope_string()
        return f"{config.authorize_url}?{urlencode(params)}"

    async def exchange_code(self, config: OAuthProviderConfig, code: str) -> TokenResponse:
        """
        Exchange an authorization code for tokens.

        Raises:
            CredentialError: INVALID_GRANT when the provider rejects the code,
                PROVIDER_UNREACHABLE when the token endpoint is unavailable
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": config.redirect_uri,
        }
        try:
            return await self._token_request(config, config.token_url, data, "code_exchange")
        except TokenEndpointRejected as e:
            raise CredentialError(
                f"{config.provider.value} rejected the authorization code: {e}",
                kind=CredentialErrorKind.INVALID_GRANT,
                provider=config.provider.value,
            ) from e
        except TokenEndpointUnreachable as e:
            raise CredentialError(
                f"{config.provider.value} token endpoint unreachable",
                kind=CredentialErrorKind.PROVIDER_UNREACHABLE,
                provider=config.provider.value,
                recoverable=True,
            ) from e

    async def refresh(self, config: OAuthProviderConfig, refresh_token: str) -> TokenResponse:
        """
        Perform a refresh-token grant.

        Raises:
            TokenEndpointRejected: the refresh token is no longer accepted
            TokenEndpointUnreachable: transient failure after retries
        """
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        url = config.refresh_url or config.token_url
        return await self._token_request(config, url, data, "token_refresh")

    async def revoke(self, config: OAuthProviderConfig, token: str) -> bool:
        """Best-effort token revocation. Returns False instead of raising."""
        if not config.revoke_url:
            return False

        if config.client_auth_basic:
            _, headers = self._with_client_auth(config, {})
        else:
            headers = {"Authorization": f"Bearer {token}"}

        try:
            response = await self._post_with_retry(
                config.revoke_url, {"token": token}, "token_revoke", headers=headers
            )
            revoked = response.is_success
        except (httpx.RequestError, TokenEndpointUnreachable) as e:
            logger.warning(
                "Token revocation failed",
                provider=config.provider.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        logger.info("Token revocation attempted", provider=config.provider.value, revoked=revoked)
        return revoked

    async def _token_request(
        self, config: OAuthProviderConfig, url: str, data: dict, operation: str
    ) -> TokenResponse:
        data, headers = self._with_client_auth(config, data)
        try:
            response = await self._post_with_retry(url, data, operation, headers=headers)
        except httpx.RequestError as e:
            logger.error(
                "Token endpoint request failed",
                provider=config.provider.value,
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise TokenEndpointUnreachable(str(e)) from e

        if response.status_code >= 500 or response.status_code == 429:
            raise TokenEndpointUnreachable(f"HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise TokenEndpointRejected(
                "Token endpoint returned a non-JSON body", status_code=response.status_code
            ) from e

        if not response.is_success or payload.get("error") or payload.get("ok") is False:
            error_code = payload.get("error") or f"http_{response.status_code}"
            logger.warning(
                "Token endpoint rejected grant",
                provider=config.provider.value,
                operation=operation,
                status_code=response.status_code,
                error_code=error_code,
            )
            raise TokenEndpointRejected(
                payload.get("error_description") or str(error_code),
                error_code=str(error_code),
                status_code=response.status_code,
            )

        # Slack returns user tokens nested under authed_user
        if "authed_user" in payload and payload["authed_user"].get("access_token"):
            payload = payload["authed_user"]

        tokens = TokenResponse.from_payload(payload)
        if not tokens.is_valid():
            raise TokenEndpointRejected("Token response missing access_token")

        logger.info(
            "Token endpoint call succeeded",
            provider=config.provider.value,
            operation=operation,
            has_refresh_token=bool(tokens.refresh_token),
            expires_in=tokens.expires_in,
        )
        return tokens

    @staticmethod
    def _with_client_auth(config: OAuthProviderConfig, data: dict) -> tuple[dict, dict]:
        if config.client_auth_basic:
            credentials = f"{config.client_id}:{config.client_secret}".encode()
            return data, {"Authorization": f"Basic {base64.b64encode(credentials).decode()}"}
        return {**data, "client_id": config.client_id, "client_secret": config.client_secret}, {}

    async def _post_with_retry(
        self, url: str, data: dict, operation: str, headers: dict | None = None
    ) -> httpx.Response:
        """
        POST form data, retrying transient statuses and network errors.
        """
        request_headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
            **(headers or {}),
        }

        if self._http is not None:
            return await self._post_loop(self._http, url, data, request_headers, operation)

        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            return await self._post_loop(client, url, data, request_headers, operation)

    async def _post_loop(
        self, client: httpx.AsyncClient, url: str, data: dict, headers: dict, operation: str
    ) -> httpx.Response:
        for attempt in range(1, self._max_retries + 1):
            try:
                response = await client.post(url, data=data, headers=headers)
            except httpx.RequestError as exc:
                if attempt == self._max_retries:
                    raise
                wait_time = self._backoff_factor**attempt
                logger.warning(
                    "OAuth request error, retrying",
                    operation=operation,
                    attempt=attempt,
                    wait_time=wait_time,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                await asyncio.sleep(wait_time)
                continue

            if response.status_code in RETRY_STATUS_CODES and attempt < self._max_retries:
                wait_time = self._backoff_factor**attempt
                logger.warning(
                    "OAuth transient status",
                    operation=operation,
                    status_code=response.status_code,
                    attempt=attempt,
                    wait_time=wait_time,
                )
                await asyncio.sleep(wait_time)
                continue

            return response

        raise TokenEndpointUnreachable(f"{operation} failed: retries exhausted")
