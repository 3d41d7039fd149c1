"""OpenID Connect provider client for a public (secret-less) client."""

import logging

import aiohttp
from pydantic import ValidationError as PydanticValidationError

from core.http.client import DEFAULT_TIMEOUT_SECONDS, send_request
from core.oauth2.pkce import build_authorization_url, exchange_code
from core.oauth2.exceptions import InvalidConfigurationError, TokenRefreshError
from core.oauth2.models import OIDCEndpoints, TokenResponse
from core.resilience.retry import DEFAULT_RETRY, RetryConfig

logger = logging.getLogger(__name__)


class OIDCProvider:
    """
    Token endpoint operations against one realm.

    The client is public: no client secret is ever sent, PKCE binds the code
    exchange to the login attempt instead.
    """

    def __init__(
        self,
        endpoints: OIDCEndpoints,
        client_id: str,
        redirect_uri: str,
        http: aiohttp.ClientSession,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        retry_config: RetryConfig | None = None,
    ):
        if not all([endpoints.base_url, endpoints.realm, client_id, redirect_uri]):
            raise InvalidConfigurationError("base_url, realm, client_id and redirect_uri are required")

        self.endpoints = endpoints
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self.retry_config = retry_config or DEFAULT_RETRY
        self._http = http

        logger.debug(
            "Initialized OIDC provider",
            extra={"realm": endpoints.realm, "client_id": client_id},
        )

    def authorization_url(self, code_challenge: str, state: str) -> str:
        return build_authorization_url(
            self.endpoints, self.client_id, self.redirect_uri, code_challenge, state
        )

    async def exchange_code(self, code: str, code_verifier: str) -> TokenResponse:
        return await exchange_code(
            self._http,
            self.endpoints,
            self.client_id,
            self.redirect_uri,
            code,
            code_verifier,
            timeout=self.timeout,
        )

    async def refresh_token(self, refresh_token: str) -> TokenResponse:
        """
        Renew tokens with the refresh_token grant.

        Raises:
            TokenRefreshError: Provider rejected the refresh token
            TransientError: Transport failed after retries
        """
        response = await send_request(
            self._http,
            "POST",
            self.endpoints.token_url,
            timeout=self.timeout,
            retry_config=self.retry_config,
            data={
                "grant_type": "refresh_token",
                "client_id": self.client_id,
                "refresh_token": refresh_token,
            },
        )

        if not response.ok:
            body = response.text()
            logger.warning(
                "Token refresh rejected: HTTP %s",
                response.status,
                extra={"http_status": response.status, "error": body[:200]},
            )
            raise TokenRefreshError(
                f"HTTP {response.status}: {body[:200]}", status=response.status
            )

        try:
            return TokenResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise TokenRefreshError("Refresh returned an invalid body", cause=e) from e

    async def end_session(self, access_token: str, refresh_token: str | None = None) -> bool:
        """
        Terminate the provider-side session.

        Returns:
            True if the provider acknowledged the logout
        """
        data = {"client_id": self.client_id}
        if refresh_token:
            data["refresh_token"] = refresh_token

        response = await send_request(
            self._http,
            "POST",
            self.endpoints.logout_url,
            timeout=self.timeout,
            retry_config=self.retry_config,
            headers={"Authorization": f"Bearer {access_token}"},
            data=data,
        )
        if not response.ok:
            logger.warning(
                "Provider logout returned HTTP %s",
                response.status,
                extra={"http_status": response.status},
            )
        return response.ok


__all__ = ["OIDCProvider"]
