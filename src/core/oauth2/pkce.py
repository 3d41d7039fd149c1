"""
PKCE primitives for the OAuth2 authorization-code flow (RFC 7636).

Stateless helpers: verifier/challenge/state generation, authorization URL
construction, callback URL parsing and the single code-for-token exchange.
"""

import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass
from urllib.parse import parse_qs, urlencode, urlparse

import aiohttp
from pydantic import ValidationError as PydanticValidationError

from core.http.client import DEFAULT_TIMEOUT_SECONDS, send_request
from core.oauth2.exceptions import TokenExchangeError
from core.oauth2.models import OIDCEndpoints, TokenResponse
from core.resilience.retry import NO_RETRY

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "openid profile email"
CODE_CHALLENGE_METHOD = "S256"


def _base64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_code_verifier() -> str:
    """32 random bytes, base64url without padding (43 characters)."""
    return _base64url(secrets.token_bytes(32))


def generate_code_challenge(verifier: str) -> str:
    """S256 challenge: base64url(sha256(verifier)) without padding."""
    return _base64url(hashlib.sha256(verifier.encode("ascii")).digest())


def generate_state() -> str:
    """32 random bytes rendered as hex."""
    return secrets.token_hex(32)


def build_authorization_url(
    endpoints: OIDCEndpoints,
    client_id: str,
    redirect_uri: str,
    code_challenge: str,
    state: str,
    scope: str = DEFAULT_SCOPE,
) -> str:
    params = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "code_challenge": code_challenge,
        "code_challenge_method": CODE_CHALLENGE_METHOD,
        "scope": scope,
        "state": state,
    }
    return f"{endpoints.authorization_url}?{urlencode(params)}"


@dataclass(frozen=True)
class CallbackParams:
    """Query parameters the provider appends to the redirect URI."""

    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None


def parse_callback_url(url: str) -> CallbackParams:
    query = parse_qs(urlparse(url).query)

    def first(name: str) -> str | None:
        values = query.get(name)
        return values[0] if values else None

    return CallbackParams(
        code=first("code"),
        state=first("state"),
        error=first("error"),
        error_description=first("error_description"),
    )


async def exchange_code(
    http: aiohttp.ClientSession,
    endpoints: OIDCEndpoints,
    client_id: str,
    redirect_uri: str,
    code: str,
    code_verifier: str,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> TokenResponse:
    """
    Exchange an authorization code for tokens.

    Sent exactly once; codes are single-use so a retry could only fail.

    Raises:
        TokenExchangeError: Provider answered non-2xx or with an unusable body
        TransientError: Network failure or timeout
    """
    response = await send_request(
        http,
        "POST",
        endpoints.token_url,
        timeout=timeout,
        retry_config=NO_RETRY,
        data={
            "grant_type": "authorization_code",
            "client_id": client_id,
            "code": code,
            "redirect_uri": redirect_uri,
            "code_verifier": code_verifier,
        },
    )

    if not response.ok:
        body = response.text()
        logger.error(
            "Token exchange failed: HTTP %s",
            response.status,
            extra={"http_status": response.status, "error": body[:200]},
        )
        raise TokenExchangeError(
            f"Token exchange failed: HTTP {response.status}: {body[:200]}",
            status=response.status,
            body=body,
        )

    try:
        return TokenResponse.model_validate(response.json())
    except (ValueError, PydanticValidationError) as e:
        raise TokenExchangeError(
            "Token exchange returned an invalid body", status=response.status, cause=e
        ) from e


__all__ = [
    "CODE_CHALLENGE_METHOD",
    "CallbackParams",
    "DEFAULT_SCOPE",
    "build_authorization_url",
    "exchange_code",
    "generate_code_challenge",
    "generate_code_verifier",
    "generate_state",
    "parse_callback_url",
]
