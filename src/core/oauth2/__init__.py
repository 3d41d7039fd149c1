"""
OAuth2 authorization-code + PKCE public client.

Components:
    - pkce: verifier/challenge/state generation, authorization URL, code exchange
    - OIDCProvider: refresh and end-session against the realm endpoints
    - AuthSession: token lifecycle, single-flight exchange/refresh, bearer requests
    - SessionStore / MemorySessionStore: keyed storage of session artifacts
    - TokenSession / TokenResponse: token models

Example:
    >>> from core.oauth2 import AuthSession, OIDCEndpoints
    >>> session = AuthSession(OIDCEndpoints(url, realm), client_id, redirect_uri, http)
    >>> print(session.initiate_login())
    >>> await session.complete_login_from_callback(callback_url)
"""

from core.oauth2.exceptions import (
    CallbackError,
    InvalidConfigurationError,
    NotAuthenticatedError,
    OAuth2Error,
    ReplayWindowError,
    StateMismatchError,
    TokenExchangeError,
    TokenRefreshError,
)
from core.oauth2.models import OIDCEndpoints, TokenResponse, TokenSession
from core.oauth2.pkce import (
    CallbackParams,
    build_authorization_url,
    exchange_code,
    generate_code_challenge,
    generate_code_verifier,
    generate_state,
    parse_callback_url,
)
from core.oauth2.provider import OIDCProvider
from core.oauth2.session import AuthSession, SessionState
from core.oauth2.store import MemorySessionStore, SessionStore

__all__ = [
    # Session
    "AuthSession",
    "SessionState",
    "SessionStore",
    "MemorySessionStore",
    # Provider
    "OIDCProvider",
    "OIDCEndpoints",
    # PKCE
    "CallbackParams",
    "build_authorization_url",
    "exchange_code",
    "generate_code_challenge",
    "generate_code_verifier",
    "generate_state",
    "parse_callback_url",
    # Models
    "TokenResponse",
    "TokenSession",
    # Exceptions
    "OAuth2Error",
    "NotAuthenticatedError",
    "CallbackError",
    "StateMismatchError",
    "ReplayWindowError",
    "TokenExchangeError",
    "TokenRefreshError",
    "InvalidConfigurationError",
]
