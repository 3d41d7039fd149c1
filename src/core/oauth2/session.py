"""
Session and token lifecycle manager for the PKCE public client.

An AuthSession is an explicit object the caller constructs once and passes to
every component that needs authenticated access. It owns the session store,
the provider client and a single-flight table, so concurrent callers share
one code exchange and one refresh.

States:
    UNAUTHENTICATED -> EXCHANGE_PENDING -> AUTHENTICATED -> EXPIRING
    -> REFRESHING -> AUTHENTICATED | LOGGED_OUT
"""

import hmac
import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import aiohttp

from core.errors.exceptions import ConnectionError, TimeoutError
from core.http.client import DEFAULT_TIMEOUT_SECONDS, HttpResponse, send_request
from core.oauth2.exceptions import (
    CallbackError,
    NotAuthenticatedError,
    OAuth2Error,
    ReplayWindowError,
    StateMismatchError,
    TokenRefreshError,
)
from core.oauth2.models import (
    DEFAULT_TOKEN_LIFETIME_SECONDS,
    EXPIRY_SAFETY_MARGIN_SECONDS,
    OIDCEndpoints,
    TokenResponse,
    TokenSession,
)
from core.oauth2.pkce import (
    generate_code_challenge,
    generate_code_verifier,
    generate_state,
    parse_callback_url,
)
from core.oauth2.provider import OIDCProvider
from core.oauth2.store import (
    ACCESS_TOKEN_KEY,
    CODE_KEY,
    CODE_VERIFIER_KEY,
    EPHEMERAL_KEYS,
    RECEIVED_STATE_KEY,
    REFRESH_TOKEN_KEY,
    STATE_KEY,
    TIMESTAMP_KEY,
    TOKEN_EXPIRY_KEY,
    MemorySessionStore,
    SessionStore,
)
from core.resilience.retry import RetryConfig
from core.resilience.single_flight import SingleFlight
from core.security.events import SecurityEventType, Severity, log_security_event

logger = logging.getLogger(__name__)

# Login must be completed within this window after initiation
REPLAY_WINDOW_SECONDS = 600

EXCHANGE_FLIGHT = "code_exchange"
REFRESH_FLIGHT = "token_refresh"


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    EXCHANGE_PENDING = "exchange_pending"
    AUTHENTICATED = "authenticated"
    EXPIRING = "expiring"
    REFRESHING = "refreshing"
    LOGGED_OUT = "logged_out"


class AuthSession:
    """
    OAuth2 authorization-code + PKCE session.

    Usage:
        session = AuthSession(endpoints, client_id, redirect_uri, http)
        url = session.initiate_login()
        # ... user authenticates, provider redirects to the callback ...
        await session.complete_login_from_callback(callback_url)
        response = await session.authenticated_request("GET", users_url)
        await session.logout()
    """

    def __init__(
        self,
        endpoints: OIDCEndpoints,
        client_id: str,
        redirect_uri: str,
        http: aiohttp.ClientSession,
        store: SessionStore | None = None,
        provider: OIDCProvider | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        retry_config: RetryConfig | None = None,
        replay_window_seconds: int = REPLAY_WINDOW_SECONDS,
        expiry_margin_seconds: int = EXPIRY_SAFETY_MARGIN_SECONDS,
        default_token_lifetime_seconds: int = DEFAULT_TOKEN_LIFETIME_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.endpoints = endpoints
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self.retry_config = retry_config
        self.replay_window_seconds = replay_window_seconds
        self.expiry_margin_seconds = expiry_margin_seconds
        self.default_token_lifetime_seconds = default_token_lifetime_seconds

        self._http = http
        self._store = store if store is not None else MemorySessionStore()
        self._provider = provider or OIDCProvider(
            endpoints, client_id, redirect_uri, http, timeout=timeout, retry_config=retry_config
        )
        self._clock = clock
        self._flights = SingleFlight()
        self._logged_out = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _expiry_ms(self) -> int | None:
        raw = self._store.get(TOKEN_EXPIRY_KEY)
        try:
            return int(raw) if raw else None
        except ValueError:
            return None

    def is_authenticated(self) -> bool:
        """True iff an access token is held and has not reached its expiry instant."""
        expiry = self._expiry_ms()
        return bool(self._store.get(ACCESS_TOKEN_KEY)) and expiry is not None and self._now_ms() < expiry

    @property
    def state(self) -> SessionState:
        if self._flights.in_flight(REFRESH_FLIGHT):
            return SessionState.REFRESHING
        if self._flights.in_flight(EXCHANGE_FLIGHT):
            return SessionState.EXCHANGE_PENDING
        if self._store.get(ACCESS_TOKEN_KEY):
            return SessionState.AUTHENTICATED if self.is_authenticated() else SessionState.EXPIRING
        return SessionState.LOGGED_OUT if self._logged_out else SessionState.UNAUTHENTICATED

    def current_session(self) -> TokenSession | None:
        """Snapshot of the held token material, None when unauthenticated."""
        token = self._store.get(ACCESS_TOKEN_KEY)
        expiry = self._expiry_ms()
        if not token or expiry is None:
            return None
        return TokenSession(
            access_token=token,
            expires_at=datetime.fromtimestamp(expiry / 1000, tz=UTC),
            refresh_token=self._store.get(REFRESH_TOKEN_KEY),
            code_verifier=self._store.get(CODE_VERIFIER_KEY),
        )

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def initiate_login(self) -> str:
        """
        Start a login attempt.

        Persists a fresh verifier, state and timestamp and returns the
        authorization URL the user agent must be sent to.
        """
        verifier = generate_code_verifier()
        state = generate_state()

        for key in EPHEMERAL_KEYS:
            self._store.delete(key)
        self._store.set(CODE_VERIFIER_KEY, verifier)
        self._store.set(STATE_KEY, state)
        self._store.set(TIMESTAMP_KEY, str(self._now_ms()))

        logger.info("Login initiated", extra={"realm": self.endpoints.realm})
        return self._provider.authorization_url(generate_code_challenge(verifier), state)

    async def complete_login_from_callback(self, callback_url: str) -> bool:
        """Complete login from the full redirect URL the provider sent the user agent to."""
        params = parse_callback_url(callback_url)
        if params.error:
            self._clear_ephemeral()
            log_security_event(
                SecurityEventType.AUTHENTICATION_FAILURE,
                "Provider returned an error to the callback",
                Severity.MEDIUM,
                error=params.error,
            )
            raise CallbackError(
                f"Authentication failed: {params.error_description or params.error}"
            )
        return await self.complete_login(params.code or "", params.state or "")

    async def complete_login(self, code: str, received_state: str) -> bool:
        """
        Exchange the authorization code, at most once per login attempt.

        Concurrent callers join the in-flight exchange and observe its result.

        Raises:
            CallbackError: Required parameters are missing
            StateMismatchError: Returned state differs from the stored one
            ReplayWindowError: Login was initiated more than 10 minutes ago
            TokenExchangeError: Provider rejected the code
        """
        if not self._flights.in_flight(EXCHANGE_FLIGHT):
            if self.is_authenticated() and not self._store.get(STATE_KEY):
                # Callback re-entered after the exchange already settled
                return True
            if code:
                self._store.set(CODE_KEY, code)
            if received_state:
                self._store.set(RECEIVED_STATE_KEY, received_state)

        return await self._flights.run(EXCHANGE_FLIGHT, self._exchange)

    async def _exchange(self) -> bool:
        code = self._store.get(CODE_KEY)
        stored_state = self._store.get(STATE_KEY)
        received_state = self._store.get(RECEIVED_STATE_KEY)
        verifier = self._store.get(CODE_VERIFIER_KEY)
        timestamp = self._store.get(TIMESTAMP_KEY)

        try:
            if not all([code, stored_state, received_state, verifier, timestamp]):
                raise CallbackError("Missing required authentication parameters")

            if not hmac.compare_digest(stored_state, received_state):
                log_security_event(
                    SecurityEventType.TOKEN_VALIDATION_FAILED,
                    "State parameter mismatch on callback",
                    Severity.HIGH,
                )
                raise StateMismatchError("State parameter mismatch - possible CSRF attack")

            try:
                started_ms = int(timestamp)
            except ValueError:
                started_ms = 0
            if self._now_ms() - started_ms > self.replay_window_seconds * 1000:
                raise ReplayWindowError("Authentication request expired")

            response = await self._provider.exchange_code(code, verifier)
            self._store_tokens(response)
            self._logged_out = False
            logger.info("Login completed", extra={"realm": self.endpoints.realm})
            return True

        except Exception as e:
            logger.warning(
                "Login failed: %s",
                e,
                extra={"error_type": type(e).__name__},
            )
            self.reset()
            raise
        finally:
            self._clear_ephemeral()

    def _store_tokens(self, response: TokenResponse, previous_refresh_token: str | None = None) -> None:
        lifetime = (
            response.expires_in
            if response.expires_in is not None
            else self.default_token_lifetime_seconds
        )
        expiry_ms = self._now_ms() + (lifetime - self.expiry_margin_seconds) * 1000

        self._store.set(ACCESS_TOKEN_KEY, response.access_token)
        self._store.set(TOKEN_EXPIRY_KEY, str(expiry_ms))
        refresh_token = response.refresh_token or previous_refresh_token
        if refresh_token:
            self._store.set(REFRESH_TOKEN_KEY, refresh_token)

    def _clear_ephemeral(self) -> None:
        for key in EPHEMERAL_KEYS:
            self._store.delete(key)

    # ------------------------------------------------------------------
    # Token lifecycle
    # ------------------------------------------------------------------

    async def ensure_valid_token(self) -> str:
        """
        Return a non-expired access token, refreshing if necessary.

        Raises:
            NotAuthenticatedError: No session exists
            TokenRefreshError: Refresh failed (the session has been reset)
        """
        token = self._store.get(ACCESS_TOKEN_KEY)
        if not token:
            raise NotAuthenticatedError("Not authenticated")
        if self.is_authenticated():
            return token
        return await self.refresh()

    async def refresh(self) -> str:
        """Refresh tokens; concurrent callers share one refresh."""
        return await self._flights.run(REFRESH_FLIGHT, self._refresh)

    async def _refresh(self) -> str:
        refresh_token = self._store.get(REFRESH_TOKEN_KEY)
        if not refresh_token:
            self.reset()
            raise TokenRefreshError("No refresh token available")

        try:
            response = await self._provider.refresh_token(refresh_token)
        except Exception as e:
            log_security_event(
                SecurityEventType.TOKEN_VALIDATION_FAILED,
                "Token refresh failed, session reset",
                Severity.MEDIUM,
                error_type=type(e).__name__,
            )
            self.reset()
            if isinstance(e, TokenRefreshError):
                raise
            raise TokenRefreshError(f"Token refresh failed: {e}", cause=e) from e

        self._store_tokens(response, previous_refresh_token=refresh_token)
        logger.debug("Access token refreshed")
        return response.access_token

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def _send(self, method: str, url: str, token: str, **kwargs: Any) -> HttpResponse:
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "X-Requested-With": "XMLHttpRequest",
        }
        headers.update(kwargs.pop("headers", None) or {})
        return await send_request(
            self._http,
            method,
            url,
            timeout=self.timeout,
            retry_config=self.retry_config,
            headers=headers,
            **kwargs,
        )

    async def authenticated_request(self, method: str, url: str, **kwargs: Any) -> HttpResponse:
        """
        Send a bearer-authenticated request.

        A 401 response or a network-level failure triggers exactly one refresh
        followed by one retry. Other responses, including 4xx, are returned.
        A retry that is still rejected with 401 clears the session.

        Raises:
            NotAuthenticatedError: No session exists, or the refreshed token
                was rejected as well
            TokenRefreshError: Refresh needed but failed
            TransientError: Transport failed on the retried attempt
        """
        token = await self.ensure_valid_token()
        try:
            response = await self._send(method, url, token, **dict(kwargs))
        except (ConnectionError, TimeoutError) as e:
            logger.warning(
                "Network failure, refreshing token and retrying once",
                extra={"http_method": method, "error_type": type(e).__name__},
            )
            return await self._retry_after_refresh(method, url, **kwargs)

        if response.status == 401:
            logger.info("Received 401, refreshing token and retrying once")
            return await self._retry_after_refresh(method, url, **kwargs)

        return response

    async def _retry_after_refresh(self, method: str, url: str, **kwargs: Any) -> HttpResponse:
        token = await self.refresh()
        response = await self._send(method, url, token, **dict(kwargs))
        if response.status == 401:
            log_security_event(
                SecurityEventType.TOKEN_VALIDATION_FAILED,
                "Refreshed token rejected, session reset",
                Severity.MEDIUM,
                http_method=method,
            )
            self.reset()
            raise NotAuthenticatedError(
                "Access token rejected after refresh; sign in again",
                context={"status": response.status},
            )
        return response

    async def fetch_userinfo(self) -> dict[str, Any]:
        """Fetch the authenticated principal's claims from the userinfo endpoint."""
        response = await self.authenticated_request("GET", self.endpoints.userinfo_url)
        if not response.ok:
            raise OAuth2Error(
                f"Userinfo request failed: HTTP {response.status}",
                context={"status": response.status},
            )
        payload = response.json()
        if not isinstance(payload, dict):
            raise OAuth2Error("Userinfo response is not a JSON object")
        return payload

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    async def logout(self) -> None:
        """End the provider session (best effort), then always clear local state."""
        access_token = self._store.get(ACCESS_TOKEN_KEY)
        refresh_token = self._store.get(REFRESH_TOKEN_KEY)
        try:
            if access_token:
                await self._provider.end_session(access_token, refresh_token)
        except Exception as e:
            logger.warning(
                "Remote logout failed, clearing local session anyway",
                extra={"error_type": type(e).__name__, "error_message": str(e)[:200]},
            )
        finally:
            self.reset()

    def reset(self) -> None:
        """Local logout: clear every stored token and login artifact."""
        self._store.clear()
        self._logged_out = True
        logger.info("Local session cleared")


__all__ = ["AuthSession", "REPLAY_WINDOW_SECONDS", "SessionState"]
