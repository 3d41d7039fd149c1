"""OAuth2-specific exceptions."""

from core.errors.exceptions import AuthError


class OAuth2Error(AuthError):
    """Base exception for OAuth2 operations."""

    pass


class NotAuthenticatedError(OAuth2Error):
    """No access token is held by the session."""

    pass


class CallbackError(OAuth2Error):
    """Callback parameters are missing, or the provider returned an error."""

    pass


class StateMismatchError(OAuth2Error):
    """Returned state does not match the stored state (possible CSRF)."""

    pass


class ReplayWindowError(OAuth2Error):
    """Login was initiated too long ago to be completed."""

    pass


class TokenExchangeError(OAuth2Error):
    """Authorization code could not be exchanged for tokens."""

    def __init__(self, message: str, status: int | None = None, body: str = "", cause: Exception | None = None):
        super().__init__(message, cause=cause, context={"status": status})
        self.status = status
        self.body = body


class TokenRefreshError(OAuth2Error):
    """Token refresh failed; the session has been reset."""

    def __init__(self, message: str, status: int | None = None, cause: Exception | None = None):
        super().__init__(message, cause=cause, context={"status": status})
        self.status = status


class InvalidConfigurationError(OAuth2Error):
    """OAuth2 provider configuration is invalid."""

    pass


__all__ = [
    "OAuth2Error",
    "NotAuthenticatedError",
    "CallbackError",
    "StateMismatchError",
    "ReplayWindowError",
    "TokenExchangeError",
    "TokenRefreshError",
    "InvalidConfigurationError",
]
