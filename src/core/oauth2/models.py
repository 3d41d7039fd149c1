"""OAuth2 data models."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, ConfigDict

# Tokens are treated as expired this long before the provider says so
EXPIRY_SAFETY_MARGIN_SECONDS = 30

# Used when a token response carries no expires_in
DEFAULT_TOKEN_LIFETIME_SECONDS = 300


class TokenResponse(BaseModel):
    """Token endpoint response (authorization_code and refresh_token grants)."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None
    refresh_token: str | None = None
    refresh_expires_in: int | None = None
    id_token: str | None = None
    scope: str | None = None


@dataclass
class TokenSession:
    """
    Live token material held by an AuthSession.

    Attributes:
        access_token: Bearer token for API calls
        expires_at: UTC instant after which the token is treated as expired
        refresh_token: Optional refresh token for renewal
        code_verifier: PKCE verifier, present only between login start and exchange
    """

    access_token: str
    expires_at: datetime
    refresh_token: str | None = None
    code_verifier: str | None = None

    @classmethod
    def from_response(
        cls,
        response: TokenResponse,
        now: datetime | None = None,
        safety_margin_seconds: int = EXPIRY_SAFETY_MARGIN_SECONDS,
        default_lifetime_seconds: int = DEFAULT_TOKEN_LIFETIME_SECONDS,
    ) -> "TokenSession":
        """
        Create a session from a token response.

        expires_at = now + expires_in - safety margin.
        """
        now = now or datetime.now(UTC)
        lifetime = response.expires_in if response.expires_in is not None else default_lifetime_seconds
        return cls(
            access_token=response.access_token,
            expires_at=now + timedelta(seconds=lifetime - safety_margin_seconds),
            refresh_token=response.refresh_token,
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.now(UTC)) >= self.expires_at

    @property
    def remaining_lifetime(self) -> timedelta:
        """Get remaining time before token expires."""
        return self.expires_at - datetime.now(UTC)


@dataclass(frozen=True)
class OIDCEndpoints:
    """
    Keycloak-style realm endpoints derived from a base URL and realm name.

    Example:
        OIDCEndpoints("https://id.example.org", "school").token_url
        # https://id.example.org/realms/school/protocol/openid-connect/token
    """

    base_url: str
    realm: str

    def __post_init__(self):
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))

    @property
    def _oidc_base(self) -> str:
        return f"{self.base_url}/realms/{self.realm}/protocol/openid-connect"

    @property
    def authorization_url(self) -> str:
        return f"{self._oidc_base}/auth"

    @property
    def token_url(self) -> str:
        return f"{self._oidc_base}/token"

    @property
    def logout_url(self) -> str:
        return f"{self._oidc_base}/logout"

    @property
    def userinfo_url(self) -> str:
        return f"{self._oidc_base}/userinfo"

    @property
    def admin_url(self) -> str:
        return f"{self.base_url}/admin/realms/{self.realm}"


__all__ = [
    "DEFAULT_TOKEN_LIFETIME_SECONDS",
    "EXPIRY_SAFETY_MARGIN_SECONDS",
    "OIDCEndpoints",
    "TokenResponse",
    "TokenSession",
]
