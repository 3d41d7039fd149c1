"""
Administrator profile resolution.

The userinfo payload comes in one of two shapes depending on how the realm's
protocol mappers are set up:

    claims:      {"sub": "...", "rolle": "LEIT", "schulnummer": "123456"}
    attributes:  {"id": "...", "attributes": {"rolle": ["LEIT"], "schulnummer": ["123456"]}}

The shape is decided once here and the result is a typed ProviderProfile, so
callers never probe the raw payload.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from core.errors.exceptions import AuthorizationError
from core.oauth2.session import AuthSession
from core.security.events import SecurityEventType, Severity, log_security_event

logger = logging.getLogger(__name__)

DEFAULT_ROLE_ATTRIBUTE = "rolle"
DEFAULT_SCHOOL_NUMBER_ATTRIBUTE = "schulnummer"


class ProfileShape(str, Enum):
    CLAIMS = "claims"
    ATTRIBUTES = "attributes"


@dataclass(frozen=True)
class ProviderProfile:
    shape: ProfileShape
    user_id: Optional[str]
    username: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    school_number: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def has_role(self, role: str) -> bool:
        return self.role == role


def _first(value: Any) -> Optional[str]:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def resolve_profile(
    payload: Mapping[str, Any],
    role_attribute: str = DEFAULT_ROLE_ATTRIBUTE,
    school_number_attribute: str = DEFAULT_SCHOOL_NUMBER_ATTRIBUTE,
) -> ProviderProfile:
    """Build a ProviderProfile from a userinfo (or admin user) payload."""
    attributes = payload.get("attributes")
    if not isinstance(attributes, Mapping):
        attributes = {}

    top_role = _first(payload.get(role_attribute))
    top_school = _first(payload.get(school_number_attribute))
    shape = (
        ProfileShape.CLAIMS
        if top_role or top_school or not attributes
        else ProfileShape.ATTRIBUTES
    )

    return ProviderProfile(
        shape=shape,
        user_id=_first(payload.get("sub")) or _first(payload.get("id")),
        username=_first(payload.get("preferred_username")) or _first(payload.get("username")),
        email=_first(payload.get("email")),
        role=top_role or _first(attributes.get(role_attribute)),
        school_number=top_school or _first(attributes.get(school_number_attribute)),
        raw=dict(payload),
    )


async def load_profile(
    session: AuthSession,
    required_role: Optional[str] = "LEIT",
    role_attribute: str = DEFAULT_ROLE_ATTRIBUTE,
    school_number_attribute: str = DEFAULT_SCHOOL_NUMBER_ATTRIBUTE,
) -> ProviderProfile:
    """
    Fetch and resolve the signed-in administrator's profile.

    Raises:
        AuthorizationError: Account does not hold required_role
        OAuth2Error: Userinfo could not be fetched
    """
    payload = await session.fetch_userinfo()
    profile = resolve_profile(payload, role_attribute, school_number_attribute)

    if required_role and not profile.has_role(required_role):
        log_security_event(
            SecurityEventType.AUTHENTICATION_FAILURE,
            "Account lacks the school leadership role",
            Severity.MEDIUM,
            user_id=profile.user_id,
            role=profile.role,
        )
        raise AuthorizationError(
            f"This tool requires a school leadership account (role {required_role}); "
            f"account role: {profile.role or 'not set'}",
            context={"role": profile.role},
        )

    logger.info(
        "Loaded administrator profile",
        extra={"user_id": profile.user_id, "operation": "load_profile"},
    )
    return profile


__all__ = ["ProfileShape", "ProviderProfile", "load_profile", "resolve_profile"]
