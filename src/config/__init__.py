"""Configuration loading for the provisioning toolkit.

Configuration is loaded from config/config.yaml (next to this module) with
${VAR} / ${VAR:-default} expansion, then the KEYCLOAK_* and APP_ENV
environment variables are applied on top.

Usage:
    >>> from config import get_config
    >>> config = get_config()
    >>> config.identity_provider.realm
    >>> config.ingestion.to_limits()

Priority (highest to lowest):

1. Environment variables (KEYCLOAK_URL, KEYCLOAK_REALM, KEYCLOAK_CLIENT_ID,
   KEYCLOAK_REDIRECT_URI, APP_ENV)
2. Explicit overrides passed to load_config()
3. YAML configuration file
4. Dataclass defaults
"""

from config.config import (
    DEFAULT_CONFIG_FILE,
    AppConfig,
    HttpConfig,
    IdentityProviderConfig,
    IngestionConfig,
    InstitutionalIdConfig,
    LoggingConfig,
    SyncConfig,
    get_config,
    load_config,
    reset_config,
    set_config,
)

__all__ = [
    # Functions
    "load_config",
    "get_config",
    "set_config",
    "reset_config",
    # Classes
    "AppConfig",
    "HttpConfig",
    "IdentityProviderConfig",
    "IngestionConfig",
    "InstitutionalIdConfig",
    "LoggingConfig",
    "SyncConfig",
    "DEFAULT_CONFIG_FILE",
]
